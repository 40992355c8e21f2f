"""Retrieval layer combining full-text, semantic and commit-history search over a codebase"""

from .orchestrator import RetrievalOrchestrator, deduplicate_array, deduplicate_chunks
from .commit_history import CommitHistorySearch
from .workspace import Workspace

__all__ = [
    "RetrievalOrchestrator",
    "deduplicate_array",
    "deduplicate_chunks",
    "CommitHistorySearch",
    "Workspace",
]
