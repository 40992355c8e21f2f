"""Source-control collaborators"""

from .git import Commit, GitRepository, SourceControl

__all__ = ["Commit", "GitRepository", "SourceControl"]
