# Error taxonomy shared by the catalog, the search adapters and the orchestrator.

from typing import Optional


class CodectxError(Exception):
    """Base class for every error raised by codectx."""


class StorageUnavailable(CodectxError):
    """
    The index catalog store could not be opened, created or used.
    Fatal to any operation that needs persisted state; never retried.
    """

    def __init__(self, path, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Index catalog store unavailable at {path}{detail}")


class EngineFailure(CodectxError):
    """A full-text or semantic engine raised. Adapters downgrade it to an empty result."""

    def __init__(self, engine: str, cause: Optional[BaseException] = None):
        self.engine = engine
        self.cause = cause
        super().__init__(f"{engine} search failed: {cause}")


class SourceControlFailure(CodectxError):
    """Enumerating commits or fetching a diff failed."""


class RetrievalCancelled(CodectxError):
    """The caller signalled cancellation while strategies were still running."""
