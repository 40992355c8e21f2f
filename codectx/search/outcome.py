# codectx/search/outcome.py

from dataclasses import dataclass, field
from typing import List, Optional

from codectx.errors import EngineFailure
from codectx.schema import Chunk


@dataclass(frozen=True)
class SearchOutcome:
    """
    Result of one adapter call: either chunks, or the engine failure that
    replaced them. Adapters return this instead of raising.
    """
    chunks: List[Chunk] = field(default_factory=list)
    failure: Optional[EngineFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, chunks: List[Chunk]) -> "SearchOutcome":
        return cls(chunks=list(chunks))

    @classmethod
    def failed(cls, failure: EngineFailure) -> "SearchOutcome":
        return cls(chunks=[], failure=failure)

    def chunks_or_empty(self) -> List[Chunk]:
        return list(self.chunks) if self.ok else []
