# codectx/catalog/schema.py

from __future__ import annotations
import time
from pydantic import BaseModel, ConfigDict, Field


def now_millis() -> int:
    return int(time.time() * 1000)


class TagCatalogEntry(BaseModel):
    """
    One indexing event for a path inside a (directory, branch, artifact) scope.
    Rows are appended, never updated; the newest row for a path wins.
    """
    model_config = ConfigDict(frozen=True)

    directory: str
    branch: str
    artifact_id: str
    path: str
    cache_key: str
    last_updated: int = Field(default_factory=now_millis, description="Unix epoch milliseconds")


class GlobalCacheEntry(BaseModel):
    """Fingerprint of one built index artifact; equal keys mean interchangeable builds."""
    model_config = ConfigDict(frozen=True)

    cache_key: str
    directory: str
    branch: str
    artifact_id: str
