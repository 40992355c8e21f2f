# codectx/schema.py

from __future__ import annotations
from pathlib import PurePath
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Chunk(BaseModel):
    """
    A contiguous unit of retrieved content: a live file region or a commit diff.
    Identity for de-duplication is (filepath, start_line, end_line) only.
    """
    filepath: str
    language: str = ""
    content: str
    start_line: int = Field(..., ge=0)
    end_line: int = Field(..., ge=0)
    index: int = 0
    digest: str = ""
    score: Optional[float] = Field(
        None, description="Engine-specific relevance, only comparable within one strategy"
    )

    def same_location(self, other: "Chunk") -> bool:
        return (
            self.filepath == other.filepath
            and self.start_line == other.start_line
            and self.end_line == other.end_line
        )

    @property
    def is_commit(self) -> bool:
        return self.start_line == 0 and self.end_line == 0 and self.digest == self.filepath


class Position(BaseModel):
    line: int
    character: int = 0


class TextRange(BaseModel):
    start: Position
    end: Position


class ContextItem(BaseModel):
    """A chunk made ready for a prompt. Never persisted."""
    content: str
    name: str
    path: str
    range: TextRange
    description: str
    editable: Optional[bool] = None
    editing: Optional[bool] = None

    @classmethod
    def from_chunk(cls, chunk: Chunk) -> "ContextItem":
        if chunk.is_commit:
            name = f"commit {chunk.filepath[:8]}"
        else:
            name = f"{PurePath(chunk.filepath).name} ({chunk.start_line}-{chunk.end_line})"
        return cls(
            content=chunk.content,
            name=name,
            path=chunk.filepath,
            range=TextRange(
                start=Position(line=chunk.start_line),
                end=Position(line=chunk.end_line),
            ),
            description=chunk.filepath,
        )


class IndexTag(BaseModel):
    """The (directory, branch, artifact) scope an index stores chunks under."""
    model_config = ConfigDict(frozen=True)

    directory: str
    branch: str
    artifact_id: str

    def tag_string(self) -> str:
        return f"{self.directory}::{self.branch}::{self.artifact_id}"


class RetrievalQueryTerm(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: str
    tags: List[IndexTag] = Field(default_factory=list)
    n: int = Field(..., ge=0, description="Result cap per strategy")
    filter_directory: Optional[str] = None
    filter_language: Optional[str] = None


class RetrieveOption(BaseModel):
    """
    Strategy selection for one orchestrator call.
    """
    filter_directory: Optional[str] = Field(
        None, description="Only return chunks under this directory"
    )
    filter_language: Optional[str] = Field(
        None, description="Only return chunks in this language"
    )
    with_full_text_search: bool = Field(True, description="Query the full-text index")
    with_semantic_search: bool = Field(True, description="Query the vector index")
    with_commit_message_search: bool = Field(
        False, description="Rank commit messages with TF-IDF and return matching diffs"
    )

    @field_validator("filter_directory", "filter_language")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v
