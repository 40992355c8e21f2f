# codectx/search/semantic.py

import asyncio
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import chromadb
from loguru import logger

from codectx.config import get_settings
from codectx.embeddings import EmbeddingsProvider
from codectx.errors import EngineFailure
from codectx.schema import Chunk, IndexTag, RetrievalQueryTerm
from codectx.search.fts import normalize_directory
from codectx.search.outcome import SearchOutcome

_INVALID_COLLECTION_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")


# --------------------------------------------------------------------------------
# ChromaSemanticIndex: one Chroma collection per embeddings provider, chunks
# scoped by index tag in their metadata.
# --------------------------------------------------------------------------------

class ChromaSemanticIndex:
    def __init__(self, persist_dir: Optional[Path] = None, collection_name: Optional[str] = None):
        settings = get_settings()
        if persist_dir is None:
            persist_dir = settings.embeddings_dir
        if collection_name is None:
            collection_name = settings.retrieval_option("embeddings", "collection_name")
        self.persist_dir = Path(persist_dir)
        self.collection_name = collection_name
        self._client = None

    @property
    def client(self):
        # Opened on first use so a broken store only fails the calls that touch it
        if self._client is None:
            self._client = chromadb.PersistentClient(path=str(self.persist_dir))
        return self._client

    def artifact_id(self, provider: EmbeddingsProvider) -> str:
        """Collection name for ``provider``; vectors of different providers never mix."""
        name = _INVALID_COLLECTION_CHARS.sub("-", f"{self.collection_name}-{provider.id}")
        return name.strip("-._")[:63]

    def _collection(self, provider: EmbeddingsProvider):
        return self.client.get_or_create_collection(
            name=self.artifact_id(provider),
            metadata={"hnsw:space": "cosine"},
        )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def replace_tag(
        self, tag: IndexTag, chunks: Sequence[Chunk], provider: EmbeddingsProvider
    ) -> int:
        return await asyncio.to_thread(self._replace_tag_sync, tag, list(chunks), provider)

    def _replace_tag_sync(
        self, tag: IndexTag, chunks: List[Chunk], provider: EmbeddingsProvider
    ) -> int:
        col = self._collection(provider)
        tag_string = tag.tag_string()
        col.delete(where={"tag": tag_string})
        if not chunks:
            return 0

        embeddings = provider.embed([c.content for c in chunks])
        col.add(
            ids=[f"{tag_string}::{c.filepath}::{c.index}" for c in chunks],
            embeddings=embeddings,
            metadatas=[
                {
                    "tag": tag_string,
                    "filepath": c.filepath,
                    "language": c.language,
                    "start_line": c.start_line,
                    "end_line": c.end_line,
                    "index": c.index,
                    "digest": c.digest,
                }
                for c in chunks
            ],
            documents=[c.content for c in chunks],
        )
        logger.debug("Embedded {} chunks into {}", len(chunks), col.name)
        return len(chunks)

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    async def query(
        self,
        query: str,
        n: int,
        tags: Sequence[IndexTag],
        provider: EmbeddingsProvider,
        filter_directory: Optional[str] = None,
        filter_language: Optional[str] = None,
    ) -> List[Chunk]:
        return await asyncio.to_thread(
            self._query_sync, query, n, list(tags), provider, filter_directory, filter_language
        )

    def _query_sync(
        self,
        query: str,
        n: int,
        tags: List[IndexTag],
        provider: EmbeddingsProvider,
        filter_directory: Optional[str],
        filter_language: Optional[str],
    ) -> List[Chunk]:
        if not tags or n <= 0:
            return []
        col = self._collection(provider)
        total = col.count()
        if total == 0:
            return []

        conditions: List[Dict[str, Any]] = [{"tag": {"$in": [t.tag_string() for t in tags]}}]
        if filter_language:
            conditions.append({"language": filter_language})
        where = conditions[0] if len(conditions) == 1 else {"$and": conditions}

        directory = normalize_directory(filter_directory) if filter_directory else ""
        # Chroma has no prefix operator; over-fetch and filter directories here.
        n_results = min(total, n * 4 if directory else n)

        q_emb = provider.embed([query])[0]
        results = col.query(
            query_embeddings=[q_emb],
            n_results=n_results,
            where=where,
            include=["metadatas", "documents", "distances"],
        )

        chunks: List[Chunk] = []
        if not results["ids"] or not results["ids"][0]:
            return chunks
        for meta, doc, dist in zip(
            results["metadatas"][0], results["documents"][0], results["distances"][0]
        ):
            filepath = meta["filepath"]
            if directory and not (filepath == directory or filepath.startswith(directory + "/")):
                continue
            chunks.append(
                Chunk(
                    filepath=filepath,
                    language=meta.get("language", ""),
                    content=doc,
                    start_line=int(meta["start_line"]),
                    end_line=int(meta["end_line"]),
                    index=int(meta.get("index", 0)),
                    digest=meta.get("digest", ""),
                    score=1.0 - float(dist),
                )
            )
            if len(chunks) >= n:
                break
        return chunks


class SemanticSearchAdapter:
    """Fail-soft wrapper around the vector index, same contract as the full-text adapter."""

    engine_name = "semantic"

    def __init__(self, index: ChromaSemanticIndex):
        self.index = index

    def artifact_id(self, provider: EmbeddingsProvider) -> str:
        return self.index.artifact_id(provider)

    async def search(
        self, term: RetrievalQueryTerm, embeddings_provider: EmbeddingsProvider
    ) -> SearchOutcome:
        if not term.query.strip():
            return SearchOutcome.success([])
        try:
            chunks = await self.index.query(
                term.query,
                term.n,
                term.tags,
                embeddings_provider,
                term.filter_directory,
                term.filter_language,
            )
        except Exception as e:
            logger.warning("Error retrieving from semantic index: {}", e)
            return SearchOutcome.failed(EngineFailure(self.engine_name, e))
        return SearchOutcome.success(chunks[: term.n])

    async def retrieve(
        self, term: RetrievalQueryTerm, embeddings_provider: EmbeddingsProvider
    ) -> List[Chunk]:
        outcome = await self.search(term, embeddings_provider)
        return outcome.chunks_or_empty()
