# codectx/indexing/indexer.py

import asyncio
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from codectx.catalog.schema import GlobalCacheEntry, TagCatalogEntry, now_millis
from codectx.catalog.store import IndexCatalogStore
from codectx.config import Settings, get_settings
from codectx.embeddings import EmbeddingsProvider
from codectx.indexing.chunker import chunk_file, relative_path
from codectx.retrieval.workspace import Workspace
from codectx.schema import Chunk, IndexTag
from codectx.search.fts import FullTextSearchIndex
from codectx.search.semantic import ChromaSemanticIndex
from codectx.utils.fs import FileLock
from codectx.utils.text import sha256_text


class IndexReport(BaseModel):
    """What one refresh did for one artifact."""
    artifact_id: str
    directory: str
    branch: str
    cache_key: str
    rebuilt: bool
    files: int = 0
    chunks: int = 0
    changed_paths: List[str] = Field(default_factory=list)


class _Snapshot(BaseModel):
    digests: Dict[str, str]  # relative path -> content digest
    chunks: List[Chunk]


class CodebaseIndexer:
    """
    Chunk a workspace, fill the full-text (and optionally the semantic) index,
    and record the result in the catalog. An artifact whose cache key has not
    changed since its last build is left alone.
    """

    def __init__(
        self,
        catalog: IndexCatalogStore,
        fts: FullTextSearchIndex,
        semantic: Optional[ChromaSemanticIndex] = None,
        embeddings: Optional[EmbeddingsProvider] = None,
        settings: Optional[Settings] = None,
    ):
        if semantic is not None and embeddings is None:
            raise ValueError("A semantic index needs an embeddings provider")
        self.settings = settings or get_settings()
        self.catalog = catalog
        self.fts = fts
        self.semantic = semantic
        self.embeddings = embeddings
        self.fts_artifact_id = self.settings.retrieval_option("fts", "artifact_id")

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self, root: Path) -> Iterator[Path]:
        """Yield indexable files under ``root`` in a stable order."""
        patterns = self.settings.retrieval_option("file_patterns")
        skip_dirs = set(self.settings.retrieval_option("skip_dirs"))
        seen = set()
        for pattern in patterns:
            for file_path in root.rglob(pattern):
                rel_parts = file_path.relative_to(root).parts
                # Skip hidden files and directories
                if any(part.startswith('.') for part in rel_parts):
                    continue
                if any(part in skip_dirs for part in rel_parts[:-1]):
                    continue
                if not file_path.is_file() or file_path in seen:
                    continue
                seen.add(file_path)
        yield from sorted(seen)

    def _snapshot(self, root: Path) -> _Snapshot:
        digests: Dict[str, str] = {}
        chunks: List[Chunk] = []
        for file_path in self.discover(root):
            try:
                text = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping {}: {}", file_path, e)
                continue
            file_chunks = chunk_file(file_path, root, text=text)
            digests[relative_path(file_path, root)] = sha256_text(text)
            chunks.extend(file_chunks)
        return _Snapshot(digests=digests, chunks=chunks)

    def cache_key(self, artifact_id: str, digests: Dict[str, str]) -> str:
        """Fingerprint of the inputs to one artifact build."""
        chunker = self.settings.retrieval_option("chunker")
        parts = [
            artifact_id,
            str(chunker.get("max_tokens")),
            str(chunker.get("overlap_tokens")),
        ]
        for path in sorted(digests):
            parts.extend([path, digests[path]])
        return sha256_text(*parts)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, workspace: Workspace, force: bool = False) -> List[IndexReport]:
        root = workspace.root
        snapshot = await asyncio.to_thread(self._snapshot, root)
        logger.info("Indexing {} ({} files, {} chunks)", root, len(snapshot.digests), len(snapshot.chunks))

        artifacts: List[Tuple[str, str]] = [("fts", self.fts_artifact_id)]
        if self.semantic is not None:
            artifacts.append(("semantic", self.semantic.artifact_id(self.embeddings)))

        reports = []
        async with FileLock(self.catalog.db_path):
            for kind, artifact_id in artifacts:
                reports.append(await self._refresh_artifact(workspace, kind, artifact_id, snapshot, force))
        return reports

    async def _refresh_artifact(
        self,
        workspace: Workspace,
        kind: str,
        artifact_id: str,
        snapshot: _Snapshot,
        force: bool,
    ) -> IndexReport:
        tag = IndexTag(directory=workspace.directory, branch=workspace.branch, artifact_id=artifact_id)
        cache_key = self.cache_key(artifact_id, snapshot.digests)
        report = IndexReport(
            artifact_id=artifact_id,
            directory=tag.directory,
            branch=tag.branch,
            cache_key=cache_key,
            rebuilt=False,
            files=len(snapshot.digests),
            chunks=len(snapshot.chunks),
        )

        current = await self.catalog.lookup_global_cache(tag.directory, tag.branch, artifact_id)
        if current == cache_key and not force:
            logger.debug("{} index for {} is up to date ({})", artifact_id, tag.directory, cache_key[:12])
            return report

        if kind == "fts":
            await self.fts.replace_tag(tag, snapshot.chunks)
        else:
            await self.semantic.replace_tag(tag, snapshot.chunks, self.embeddings)

        latest = await self.catalog.latest_tags(tag.directory, tag.branch, artifact_id)
        updated = now_millis()
        for path in sorted(snapshot.digests):
            digest = snapshot.digests[path]
            previous = latest.get(path)
            if previous is not None and previous.cache_key == digest:
                continue
            await self.catalog.record_tag(
                TagCatalogEntry(
                    directory=tag.directory,
                    branch=tag.branch,
                    artifact_id=artifact_id,
                    path=path,
                    cache_key=digest,
                    last_updated=updated,
                )
            )
            report.changed_paths.append(path)

        await self.catalog.record_global_cache(
            GlobalCacheEntry(
                cache_key=cache_key,
                directory=tag.directory,
                branch=tag.branch,
                artifact_id=artifact_id,
            )
        )
        report.rebuilt = True
        logger.info("Built {} index for {} ({} changed paths)",
                    artifact_id, tag.directory, len(report.changed_paths))
        return report
