# codectx/retrieval/orchestrator.py

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from loguru import logger

from codectx.catalog.store import IndexCatalogStore, get_catalog_store
from codectx.config import Settings, get_settings
from codectx.embeddings import EmbeddingsProvider
from codectx.errors import RetrievalCancelled, StorageUnavailable
from codectx.retrieval.commit_history import CommitHistorySearch
from codectx.retrieval.workspace import Workspace
from codectx.schema import Chunk, ContextItem, IndexTag, RetrievalQueryTerm, RetrieveOption
from codectx.scm.git import SourceControl
from codectx.search.fts import FullTextSearchIndex
from codectx.search.fulltext import FullTextSearchAdapter
from codectx.search.semantic import ChromaSemanticIndex, SemanticSearchAdapter

T = TypeVar("T")


def deduplicate_array(array: Sequence[T], equal: Callable[[T, T], bool]) -> List[T]:
    """Keep the first of every group of ``equal`` items, preserving order. O(n^2)."""
    result: List[T] = []
    for item in array:
        if not any(equal(existing, item) for existing in result):
            result.append(item)
    return result


def deduplicate_chunks(chunks: Sequence[Chunk]) -> List[Chunk]:
    return deduplicate_array(chunks, lambda a, b: a.same_location(b))


# --------------------------------------------------------------------------------
# RetrievalOrchestrator: fans a query out to full-text, semantic and commit-history
# search, then concatenates and de-duplicates what comes back.
# --------------------------------------------------------------------------------

class RetrievalOrchestrator:
    def __init__(
        self,
        catalog: IndexCatalogStore,
        full_text: Optional[FullTextSearchAdapter] = None,
        semantic: Optional[SemanticSearchAdapter] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog
        self.full_text = full_text
        self.semantic = semantic
        self.top_n = int(self.settings.retrieval_option("top_n"))
        self.fts_artifact_id = self.settings.retrieval_option("fts", "artifact_id")
        self.commit_threshold = self.settings.retrieval_option("commit_history", "threshold")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None,
                      with_semantic: bool = True) -> "RetrievalOrchestrator":
        settings = settings or get_settings()
        semantic = None
        if with_semantic:
            semantic = SemanticSearchAdapter(ChromaSemanticIndex(settings.embeddings_dir))
        return cls(
            catalog=get_catalog_store(settings.catalog_path),
            full_text=FullTextSearchAdapter(FullTextSearchIndex(settings.fts_path)),
            semantic=semantic,
            settings=settings,
        )

    # ------------------------------------------------------------------
    # Single strategies
    # ------------------------------------------------------------------

    async def retrieve_git(
        self, git: SourceControl, term: RetrievalQueryTerm, threshold: float = 0.6
    ) -> List[Chunk]:
        return await CommitHistorySearch(git, threshold).retrieve(term)

    async def retrieve_fts(self, term: RetrievalQueryTerm) -> List[Chunk]:
        if self.full_text is None:
            return []
        return await self.full_text.retrieve(term)

    async def retrieve_semantic(
        self, term: RetrievalQueryTerm, embeddings_provider: EmbeddingsProvider
    ) -> List[Chunk]:
        if self.semantic is None:
            return []
        return await self.semantic.retrieve(term, embeddings_provider)

    # ------------------------------------------------------------------
    # Combined retrieval
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        full_input: str,
        workspace: Workspace,
        embeddings_provider: EmbeddingsProvider,
        options: Optional[RetrieveOption] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[ContextItem]:
        """
        Run every enabled strategy for ``full_input`` and return the merged,
        de-duplicated results as context items.

        A failing strategy contributes nothing; only an unavailable catalog
        store aborts the call. Setting ``cancel_event`` abandons outstanding
        searches and raises RetrievalCancelled.
        """
        chunks = await self.retrieve_chunks(
            full_input, workspace, embeddings_provider, options, cancel_event
        )
        return [ContextItem.from_chunk(chunk) for chunk in chunks]

    async def retrieve_chunks(
        self,
        full_input: str,
        workspace: Workspace,
        embeddings_provider: EmbeddingsProvider,
        options: Optional[RetrieveOption] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[Chunk]:
        options = options or RetrieveOption()
        if cancel_event is not None and cancel_event.is_set():
            raise RetrievalCancelled("retrieval cancelled before it started")

        base_term = RetrievalQueryTerm(
            query=full_input,
            tags=[],
            n=self.top_n,
            filter_directory=options.filter_directory,
            filter_language=options.filter_language,
        )

        # Resolve every catalog lookup before any strategy starts: a broken
        # store must abort the whole call.
        await self.catalog.get_handle()

        fts_tag = None
        if options.with_full_text_search:
            if self.full_text is None:
                logger.debug("Full-text search requested but no index is configured")
            else:
                fts_tag = self._tag(workspace, self.fts_artifact_id)
                await self._log_cache_key(fts_tag)

        semantic_tag = None
        if options.with_semantic_search:
            if self.semantic is None:
                logger.debug("Semantic search requested but no index is configured")
            else:
                semantic_tag = self._tag(workspace, self.semantic.artifact_id(embeddings_provider))
                await self._log_cache_key(semantic_tag)

        strategies: List[Tuple[str, Callable[[], Awaitable[List[Chunk]]]]] = []
        if fts_tag is not None:
            fts_term = base_term.model_copy(update={"tags": [fts_tag]})
            strategies.append(("full-text", lambda: self.retrieve_fts(fts_term)))
        if semantic_tag is not None:
            semantic_term = base_term.model_copy(update={"tags": [semantic_tag]})
            strategies.append(
                ("semantic", lambda: self.retrieve_semantic(semantic_term, embeddings_provider))
            )
        if options.with_commit_message_search:
            if workspace.git is None:
                logger.debug("Commit message search requested but {} has no history", workspace.root)
            else:
                git = workspace.git
                strategies.append(
                    ("commit-history",
                     lambda: self.retrieve_git(git, base_term, self.commit_threshold))
                )

        results = await self._join(strategies, cancel_event)

        merged: List[Chunk] = []
        for (name, _factory), result in zip(strategies, results):
            if isinstance(result, StorageUnavailable):
                raise result
            if isinstance(result, BaseException):
                logger.warning("{} retrieval failed: {}", name, result)
                continue
            merged.extend(result)

        deduped = deduplicate_chunks(merged)
        logger.debug("Retrieved {} chunks ({} before de-duplication)", len(deduped), len(merged))
        return deduped

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _tag(workspace: Workspace, artifact_id: str) -> IndexTag:
        return IndexTag(directory=workspace.directory, branch=workspace.branch, artifact_id=artifact_id)

    async def _log_cache_key(self, tag: IndexTag) -> None:
        cache_key = await self.catalog.lookup_global_cache(tag.directory, tag.branch, tag.artifact_id)
        if cache_key is None:
            logger.info("No {} index built for {} ({}); run `codectx index` first",
                        tag.artifact_id, tag.directory, tag.branch)
        else:
            logger.debug("Using {} index {} for {}", tag.artifact_id, cache_key[:12], tag.directory)

    @staticmethod
    async def _timed(name: str, factory: Callable[[], Awaitable[List[Chunk]]]) -> List[Chunk]:
        start = time.perf_counter()
        chunks = await factory()
        logger.debug("{} returned {} chunks in {:.1f}ms",
                     name, len(chunks), (time.perf_counter() - start) * 1000)
        return chunks

    async def _join(
        self,
        strategies: List[Tuple[str, Callable[[], Awaitable[List[Chunk]]]]],
        cancel_event: Optional[asyncio.Event],
    ) -> List[Any]:
        """Run all strategies concurrently; each slot holds chunks or the exception it raised."""
        if not strategies:
            return []

        tasks = [asyncio.ensure_future(self._timed(name, factory)) for name, factory in strategies]
        gathered = asyncio.gather(*tasks, return_exceptions=True)
        try:
            if cancel_event is None:
                return await gathered

            waiter = asyncio.ensure_future(cancel_event.wait())
            try:
                await asyncio.wait({gathered, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
            if gathered.done():
                return gathered.result()
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in tasks:
            task.cancel()
        await gathered
        raise RetrievalCancelled("retrieval cancelled by caller")
