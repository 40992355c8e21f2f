# codectx/search/fulltext.py

from typing import List, Optional

from loguru import logger

from codectx.config import get_settings
from codectx.errors import EngineFailure
from codectx.schema import Chunk, RetrievalQueryTerm
from codectx.search.outcome import SearchOutcome


def build_fts_query(query: str) -> str:
    """
    Quote every whitespace-separated token and join them with OR, so any
    single token is enough for a match. Returns "" for a blank query.
    """
    tokens = query.split()
    return " OR ".join('"' + token.replace('"', '""') + '"' for token in tokens)


class FullTextSearchAdapter:
    """
    Fail-soft wrapper around a full-text engine exposing
    ``retrieve(tags, query, limit, directory_filter, file_filter, score_threshold, language_filter)``.
    """

    engine_name = "full-text"

    def __init__(self, engine, score_threshold: Optional[float] = None):
        self.engine = engine
        if score_threshold is None:
            score_threshold = get_settings().retrieval_option("fts", "bm25_threshold")
        self.score_threshold = score_threshold

    async def search(self, term: RetrievalQueryTerm) -> SearchOutcome:
        query = term.query.strip()
        if not query:
            return SearchOutcome.success([])

        try:
            chunks = await self.engine.retrieve(
                term.tags,
                build_fts_query(query),
                term.n,
                term.filter_directory,
                None,
                self.score_threshold,
                term.filter_language,
            )
        except Exception as e:
            logger.warning("Error retrieving from full-text index: {}", e)
            return SearchOutcome.failed(EngineFailure(self.engine_name, e))

        return SearchOutcome.success(chunks[: term.n])

    async def retrieve(self, term: RetrievalQueryTerm) -> List[Chunk]:
        """Never raises: engine faults come back as an empty list."""
        outcome = await self.search(term)
        return outcome.chunks_or_empty()
