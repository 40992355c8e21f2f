# codectx/retrieval/commit_history.py

from typing import List, Optional

from loguru import logger

from codectx.config import get_settings
from codectx.schema import Chunk, RetrievalQueryTerm
from codectx.scm.git import SourceControl
from codectx.search.tfidf import TfIdfEngine


def rank_above_threshold(scores: List[float], threshold: float) -> List[int]:
    """
    Indices whose score is strictly greater than ``threshold``, best first.
    Equal scores keep ascending index order (sorted() is stable).
    """
    passing = [(index, score) for index, score in enumerate(scores) if score > threshold]
    passing = sorted(passing, key=lambda pair: pair[1], reverse=True)
    return [index for index, _score in passing]


class CommitHistorySearch:
    """
    Rank commit messages against the query with TF-IDF and return the diffs of
    the best commits as chunks. Source-control errors are not swallowed here.
    """

    def __init__(self, git: SourceControl, threshold: Optional[float] = None):
        self.git = git
        if threshold is None:
            threshold = get_settings().retrieval_option("commit_history", "threshold")
        self.threshold = threshold

    async def retrieve(self, term: RetrievalQueryTerm) -> List[Chunk]:
        commits = await self.git.get_history_commits()

        engine = TfIdfEngine()
        engine.add_documents([commit.message for commit in commits])
        scores = engine.search(term.query)

        indexes = rank_above_threshold(scores, self.threshold)
        if not indexes:
            return []

        indexes = indexes[: term.n]

        chunks: List[Chunk] = []
        for index in indexes:
            commit = commits[index]
            changes = await self.git.get_change_by_hash(commit.hash)
            if changes == "":
                logger.debug("Commit {} has no diff, skipping", commit.hash)
                continue
            chunks.append(
                Chunk(
                    language="",
                    digest=commit.hash,
                    filepath=commit.hash,
                    content=changes,
                    start_line=0,
                    end_line=0,
                    index=0,
                    score=scores[index],
                )
            )
        return chunks
