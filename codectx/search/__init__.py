"""Search engines and the fail-soft adapters around them"""

from .tfidf import TfIdfEngine
from .fts import FullTextSearchIndex
from .fulltext import FullTextSearchAdapter, build_fts_query
from .outcome import SearchOutcome
from .semantic import ChromaSemanticIndex, SemanticSearchAdapter

__all__ = [
    "TfIdfEngine",
    "FullTextSearchIndex",
    "FullTextSearchAdapter",
    "build_fts_query",
    "SearchOutcome",
    "ChromaSemanticIndex",
    "SemanticSearchAdapter",
]
