# codectx/search/tfidf.py

from typing import List, Optional, Sequence

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity


class TfIdfEngine:
    """
    In-memory TF-IDF ranker over an arbitrary document set.

    Scores are the cosine similarity between the query's TF-IDF vector and each
    document's, returned in the order the documents were added. Nothing is
    persisted; build one engine per query session.
    """

    def __init__(self, ngram_range=(1, 1), sublinear_tf: bool = False):
        self.ngram_range = tuple(ngram_range)
        self.sublinear_tf = sublinear_tf
        self.documents: List[str] = []
        self.vectorizer: Optional[TfidfVectorizer] = None
        self.matrix = None  # sparse matrix [num_docs x vocab_size]

    def __len__(self) -> int:
        return len(self.documents)

    def add_documents(self, docs: Sequence[str]) -> None:
        """
        Tokenize and index ``docs``. Calling it again extends the corpus and
        refits, so idf weights always reflect every document in the session.
        """
        self.documents.extend(docs)
        if not self.documents:
            return

        vectorizer = TfidfVectorizer(
            ngram_range=self.ngram_range,
            norm="l2",
            use_idf=True,
            smooth_idf=True,
            sublinear_tf=self.sublinear_tf,
        )
        try:
            self.matrix = vectorizer.fit_transform(self.documents)
        except ValueError:
            # empty vocabulary: no document has a usable term
            self.vectorizer = None
            self.matrix = None
            return
        self.vectorizer = vectorizer

    def search(self, query: str) -> List[float]:
        """Return one score per document, in input order (not sorted)."""
        if self.vectorizer is None or self.matrix is None:
            return [0.0] * len(self.documents)

        q_vec = self.vectorizer.transform([query])  # 1 x vocab_size
        scores = cosine_similarity(q_vec, self.matrix).flatten()  # shape: [num_docs]
        return [float(s) for s in scores]
