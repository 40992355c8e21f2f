# codectx/embeddings.py

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
import openai
from sklearn.feature_extraction.text import HashingVectorizer

from codectx.config import Settings, get_settings

# --------------------------------------------------------------------------------
# Embeddings providers consumed by the semantic index. The vector math itself is
# the provider's business; codectx only asks for one vector per text.
# --------------------------------------------------------------------------------


class EmbeddingsProvider(ABC):
    id: str = "base"

    @abstractmethod
    def embed(self, texts: List[str]) -> List[List[float]]:
        """Return one embedding per text, in order."""


class HashingEmbeddingsProvider(EmbeddingsProvider):
    """
    Offline, deterministic provider: l2-normalised hashed bag of words.
    Good enough for lexical-ish similarity when no API key is configured.
    """

    def __init__(self, dimensions: int = 384):
        self.dimensions = dimensions
        self.id = f"hashing-{dimensions}"
        self._vectorizer = HashingVectorizer(
            n_features=dimensions,
            alternate_sign=False,
            norm="l2",
            token_pattern=r"(?u)\b\w+\b",
        )

    def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        matrix = self._vectorizer.transform(texts).toarray()
        return [row.astype(np.float32).tolist() for row in matrix]


class OpenAIEmbeddingsProvider(EmbeddingsProvider):
    def __init__(self, model: str = "text-embedding-3-small", api_key: Optional[str] = None,
                 batch_size: int = 64):
        self.model = model
        self.id = f"openai-{model}"
        self.batch_size = batch_size
        self._client = openai.OpenAI(api_key=api_key or None)

    def embed(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            resp = self._client.embeddings.create(model=self.model, input=batch)
            vectors.extend(item.embedding for item in resp.data)
        return vectors


def get_embeddings_provider(settings: Optional[Settings] = None) -> EmbeddingsProvider:
    settings = settings or get_settings()
    if settings.openai_api_key:
        return OpenAIEmbeddingsProvider(
            model=settings.retrieval_option("embeddings", "model"),
            api_key=settings.openai_api_key,
        )
    return HashingEmbeddingsProvider(
        dimensions=settings.retrieval_option("embeddings", "dimensions"),
    )
