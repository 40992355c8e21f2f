# tests/test_semantic.py

import asyncio

import pytest

from codectx.embeddings import HashingEmbeddingsProvider, get_embeddings_provider
from codectx.errors import EngineFailure
from codectx.schema import Chunk, IndexTag, RetrievalQueryTerm
from codectx.search import ChromaSemanticIndex, SemanticSearchAdapter

TAG = IndexTag(directory="/repo", branch="main", artifact_id="codebase-hashing-64")
OTHER_TAG = IndexTag(directory="/repo", branch="dev", artifact_id="codebase-hashing-64")


def _chunk(path, content, language="python", index=0):
    return Chunk(filepath=path, language=language, content=content,
                 start_line=1, end_line=content.count("\n") + 1, index=index, digest="d")


@pytest.fixture
def provider():
    return HashingEmbeddingsProvider(dimensions=64)


@pytest.fixture
def index(tmp_path, provider):
    semantic = ChromaSemanticIndex(tmp_path / "embeddings", collection_name="codebase")
    asyncio.run(semantic.replace_tag(TAG, [
        _chunk("src/auth/login.py", "def login(user, password):\n    check password user"),
        _chunk("src/render.py", "def render(template):\n    return template view"),
        _chunk("docs/login.md", "login with user and password", language="markdown"),
    ], provider))
    asyncio.run(semantic.replace_tag(OTHER_TAG, [
        _chunk("src/auth/token.py", "def refresh(token):\n    rotate token"),
    ], provider))
    return semantic


def test_artifact_id_is_per_provider(index, provider):
    assert index.artifact_id(provider) == "codebase-hashing-64"
    assert index.artifact_id(HashingEmbeddingsProvider(dimensions=32)) == "codebase-hashing-32"


def test_query_ranks_by_similarity(index, provider):
    chunks = asyncio.run(index.query("login password user", 2, [TAG], provider))
    assert len(chunks) == 2
    assert {c.filepath for c in chunks} == {"src/auth/login.py", "docs/login.md"}
    assert chunks[0].score >= chunks[1].score


def test_query_is_scoped_to_tags(index, provider):
    chunks = asyncio.run(index.query("token", 5, [OTHER_TAG], provider))
    assert [c.filepath for c in chunks] == ["src/auth/token.py"]
    assert asyncio.run(index.query("token", 5, [], provider)) == []


def test_language_and_directory_filters(index, provider):
    by_lang = asyncio.run(index.query("login", 5, [TAG], provider, filter_language="markdown"))
    assert [c.filepath for c in by_lang] == ["docs/login.md"]

    by_dir = asyncio.run(index.query("login", 5, [TAG], provider, filter_directory="src/auth"))
    assert [c.filepath for c in by_dir] == ["src/auth/login.py"]


def test_replace_tag_overwrites(index, provider):
    asyncio.run(index.replace_tag(TAG, [_chunk("new.py", "def fresh(): pass")], provider))
    chunks = asyncio.run(index.query("login password", 5, [TAG], provider))
    assert [c.filepath for c in chunks] == ["new.py"]


class FailingIndex:
    def artifact_id(self, provider):
        return "broken"

    async def query(self, *args):
        raise RuntimeError("collection missing")


def test_adapter_is_fail_soft(provider):
    adapter = SemanticSearchAdapter(FailingIndex())
    term = RetrievalQueryTerm(query="login", tags=[TAG], n=5)

    assert asyncio.run(adapter.retrieve(term, provider)) == []
    outcome = asyncio.run(adapter.search(term, provider))
    assert isinstance(outcome.failure, EngineFailure)
    assert outcome.failure.engine == "semantic"


def test_adapter_skips_blank_query(index, provider):
    adapter = SemanticSearchAdapter(index)
    term = RetrievalQueryTerm(query="  ", tags=[TAG], n=5)
    assert asyncio.run(adapter.retrieve(term, provider)) == []


def test_hashing_provider_is_deterministic(provider):
    first, second = provider.embed(["same text", "same text"])
    assert first == second
    assert len(first) == 64
    assert provider.embed([]) == []


def test_provider_selection(monkeypatch):
    from codectx.config import get_settings

    assert get_embeddings_provider().id == "hashing-384"
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    get_settings.cache_clear()
    assert get_embeddings_provider().id == "openai-text-embedding-3-small"
