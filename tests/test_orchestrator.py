# tests/test_orchestrator.py

import asyncio
from pathlib import Path

import pytest

from codectx.catalog import GlobalCacheEntry, IndexCatalogStore
from codectx.embeddings import HashingEmbeddingsProvider
from codectx.errors import RetrievalCancelled, SourceControlFailure, StorageUnavailable
from codectx.retrieval import RetrievalOrchestrator, Workspace, deduplicate_array, deduplicate_chunks
from codectx.schema import Chunk, RetrieveOption
from codectx.scm.git import Commit, SourceControl


def _chunk(path, start, end, digest="d", content="x"):
    return Chunk(filepath=path, content=content, start_line=start, end_line=end, digest=digest)


class FakeFullText:
    def __init__(self, chunks=None, block=False):
        self.chunks = chunks or []
        self.block = block
        self.terms = []
        self.cancelled = False

    async def retrieve(self, term):
        self.terms.append(term)
        if self.block:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return list(self.chunks)


class FakeSemantic(FakeFullText):
    def artifact_id(self, provider):
        return f"codebase-{provider.id}"

    async def retrieve(self, term, embeddings_provider=None):
        return await super().retrieve(term)


class FakeGit(SourceControl):
    def __init__(self, fail=False):
        self.fail = fail

    async def get_history_commits(self):
        if self.fail:
            raise SourceControlFailure("git log exited with 128")
        return [Commit(hash="abcdef0123456789", message="fix login bug")]

    async def get_change_by_hash(self, hash):
        return "diff --git a/login.py b/login.py\n+fixed"


class BrokenCatalog:
    db_path = Path("/nowhere/catalog.sqlite")

    async def get_handle(self):
        raise StorageUnavailable(self.db_path, OSError("read-only file system"))

    async def lookup_global_cache(self, directory, branch, artifact_id):
        raise AssertionError("catalog should not be queried")


@pytest.fixture
def catalog(tmp_path):
    store = IndexCatalogStore(tmp_path / "catalog.sqlite")
    yield store
    store.close()


@pytest.fixture
def workspace(tmp_path):
    return Workspace(root=tmp_path / "repo", branch="main")


PROVIDER = HashingEmbeddingsProvider(dimensions=16)


# --------------------------------------------------------------------------------
# De-duplication
# --------------------------------------------------------------------------------

def test_deduplicate_array_keeps_first():
    items = [("a", 1), ("b", 2), ("a", 3), ("c", 4), ("b", 5)]
    result = deduplicate_array(items, lambda x, y: x[0] == y[0])
    assert result == [("a", 1), ("b", 2), ("c", 4)]
    assert deduplicate_array(result, lambda x, y: x[0] == y[0]) == result
    assert deduplicate_array([], lambda x, y: True) == []


def test_deduplicate_chunks_ignores_digest_and_content():
    chunks = [
        _chunk("a.py", 1, 10, digest="d1", content="first"),
        _chunk("a.py", 1, 10, digest="d2", content="second"),
        _chunk("a.py", 1, 11),
        _chunk("b.py", 1, 10),
    ]
    result = deduplicate_chunks(chunks)
    assert [(c.filepath, c.end_line) for c in result] == [("a.py", 10), ("a.py", 11), ("b.py", 10)]
    assert result[0].content == "first"


def test_deduplicate_chunks_is_idempotent():
    chunks = [
        _chunk("a.py", 1, 10),
        _chunk("b.py", 1, 10),
        _chunk("a.py", 1, 10, digest="d2"),
        _chunk("a.py", 2, 10),
        _chunk("b.py", 1, 10, content="y"),
        _chunk("abc123", 0, 0, digest="abc123"),
        _chunk("abc123", 0, 0, digest="abc123"),
    ]
    once = deduplicate_chunks(chunks)
    assert deduplicate_chunks(once) == once
    assert len(once) == 4
    assert deduplicate_chunks([]) == []


# --------------------------------------------------------------------------------
# Fan-out
# --------------------------------------------------------------------------------

def test_results_concatenate_in_strategy_order_and_dedup(catalog, workspace):
    full_text = FakeFullText([_chunk("a.py", 1, 10), _chunk("b.py", 5, 9)])
    semantic = FakeSemantic([_chunk("b.py", 5, 9, digest="other"), _chunk("c.py", 1, 3)])
    workspace.git = FakeGit()
    orchestrator = RetrievalOrchestrator(catalog, full_text, semantic)

    chunks = asyncio.run(orchestrator.retrieve_chunks(
        "login bug", workspace, PROVIDER,
        RetrieveOption(with_commit_message_search=True),
    ))

    assert [(c.filepath, c.start_line) for c in chunks] == [
        ("a.py", 1), ("b.py", 5), ("c.py", 1), ("abcdef0123456789", 0),
    ]
    # the full-text copy came first and wins
    assert chunks[1].digest == "d"


def test_terms_carry_tags_filters_and_cap(catalog, workspace):
    full_text = FakeFullText()
    semantic = FakeSemantic()
    orchestrator = RetrievalOrchestrator(catalog, full_text, semantic)

    asyncio.run(orchestrator.retrieve_chunks(
        "login", workspace, PROVIDER,
        RetrieveOption(filter_directory="src", filter_language="python"),
    ))

    (fts_term,) = full_text.terms
    (semantic_term,) = semantic.terms
    assert [t.artifact_id for t in fts_term.tags] == ["fts"]
    assert [t.artifact_id for t in semantic_term.tags] == ["codebase-hashing-16"]
    for term in (fts_term, semantic_term):
        assert term.query == "login"
        assert term.n == 10
        assert term.filter_directory == "src"
        assert term.filter_language == "python"
        assert term.tags[0].directory == workspace.directory
        assert term.tags[0].branch == "main"


def test_disabled_strategies_are_not_called(catalog, workspace):
    full_text = FakeFullText([_chunk("a.py", 1, 2)])
    semantic = FakeSemantic([_chunk("b.py", 1, 2)])
    orchestrator = RetrievalOrchestrator(catalog, full_text, semantic)

    chunks = asyncio.run(orchestrator.retrieve_chunks(
        "login", workspace, PROVIDER,
        RetrieveOption(with_full_text_search=False, with_semantic_search=False),
    ))
    assert chunks == []
    assert full_text.terms == [] and semantic.terms == []


def test_commit_search_needs_history(catalog, workspace):
    orchestrator = RetrievalOrchestrator(catalog, FakeFullText(), FakeSemantic())
    options = RetrieveOption(with_commit_message_search=True)
    assert asyncio.run(orchestrator.retrieve_chunks("login", workspace, PROVIDER, options)) == []


def test_commit_failure_is_isolated(catalog, workspace):
    full_text = FakeFullText([_chunk("a.py", 1, 10)])
    workspace.git = FakeGit(fail=True)
    orchestrator = RetrievalOrchestrator(catalog, full_text, None)

    chunks = asyncio.run(orchestrator.retrieve_chunks(
        "login", workspace, PROVIDER, RetrieveOption(with_commit_message_search=True),
    ))
    assert [c.filepath for c in chunks] == ["a.py"]


def test_built_index_is_queried(catalog, workspace):
    full_text = FakeFullText([_chunk("a.py", 1, 10)])
    orchestrator = RetrievalOrchestrator(catalog, full_text, None)

    async def scenario():
        await catalog.record_global_cache(GlobalCacheEntry(
            cache_key="k", directory=workspace.directory, branch="main", artifact_id="fts",
        ))
        return await orchestrator.retrieve_chunks("login", workspace, PROVIDER)

    assert len(asyncio.run(scenario())) == 1


def test_unavailable_catalog_aborts(workspace):
    full_text = FakeFullText([_chunk("a.py", 1, 10)])
    orchestrator = RetrievalOrchestrator(BrokenCatalog(), full_text, None)

    with pytest.raises(StorageUnavailable):
        asyncio.run(orchestrator.retrieve_chunks("login", workspace, PROVIDER))
    assert full_text.terms == []


# --------------------------------------------------------------------------------
# Cancellation
# --------------------------------------------------------------------------------

def test_cancelled_before_start(catalog, workspace):
    full_text = FakeFullText([_chunk("a.py", 1, 10)])
    orchestrator = RetrievalOrchestrator(catalog, full_text, None)

    async def scenario():
        event = asyncio.Event()
        event.set()
        return await orchestrator.retrieve_chunks("login", workspace, PROVIDER, cancel_event=event)

    with pytest.raises(RetrievalCancelled):
        asyncio.run(scenario())
    assert full_text.terms == []


def test_cancelled_while_running(catalog, workspace):
    full_text = FakeFullText(block=True)
    orchestrator = RetrievalOrchestrator(catalog, full_text, None)

    async def scenario():
        event = asyncio.Event()
        task = asyncio.ensure_future(
            orchestrator.retrieve_chunks("login", workspace, PROVIDER, cancel_event=event)
        )
        while not full_text.terms:
            await asyncio.sleep(0.01)
        event.set()
        return await task

    with pytest.raises(RetrievalCancelled):
        asyncio.run(scenario())
    assert full_text.cancelled


def test_unset_cancel_event_does_not_interfere(catalog, workspace):
    orchestrator = RetrievalOrchestrator(catalog, FakeFullText([_chunk("a.py", 1, 10)]), None)

    async def scenario():
        return await orchestrator.retrieve_chunks(
            "login", workspace, PROVIDER, cancel_event=asyncio.Event()
        )

    assert [c.filepath for c in asyncio.run(scenario())] == ["a.py"]


# --------------------------------------------------------------------------------
# Context items
# --------------------------------------------------------------------------------

def test_retrieve_returns_context_items(catalog, workspace):
    full_text = FakeFullText([_chunk("src/auth/login.py", 3, 12, content="def login(): ...")])
    workspace.git = FakeGit()
    orchestrator = RetrievalOrchestrator(catalog, full_text, None)

    items = asyncio.run(orchestrator.retrieve(
        "login bug", workspace, PROVIDER, RetrieveOption(with_commit_message_search=True),
    ))

    assert [i.name for i in items] == ["login.py (3-12)", "commit abcdef01"]
    assert items[0].path == items[0].description == "src/auth/login.py"
    assert items[0].range.start.line == 3 and items[0].range.end.line == 12
    assert items[1].content.startswith("diff --git")


def test_broken_vector_store_does_not_abort_retrieval(codectx_home, workspace):
    from codectx.config import get_settings

    codectx_home.mkdir(parents=True, exist_ok=True)
    (codectx_home / "embeddings").write_text("not a directory")
    settings = get_settings()
    orchestrator = RetrievalOrchestrator.from_settings(settings)
    workspace.git = FakeGit()

    chunks = asyncio.run(orchestrator.retrieve_chunks(
        "login bug", workspace, PROVIDER,
        RetrieveOption(with_semantic_search=True, with_commit_message_search=True),
    ))

    assert [c.filepath for c in chunks] == ["abcdef0123456789"]
    orchestrator.catalog.close()
