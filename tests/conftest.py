# tests/conftest.py

import pytest

from codectx.config import get_settings


@pytest.fixture(autouse=True)
def codectx_home(tmp_path, monkeypatch):
    """
    Point CODECTX_HOME at a temp dir and run every test from there, so no test
    touches ~/.codectx or picks up a stray .codectx.yml.
    """
    home = tmp_path / "codectx-home"
    monkeypatch.setenv("CODECTX_HOME", str(home))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield home
    get_settings.cache_clear()
