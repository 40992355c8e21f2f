# tests/test_cli.py

import json

from typer.testing import CliRunner

from cli.main import app

runner = CliRunner()


def _workspace(tmp_path):
    root = tmp_path / "project"
    root.mkdir()
    (root / "hello.py").write_text("def greet(name):\n    return f'hello {name}'\n")
    return root


def test_catalog_empty():
    result = runner.invoke(app, ["catalog"])
    assert result.exit_code == 0
    assert "Catalog is empty" in result.output


def test_index_then_catalog(tmp_path):
    root = _workspace(tmp_path)

    result = runner.invoke(app, ["index", str(root), "--no-semantic"])
    assert result.exit_code == 0, result.output
    assert "rebuilt" in result.output

    again = runner.invoke(app, ["index", str(root), "--no-semantic"])
    assert again.exit_code == 0
    assert "up to date" in again.output

    listed = runner.invoke(app, ["catalog", str(root)])
    assert listed.exit_code == 0
    assert "fts" in listed.output


def test_retrieve_json_with_nothing_enabled(tmp_path):
    root = _workspace(tmp_path)
    result = runner.invoke(
        app, ["retrieve", "greet", "--path", str(root), "--no-fts", "--no-semantic", "--json"]
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == []


def test_config_file_option(tmp_path):
    cfg = tmp_path / "custom.yml"
    cfg.write_text("retrieval:\n  top_n: 3\n")
    result = runner.invoke(app, ["--config", str(cfg), "catalog"])
    assert result.exit_code == 0
