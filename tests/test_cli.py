from __future__ import annotations

import pytest
from typer.testing import CliRunner

from docembed.cli import app

runner = CliRunner()


@pytest.fixture
def docs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("DOCEMBED_DATABASE_URL", "DOCEMBED_DOCUMENTS_DIR", "DOCEMBED_GLOB_PATTERN"):
        monkeypatch.delenv(name, raising=False)
    directory = tmp_path / "docs"
    directory.mkdir()
    (directory / "a.toml").write_text('[section]\nkey = "value"\n', encoding="utf-8")
    (directory / "b.toml").write_text('[section]\nkey = "another_value"\n', encoding="utf-8")
    return directory


def test_load_prints_one_line_per_match(docs):
    result = runner.invoke(app, ["load", f"{docs}/*.toml"])

    assert result.exit_code == 0, result.output
    assert result.output.count("OK ") == 2
    assert "Loaded 2 of 2 matched files" in result.output


def test_load_defaults_to_configured_documents_dir(docs):
    result = runner.invoke(app, ["load", "--parallel"])

    assert result.exit_code == 0, result.output
    assert "Loaded 2 of 2 matched files" in result.output


def test_load_rejects_malformed_pattern(docs):
    result = runner.invoke(app, ["load", f"{docs}/[abc.toml"])

    assert result.exit_code == 1
    assert "Invalid glob pattern" in result.output


def test_embed_with_hash_provider(docs):
    result = runner.invoke(app, ["embed", f"{docs}/*.toml", "--provider", "hash"])

    assert result.exit_code == 0, result.output
    assert "embedded=2 dimension=64" in result.output


def test_embed_requires_api_key_for_openai(docs, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("DOCEMBED_OPENAI_API_KEY", raising=False)

    result = runner.invoke(app, ["embed", f"{docs}/*.toml"])

    assert result.exit_code != 0


def test_ingest_then_query_round_trip(docs, tmp_path):
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    ingest = runner.invoke(
        app, ["ingest", f"{docs}/*.toml", "--provider", "hash", "--db-url", db_url, "--collection", "toml"]
    )
    assert ingest.exit_code == 0, ingest.output
    assert "upserted=2" in ingest.output

    text = (docs / "a.toml").read_text(encoding="utf-8")
    query = runner.invoke(
        app, ["query", text, "--provider", "hash", "--db-url", db_url, "--collection", "toml", "--limit", "1"]
    )
    assert query.exit_code == 0, query.output
    assert f"1.0000 {docs / 'a.toml'}" in query.output


def test_query_on_empty_collection(docs, tmp_path):
    db_url = f"sqlite:///{tmp_path / 'empty.db'}"

    result = runner.invoke(app, ["query", "anything", "--provider", "hash", "--db-url", db_url])

    assert result.exit_code == 0, result.output
    assert "No matches" in result.output


@pytest.mark.parametrize("command", ["ingest", "query"])
def test_malformed_database_url_is_reported_without_traceback(docs, command):
    target = f"{docs}/*.toml" if command == "ingest" else "anything"

    result = runner.invoke(app, [command, target, "--provider", "hash", "--db-url", "not a url"])

    assert result.exit_code == 1
    assert "Error: Cannot open database" in result.output
    assert isinstance(result.exception, SystemExit)
