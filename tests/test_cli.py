"""Tests for the vault-search command line."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from conftest import DATABASE_ARTICLES, VocabProvider

from vault_search import cli
from vault_search.config import get_settings

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every command in a temp dir with a vocab provider and fresh settings."""
    monkeypatch.chdir(tmp_path)
    for var in ("VAULT_SEARCH_DATABASE_URL", "VAULT_SEARCH_STORE_BACKEND"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("VAULT_SEARCH_LOCAL_DATABASE_PATH", str(tmp_path / "local.db"))
    monkeypatch.setattr(cli, "build_provider", lambda settings: VocabProvider())
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    path = tmp_path / "corpus.json"
    path.write_text(
        json.dumps(
            [
                {"slug": a.slug, "title": a.title, "folder": a.folder, "tags": list(a.tags), "body": a.body}
                for a in DATABASE_ARTICLES
            ]
        )
    )
    return path


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, dict]:
    code = cli.main(list(argv))
    out = capsys.readouterr().out
    return code, (json.loads(out) if out.strip() else {})


class TestIndexCommand:
    def test_index_corpus(self, capsys, corpus: Path):
        code, report = _run(capsys, "index", "--corpus", str(corpus))
        assert code == 0
        assert report["indexed"] == 3
        assert report["failed"] == 0

    def test_second_run_is_incremental(self, capsys, corpus: Path):
        _run(capsys, "index", "--corpus", str(corpus))
        code, report = _run(capsys, "index", "--corpus", str(corpus))
        assert code == 0
        assert report["indexed"] == 0
        assert report["skipped"] == 3

    def test_force(self, capsys, corpus: Path):
        _run(capsys, "index", "--corpus", str(corpus))
        _, report = _run(capsys, "index", "--corpus", str(corpus), "--force")
        assert report["indexed"] == 3

    def test_index_markdown_dir(self, capsys, workspace: Path):
        content = workspace / "content" / "databases"
        content.mkdir(parents=True)
        (content / "postgres.md").write_text("---\ntitle: PostgreSQL\n---\nA relational SQL database.\n")
        code, report = _run(capsys, "index", "--content-dir", str(workspace / "content"))
        assert code == 0
        assert report["indexed"] == 1

    def test_missing_content_dir(self, capsys, workspace: Path):
        code, _ = _run(capsys, "index", "--content-dir", str(workspace / "nope"))
        assert code == 1

    def test_partial_failure_still_exits_zero(self, capsys, tmp_path: Path):
        path = tmp_path / "dupes.json"
        path.write_text(json.dumps([{"slug": "a", "body": "sql"}, {"slug": "a", "body": "json"}]))
        code, report = _run(capsys, "index", "--corpus", str(path))
        assert code == 0
        assert report["failed"] == 1
        assert report["failures"][0]["slug"] == "a"

    def test_provider_mismatch_exits_one(self, capsys, corpus: Path, monkeypatch: pytest.MonkeyPatch):
        _run(capsys, "index", "--corpus", str(corpus))
        monkeypatch.setattr(cli, "build_provider", lambda settings: VocabProvider("other"))
        code, _ = _run(capsys, "index", "--corpus", str(corpus))
        assert code == 1

    def test_rebuild_switches_provider(self, capsys, corpus: Path, monkeypatch: pytest.MonkeyPatch):
        _run(capsys, "index", "--corpus", str(corpus))
        monkeypatch.setattr(cli, "build_provider", lambda settings: VocabProvider("other"))
        code, report = _run(capsys, "index", "--corpus", str(corpus), "--rebuild")
        assert code == 0
        assert report["indexed"] == 3

    def test_no_prune(self, capsys, corpus: Path, tmp_path: Path):
        _run(capsys, "index", "--corpus", str(corpus))
        smaller = tmp_path / "smaller.json"
        smaller.write_text(json.dumps([{"slug": "databases/postgres", "body": "sql"}]))
        _, report = _run(capsys, "index", "--corpus", str(smaller), "--no-prune")
        assert report["pruned"] == 0
        _, report = _run(capsys, "index", "--corpus", str(smaller))
        assert report["pruned"] == 2

    def test_unreachable_store_exits_one(self, capsys, corpus: Path, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("VAULT_SEARCH_LOCAL_DATABASE_PATH", str(tmp_path / "no" / "such" / "x.db"))
        get_settings.cache_clear()
        code, _ = _run(capsys, "index", "--corpus", str(corpus))
        assert code == 1

    def test_usearch_backend(self, capsys, corpus: Path, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("VAULT_SEARCH_STORE_BACKEND", "usearch")
        monkeypatch.setenv("VAULT_SEARCH_INDEX_DIR", str(tmp_path / "idx"))
        get_settings.cache_clear()
        code, _ = _run(capsys, "index", "--corpus", str(corpus))
        assert code == 0
        assert (tmp_path / "idx" / "search_meta.json").exists()
        _, result = _run(capsys, "search", "relational SQL database", "--limit", "1")
        assert result["results"][0]["slug"] == "databases/postgres"


class TestSearchCommand:
    def test_search(self, capsys, corpus: Path):
        _run(capsys, "index", "--corpus", str(corpus))
        code, result = _run(capsys, "search", "relational SQL database", "--limit", "2")
        assert code == 0
        assert result["count"] == 2
        assert [r["slug"] for r in result["results"]] == ["databases/postgres", "databases/mongodb"]
        assert "excerpt" in result["results"][0]

    def test_search_folder(self, capsys, corpus: Path):
        _run(capsys, "index", "--corpus", str(corpus))
        _, result = _run(capsys, "search", "database", "--folder", "caching")
        assert [r["slug"] for r in result["results"]] == ["caching/redis"]

    def test_bad_limit(self, capsys, corpus: Path):
        _run(capsys, "index", "--corpus", str(corpus))
        code, _ = _run(capsys, "search", "database", "--limit", "500")
        assert code == 1


class TestParser:
    def test_requires_command(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_source_flags_exclusive(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["index", "--corpus", "a.json", "--content-dir", "c"])

    def test_provider_choices(self):
        args = cli.build_parser().parse_args(["index", "--provider", "gemini", "--no-prune"])
        assert args.provider == "gemini"
        assert args.prune is False
