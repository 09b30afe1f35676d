"""Tests for `coderag index`."""

from __future__ import annotations

from pathlib import Path

import yaml
from typer.testing import CliRunner

from coderag.cli.index import discover_files
from coderag.cli.main import app
from coderag.db.connection import open_database
from coderag.db.repository import Repository
from coderag.ingest.filetypes import should_index

runner = CliRunner()


def _projects(db_path: Path):
    conn = open_database(db_path)
    try:
        return Repository(conn).list_projects()
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# discover_files
# ---------------------------------------------------------------------------


def test_discover_files_filters_and_sorts(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "b.py").write_text("b = 2\n", encoding="utf-8")
    (tmp_path / "src" / "a.py").write_text("a = 1\n", encoding="utf-8")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "index.js").write_text("x\n", encoding="utf-8")
    (tmp_path / "package-lock.json").write_text("{}", encoding="utf-8")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG")

    files = discover_files(tmp_path)

    assert [f.path for f in files] == ["src/a.py", "src/b.py"]
    assert files[0].content == "a = 1\n"


def test_discover_files_never_enters_excluded_dirs(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "app.py").write_text("x = 1\n", encoding="utf-8")
    for excluded in ("node_modules/pkg", ".git/objects", ".venv/lib"):
        (tmp_path / excluded).mkdir(parents=True)
        (tmp_path / excluded / "mod.py").write_text("y = 2\n", encoding="utf-8")
    checked: list[str] = []

    def _record(path: str) -> bool:
        checked.append(path)
        return should_index(path)

    monkeypatch.setattr("coderag.cli.index.should_index", _record)

    assert [f.path for f in discover_files(tmp_path)] == ["app.py"]
    assert checked == ["app.py"]


def test_discover_files_skips_non_utf8(tmp_path: Path) -> None:
    (tmp_path / "good.txt").write_text("hello", encoding="utf-8")
    (tmp_path / "bad.txt").write_bytes(b"\xff\xfe\x00broken")

    assert [f.path for f in discover_files(tmp_path)] == ["good.txt"]


# ---------------------------------------------------------------------------
# index command
# ---------------------------------------------------------------------------


def test_index_creates_db_and_project(workspace: Path) -> None:
    result = runner.invoke(app, ["index", "shop"])

    assert result.exit_code == 0, result.output
    assert "Indexed 2 files into 2 chunks" in result.output
    projects = _projects(workspace / ".coderag.db")
    assert [(p.name, p.status, p.file_count) for p in projects] == [("shop", "ready", 2)]
    assert projects[0].id in result.output


def test_index_custom_name(workspace: Path) -> None:
    result = runner.invoke(app, ["index", "shop", "--name", "storefront"])

    assert result.exit_code == 0, result.output
    assert _projects(workspace / ".coderag.db")[0].name == "storefront"


def test_index_explicit_db(workspace: Path) -> None:
    db_path = workspace / "index.db"
    result = runner.invoke(app, ["index", "shop", "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert db_path.exists()
    assert not (workspace / ".coderag.db").exists()


def test_second_run_is_skipped(workspace: Path) -> None:
    runner.invoke(app, ["index", "shop"])
    result = runner.invoke(app, ["index", "shop"])

    assert result.exit_code == 0, result.output
    assert "indexed recently" in result.output


def test_force_reindexes(workspace: Path) -> None:
    runner.invoke(app, ["index", "shop"])
    (workspace / "shop" / "notes.txt").write_text("new notes\n", encoding="utf-8")

    result = runner.invoke(app, ["index", "shop", "--force"])

    assert result.exit_code == 0, result.output
    assert "Indexed 3 files" in result.output
    assert _projects(workspace / ".coderag.db")[0].file_count == 3


def test_append_adds_only_new_paths(workspace: Path) -> None:
    runner.invoke(app, ["index", "shop"])
    (workspace / "shop" / "notes.txt").write_text("new notes\n", encoding="utf-8")

    result = runner.invoke(app, ["index", "shop", "--append"])

    assert result.exit_code == 0, result.output
    assert "Indexed 1 files" in result.output
    assert "Skipped files: 2" in result.output
    assert _projects(workspace / ".coderag.db")[0].file_count == 3


def test_no_indexable_files(workspace: Path) -> None:
    (workspace / "empty").mkdir()
    result = runner.invoke(app, ["index", "empty"])

    assert result.exit_code == 1
    assert "No indexable files" in result.output


def test_missing_api_key(workspace: Path, monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY")
    result = runner.invoke(app, ["index", "shop"])

    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output
    assert not (workspace / ".coderag.db").exists()


def test_quota_exhausted_reports_error(workspace: Path) -> None:
    (workspace / "coderag.yaml").write_text(
        yaml.dump({"embedding": {"dimensions": 4, "daily_limit": 0}}), encoding="utf-8"
    )
    result = runner.invoke(app, ["index", "shop"])

    assert result.exit_code == 1
    assert "--force" in result.output
    assert _projects(workspace / ".coderag.db")[0].status == "error"


def test_invalid_config_is_user_error(workspace: Path) -> None:
    (workspace / "coderag.yaml").write_text(
        yaml.dump({"retrieval": {"top_k": 0}}), encoding="utf-8"
    )
    result = runner.invoke(app, ["index", "shop"])

    assert result.exit_code == 1
    assert "retrieval.top_k" in result.output


def test_path_must_exist(workspace: Path) -> None:
    result = runner.invoke(app, ["index", "nowhere"])
    assert result.exit_code != 0
