"""Tests for database schema initialization."""

from __future__ import annotations

from coderag.db.schema import CURRENT_VERSION, TABLES, initialize


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def test_all_tables_exist(tmp_db):
    names = {
        r["name"]
        for r in tmp_db.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    }
    assert set(TABLES) <= names


def test_projects_columns(tmp_db):
    assert _table_columns(tmp_db, "projects") == {
        "id", "name", "path", "status", "file_count", "last_indexed_at", "created_at",
    }


def test_files_columns(tmp_db):
    assert _table_columns(tmp_db, "files") == {
        "id", "project_id", "relative_path", "content_hash", "chunk_count", "indexed_at",
    }


def test_chunks_columns(tmp_db):
    assert _table_columns(tmp_db, "chunks") == {
        "id", "file_id", "project_id", "content", "start_line", "end_line", "chunk_type",
    }


def test_messages_columns(tmp_db):
    assert _table_columns(tmp_db, "messages") == {
        "id", "conversation_id", "role", "content", "sources", "created_at",
    }


def test_schema_version_recorded(tmp_db):
    version = tmp_db.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_initialize_idempotent(tmp_db):
    initialize(tmp_db)
    rows = tmp_db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert rows == CURRENT_VERSION


def test_default_project_status_pending(tmp_db):
    tmp_db.execute("INSERT INTO projects (id, name, path) VALUES ('p', 'p', '/p')")
    row = tmp_db.execute("SELECT status, created_at FROM projects").fetchone()
    assert row["status"] == "pending"
    assert row["created_at"] > 0
