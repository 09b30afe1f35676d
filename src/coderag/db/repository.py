"""Repository pattern for all coderag relational-store operations.

Single interface for: projects, files, chunks, conversations, messages.
The vector index lives in the same database but is owned by
coderag.db.vectors.VectorStore; the key-value cache by coderag.db.cache.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Sequence

from coderag.db.models import (
    Chunk,
    Conversation,
    FileRecord,
    HydratedChunk,
    Message,
    Project,
    SourceReference,
)

# Upper bound on statements per transaction for batched writes.
DEFAULT_BATCH_SIZE = 100

# Keep IN (...) lists well below SQLITE_MAX_VARIABLE_NUMBER on old builds.
_MAX_IN_PARAMS = 500


class Repository:
    """Data access layer for all coderag database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see coderag.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def add_project(self, project: Project) -> None:
        """Insert a new project row."""
        self._conn.execute(
            """
            INSERT INTO projects (id, name, path, status, file_count, last_indexed_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, COALESCE(?, CAST(strftime('%s', 'now') AS INTEGER)))
            """,
            (
                project.id,
                project.name,
                project.path,
                project.status,
                project.file_count,
                project.last_indexed_at,
                project.created_at,
            ),
        )
        self._conn.commit()

    def get_project(self, project_id: str) -> Project | None:
        row = self._conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = ?", (project_id,)
        ).fetchone()
        return _row_to_project(row) if row else None

    def get_project_by_path(self, path: str) -> Project | None:
        row = self._conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE path = ?", (path,)
        ).fetchone()
        return _row_to_project(row) if row else None

    def list_projects(self) -> list[Project]:
        """Return all projects, newest first."""
        rows = self._conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects ORDER BY created_at DESC, rowid DESC"
        ).fetchall()
        return [_row_to_project(r) for r in rows]

    def claim_project(
        self,
        project_id: str,
        *,
        takeover: bool = False,
        stale_before: int | None = None,
    ) -> bool:
        """Atomically move a project into ``indexing``.

        A single conditional UPDATE replaces the read-then-act check, so two
        concurrent runs cannot both claim the same project.

        Args:
            project_id: Project to claim.
            takeover: Also claim a project already in ``indexing`` (force mode;
                the recovery path for a run that died mid-index).
            stale_before: When given, only claim if the project was never
                indexed or was last indexed before this Unix timestamp.

        Returns:
            True if this caller now owns the project, False otherwise.
        """
        sql = "UPDATE projects SET status = 'indexing' WHERE id = ?"
        params: list[object] = [project_id]
        if not takeover:
            sql += " AND status != 'indexing'"
        if stale_before is not None:
            sql += " AND (last_indexed_at IS NULL OR last_indexed_at < ?)"
            params.append(stale_before)
        cur = self._conn.execute(sql, params)
        self._conn.commit()
        return cur.rowcount == 1

    def clear_project_content(self, project_id: str) -> None:
        """Delete every file and chunk of a project and reset its file count.

        Vectors are NOT touched here; delete them first through the
        VectorStore (it resolves chunk ids from this table).
        """
        with self._conn:
            self._conn.execute("DELETE FROM chunks WHERE project_id = ?", (project_id,))
            self._conn.execute("DELETE FROM files WHERE project_id = ?", (project_id,))
            self._conn.execute(
                "UPDATE projects SET file_count = 0 WHERE id = ?", (project_id,)
            )

    def set_project_status(self, project_id: str, status: str) -> None:
        self._conn.execute(
            "UPDATE projects SET status = ? WHERE id = ?", (status, project_id)
        )
        self._conn.commit()

    def finish_project(
        self,
        project_id: str,
        *,
        status: str,
        file_count: int,
        indexed_at: int,
        increment: bool = False,
    ) -> None:
        """Write the terminal status, file count and last-indexed time.

        Args:
            increment: Add *file_count* to the stored count (append mode)
                instead of replacing it (full index).
        """
        count_expr = "file_count + ?" if increment else "?"
        self._conn.execute(
            f"""
            UPDATE projects
            SET status = ?, file_count = {count_expr}, last_indexed_at = ?
            WHERE id = ?
            """,
            (status, file_count, indexed_at, project_id),
        )
        self._conn.commit()

    def delete_project(self, project_id: str) -> None:
        """Delete a project row; files, chunks and conversations cascade."""
        self._conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        self._conn.commit()

    def project_stats(self, project_id: str) -> dict[str, int]:
        """Return live ``{"files": n, "chunks": n}`` row counts for a project."""
        row = self._conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM files WHERE project_id = ?) AS files,
                (SELECT COUNT(*) FROM chunks WHERE project_id = ?) AS chunks
            """,
            (project_id, project_id),
        ).fetchone()
        return {"files": row["files"], "chunks": row["chunks"]}

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def add_files(
        self, files: Sequence[FileRecord], batch_size: int = DEFAULT_BATCH_SIZE
    ) -> None:
        """Insert file rows, one transaction per *batch_size* rows."""
        for batch in _batched(files, batch_size):
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO files (id, project_id, relative_path, content_hash, chunk_count, indexed_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            f.id,
                            f.project_id,
                            f.relative_path,
                            f.content_hash,
                            f.chunk_count,
                            f.indexed_at,
                        )
                        for f in batch
                    ],
                )

    def list_files(self, project_id: str) -> list[FileRecord]:
        """Return the files of a project ordered by relative path."""
        rows = self._conn.execute(
            """
            SELECT id, project_id, relative_path, content_hash, chunk_count, indexed_at
            FROM files WHERE project_id = ? ORDER BY relative_path ASC
            """,
            (project_id,),
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def list_file_paths(self, project_id: str) -> set[str]:
        rows = self._conn.execute(
            "SELECT relative_path FROM files WHERE project_id = ?", (project_id,)
        ).fetchall()
        return {r["relative_path"] for r in rows}

    def get_file_by_path(self, project_id: str, relative_path: str) -> FileRecord | None:
        row = self._conn.execute(
            """
            SELECT id, project_id, relative_path, content_hash, chunk_count, indexed_at
            FROM files WHERE project_id = ? AND relative_path = ?
            """,
            (project_id, relative_path),
        ).fetchone()
        return _row_to_file(row) if row else None

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunks(
        self, chunks: Sequence[Chunk], batch_size: int = DEFAULT_BATCH_SIZE
    ) -> None:
        """Insert chunk rows, one transaction per *batch_size* rows."""
        for batch in _batched(chunks, batch_size):
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO chunks (id, file_id, project_id, content, start_line, end_line, chunk_type)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            c.id,
                            c.file_id,
                            c.project_id,
                            c.content,
                            c.start_line,
                            c.end_line,
                            c.chunk_type,
                        )
                        for c in batch
                    ],
                )

    def list_chunk_ids(self, project_id: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT id FROM chunks WHERE project_id = ?", (project_id,)
        ).fetchall()
        return [r["id"] for r in rows]

    def list_file_chunks(self, file_id: str) -> list[Chunk]:
        """Return the chunks of one file ordered by start line."""
        rows = self._conn.execute(
            """
            SELECT id, file_id, project_id, content, start_line, end_line, chunk_type
            FROM chunks WHERE file_id = ? ORDER BY start_line ASC, end_line ASC
            """,
            (file_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def hydrate_chunks(self, chunk_ids: Sequence[str]) -> dict[str, HydratedChunk]:
        """Fetch chunks joined with file path and project name, keyed by id.

        One query per 500 ids (a single query for any realistic top-K); ids
        with no live row are simply absent from the result.
        """
        result: dict[str, HydratedChunk] = {}
        for batch in _batched(list(dict.fromkeys(chunk_ids)), _MAX_IN_PARAMS):
            placeholders = ",".join("?" * len(batch))
            rows = self._conn.execute(
                f"""
                SELECT c.id, c.project_id, c.content, c.start_line, c.end_line,
                       c.chunk_type, f.relative_path, p.name AS project_name
                FROM chunks c
                JOIN files f ON c.file_id = f.id
                JOIN projects p ON c.project_id = p.id
                WHERE c.id IN ({placeholders})
                """,
                batch,
            ).fetchall()
            for r in rows:
                result[r["id"]] = HydratedChunk(
                    id=r["id"],
                    project_id=r["project_id"],
                    content=r["content"],
                    start_line=r["start_line"],
                    end_line=r["end_line"],
                    chunk_type=r["chunk_type"],
                    relative_path=r["relative_path"],
                    project_name=r["project_name"],
                )
        return result

    # ------------------------------------------------------------------
    # Conversations + messages
    # ------------------------------------------------------------------

    def add_conversation(self, conversation: Conversation) -> None:
        self._conn.execute(
            """
            INSERT INTO conversations (id, project_id, title, message_count, created_at)
            VALUES (?, ?, ?, ?, COALESCE(?, CAST(strftime('%s', 'now') AS INTEGER)))
            """,
            (
                conversation.id,
                conversation.project_id,
                conversation.title,
                conversation.message_count,
                conversation.created_at,
            ),
        )
        self._conn.commit()

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        row = self._conn.execute(
            """
            SELECT id, project_id, title, message_count, created_at
            FROM conversations WHERE id = ?
            """,
            (conversation_id,),
        ).fetchone()
        if row is None:
            return None
        return Conversation(
            id=row["id"],
            project_id=row["project_id"],
            title=row["title"],
            message_count=row["message_count"],
            created_at=row["created_at"],
        )

    def recent_messages(self, conversation_id: str, limit: int = 10) -> list[Message]:
        """Return the last *limit* messages of a conversation, oldest first."""
        rows = self._conn.execute(
            """
            SELECT * FROM (
                SELECT rowid AS seq, id, conversation_id, role, content, sources, created_at
                FROM messages WHERE conversation_id = ?
                ORDER BY created_at DESC, seq DESC
                LIMIT ?
            ) ORDER BY created_at ASC, seq ASC
            """,
            (conversation_id, limit),
        ).fetchall()
        return [_row_to_message(r) for r in rows]

    def record_exchange(self, user: Message, assistant: Message) -> None:
        """Persist a user/assistant message pair and bump the message count.

        All three statements commit together or not at all.
        """
        with self._conn:
            for msg in (user, assistant):
                self._conn.execute(
                    """
                    INSERT INTO messages (id, conversation_id, role, content, sources, created_at)
                    VALUES (?, ?, ?, ?, ?, COALESCE(?, CAST(strftime('%s', 'now') AS INTEGER)))
                    """,
                    (
                        msg.id,
                        msg.conversation_id,
                        msg.role,
                        msg.content,
                        msg.sources_json(),
                        msg.created_at,
                    ),
                )
            self._conn.execute(
                "UPDATE conversations SET message_count = message_count + 2 WHERE id = ?",
                (user.conversation_id,),
            )

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def counts(self) -> dict[str, int]:
        """Return global row counts for projects, files, chunks, conversations."""
        row = self._conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM projects) AS projects,
                (SELECT COUNT(*) FROM files) AS files,
                (SELECT COUNT(*) FROM chunks) AS chunks,
                (SELECT COUNT(*) FROM conversations) AS conversations
            """
        ).fetchone()
        return {k: row[k] for k in ("projects", "files", "chunks", "conversations")}


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

_PROJECT_COLUMNS = "id, name, path, status, file_count, last_indexed_at, created_at"


def _batched(items: Sequence, size: int) -> Iterable[Sequence]:
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        status=row["status"],
        file_count=row["file_count"],
        last_indexed_at=row["last_indexed_at"],
        created_at=row["created_at"],
    )


def _row_to_file(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        id=row["id"],
        project_id=row["project_id"],
        relative_path=row["relative_path"],
        content_hash=row["content_hash"],
        chunk_count=row["chunk_count"],
        indexed_at=row["indexed_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        file_id=row["file_id"],
        project_id=row["project_id"],
        content=row["content"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        chunk_type=row["chunk_type"],
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    sources = [SourceReference(**s) for s in json.loads(row["sources"])] if row["sources"] else []
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        sources=sources,
        created_at=row["created_at"],
    )
