"""Vector index on sqlite-vec: per-model vec0 tables and the VectorStore manager.

Each embedding model gets its own ``vec_chunks_<slug>`` table keyed by chunk
id. Filterable metadata (project_id, file_type) lives in vec0 metadata
columns; display metadata (file_path, line range) in auxiliary columns.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass

from coderag.db.repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

# sqlite-vec refuses KNN queries with k above this.
MAX_TOP_K = 4096

_FILTER_COLUMNS = ("project_id", "file_type")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"""
            CREATE VIRTUAL TABLE {table} USING vec0(
                chunk_id text primary key,
                embedding float[{dimensions}] distance_metric=cosine,
                project_id text,
                file_type text,
                +file_path text,
                +start_line integer,
                +end_line integer
            )
            """
        )
        conn.commit()

    return table


@dataclass
class VectorMetadata:
    """Denormalised chunk metadata stored next to each vector."""

    project_id: str
    file_path: str
    file_type: str
    start_line: int
    end_line: int


@dataclass
class VectorRecord:
    id: str  # chunk id
    values: list[float]
    metadata: VectorMetadata


@dataclass
class VectorMatch:
    id: str
    score: float  # cosine similarity, higher is closer
    metadata: VectorMetadata


@dataclass
class UpsertResult:
    inserted: int = 0
    errors: int = 0


class VectorStore:
    """Batched upsert / filtered query / project delete against one vec table.

    Args:
        repo: Repository over the same connection; used to resolve chunk ids
            when deleting a project's vectors.
        table: Vec table name (see ensure_vec_table()).
        batch_size: Records per upsert/delete batch.
    """

    def __init__(
        self, repo: Repository, table: str, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._repo = repo
        self._conn = repo.conn
        self.table = table
        self.batch_size = batch_size

    @classmethod
    def for_model(
        cls,
        repo: Repository,
        model: str,
        dimensions: int,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> VectorStore:
        """Open (creating if needed) the vec table for an embedding model."""
        table = ensure_vec_table(repo.conn, model_to_slug(model), dimensions)
        return cls(repo, table, batch_size=batch_size)

    # ------------------------------------------------------------------
    # Upsert
    # ------------------------------------------------------------------

    def upsert(self, records: Sequence[VectorRecord]) -> UpsertResult:
        """Write *records* in batches; a failing batch is counted, not raised.

        Re-upserting an id replaces its vector, so retries are idempotent.
        """
        result = UpsertResult()
        for offset in range(0, len(records), self.batch_size):
            batch = records[offset : offset + self.batch_size]
            try:
                self._write_batch(batch)
                result.inserted += len(batch)
            except (sqlite3.Error, ValueError, TypeError) as exc:
                logger.warning(
                    "Vector upsert failed for batch at offset %d (%d records): %s",
                    offset,
                    len(batch),
                    exc,
                )
                result.errors += len(batch)
        return result

    def _write_batch(self, batch: Sequence[VectorRecord]) -> None:
        ids = [r.id for r in batch]
        with self._conn:
            self._delete_ids(ids)
            self._conn.executemany(
                f"""
                INSERT INTO {self.table}
                    (chunk_id, embedding, project_id, file_type, file_path, start_line, end_line)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        r.id,
                        json.dumps(r.values),
                        r.metadata.project_id,
                        r.metadata.file_type,
                        r.metadata.file_path,
                        r.metadata.start_line,
                        r.metadata.end_line,
                    )
                    for r in batch
                ],
            )

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(
        self,
        vector: Sequence[float],
        top_k: int = 10,
        filters: dict[str, str] | None = None,
    ) -> list[VectorMatch]:
        """Return up to *top_k* nearest vectors, best first.

        Args:
            vector: Query embedding.
            top_k: Number of matches requested (clamped to 1..MAX_TOP_K).
            filters: Equality filters on ``project_id`` and/or ``file_type``.
                ``None`` values are ignored.
        """
        k = max(1, min(int(top_k), MAX_TOP_K))
        clauses = ["embedding MATCH ?", "k = ?"]
        params: list[object] = [json.dumps(list(vector)), k]
        for column, value in (filters or {}).items():
            if value is None:
                continue
            if column not in _FILTER_COLUMNS:
                raise ValueError(
                    f"Unsupported vector filter '{column}' (allowed: {', '.join(_FILTER_COLUMNS)})"
                )
            clauses.append(f"{column} = ?")
            params.append(value)

        rows = self._conn.execute(
            f"""
            SELECT chunk_id, distance, project_id, file_type, file_path, start_line, end_line
            FROM {self.table}
            WHERE {" AND ".join(clauses)}
            ORDER BY distance
            """,
            params,
        ).fetchall()
        return [
            VectorMatch(
                id=r["chunk_id"],
                score=1.0 - float(r["distance"]),
                metadata=VectorMetadata(
                    project_id=r["project_id"],
                    file_path=r["file_path"],
                    file_type=r["file_type"],
                    start_line=r["start_line"],
                    end_line=r["end_line"],
                ),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_by_project(self, project_id: str) -> int:
        """Delete every vector belonging to a project's chunks.

        Chunk ids are resolved from the relational store, so call this BEFORE
        deleting the chunk rows. A failing batch is logged and skipped; its
        vectors stay orphaned (best-effort delete).

        Returns:
            Number of ids submitted in batches that succeeded.
        """
        chunk_ids = self._repo.list_chunk_ids(project_id)
        deleted = 0
        for offset in range(0, len(chunk_ids), self.batch_size):
            batch = chunk_ids[offset : offset + self.batch_size]
            try:
                with self._conn:
                    self._delete_ids(batch)
                deleted += len(batch)
            except sqlite3.Error as exc:
                logger.warning(
                    "Vector delete failed for project %s batch at offset %d: %s",
                    project_id,
                    offset,
                    exc,
                )
        return deleted

    def count(self) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]

    def _delete_ids(self, ids: Sequence[str]) -> None:
        self._conn.executemany(
            f"DELETE FROM {self.table} WHERE chunk_id = ?", [(i,) for i in ids]
        )
