"""Indexer: chunk → persist → embed → upsert, with full / append / skip policies.

Per-invocation state machine:
  new project               → create row (indexing), full index
  existing, force           → delete vectors + files/chunks, full index
  existing, append          → keep everything, index only unseen paths
  existing, indexed < 1h    → skip ("recently indexed"), no work
  existing, stale           → same as force

Project ownership is taken with a conditional status write
(Repository.claim_project), so two runs can't both index one project.
Embedding and upsert batches run sequentially; a failing batch is counted
and skipped, successfully stored chunks stay stored.
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field

from coderag.config import CodeRagConfig
from coderag.db.models import Chunk, FileRecord, Project
from coderag.db.repository import Repository
from coderag.db.vectors import VectorMetadata, VectorRecord, VectorStore
from coderag.errors import IndexingConflictError, QuotaExceededError, ValidationError
from coderag.ingest.chunking import FileChunker
from coderag.ingest.embeddings import EmbeddingClient
from coderag.ingest.filetypes import file_type, should_index
from coderag.ingest.hashing import hash_content

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


@dataclass
class SourceFile:
    """One file supplied by the caller: path relative to the project root + text."""

    path: str
    content: str


@dataclass
class IndexRequest:
    project_path: str
    files: Sequence[SourceFile]
    project_name: str | None = None
    force: bool = False
    append: bool = False


@dataclass
class IndexResult:
    project_id: str
    status: str  # complete | error | skipped
    total_files: int = 0
    processed_files: int = 0
    total_chunks: int = 0
    vectors_inserted: int = 0
    vectors_errors: int = 0
    embedding_errors: int = 0
    skipped_files: int = 0
    quota_exceeded: bool = False
    message: str = ""
    error: str | None = None
    last_indexed_at: int | None = None
    mode: str = "full"  # full | append

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _Plan:
    project: Project
    mode: str
    existing_paths: set[str] = field(default_factory=set)


def project_name_from_path(path: str) -> str:
    """Last segment of *path*, ignoring a trailing slash."""
    return path.replace("\\", "/").rstrip("/").split("/")[-1] or "unknown"


class Indexer:
    """Index caller-supplied files into the relational store and vector index.

    Args:
        repo: Repository over the project database.
        embedder: Quota-enforcing embedding client.
        vectors: Vector store for the embedder's model.
        config: Batch sizes, skip window and chunk budget.
        clock: Returns the current Unix time (injectable for tests).
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingClient,
        vectors: VectorStore,
        config: CodeRagConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._vectors = vectors
        self._cfg = config or CodeRagConfig()
        self._chunker = FileChunker(self._cfg.chunking)
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def index(
        self, request: IndexRequest, on_progress: ProgressCallback | None = None
    ) -> IndexResult:
        """Run one indexing invocation.

        Raises:
            ValidationError: Missing project path or files (nothing written).
            IndexingConflictError: Another run holds the project.
        """
        _validate(request)
        progress = on_progress or (lambda stage, done, total: None)

        plan = self._plan(request)
        if isinstance(plan, IndexResult):
            return plan

        project_id = plan.project.id
        try:
            return self._run(request, plan, progress)
        except Exception:
            # Never leave the project stuck in 'indexing' after an in-process failure.
            logger.exception("Indexing failed for project %s", project_id)
            self._repo.set_project_status(project_id, "error")
            raise

    # ------------------------------------------------------------------
    # Mode selection
    # ------------------------------------------------------------------

    def _plan(self, request: IndexRequest) -> _Plan | IndexResult:
        path = request.project_path.strip()
        project = self._repo.get_project_by_path(path)

        if project is None:
            project = Project(
                id=str(uuid.uuid4()),
                name=(request.project_name or "").strip() or project_name_from_path(path),
                path=path,
                status="indexing",
                created_at=self._now(),
            )
            try:
                self._repo.add_project(project)
            except sqlite3.IntegrityError as exc:
                # Another run created the same path between our read and insert.
                raise IndexingConflictError(path) from exc
            return _Plan(project=project, mode="full")

        if request.append:
            if not self._repo.claim_project(project.id):
                raise IndexingConflictError(project.id)
            return _Plan(
                project=project,
                mode="append",
                existing_paths=self._repo.list_file_paths(project.id),
            )

        if request.force:
            self._repo.claim_project(project.id, takeover=True)
        else:
            stale_before = self._now() - self._cfg.indexing.recent_window_seconds
            if not self._repo.claim_project(project.id, stale_before=stale_before):
                current = self._repo.get_project(project.id) or project
                if current.status == "indexing":
                    raise IndexingConflictError(project.id)
                logger.info("Project %s indexed recently; skipping", project.id)
                return IndexResult(
                    project_id=project.id,
                    status="skipped",
                    message=(
                        "Project was indexed recently. Use force=true to re-index "
                        "or append=true to add files."
                    ),
                    last_indexed_at=current.last_indexed_at,
                )

        deleted = self._vectors.delete_by_project(project.id)
        self._repo.clear_project_content(project.id)
        logger.info("Cleared project %s for full re-index (%d vectors)", project.id, deleted)
        return _Plan(project=project, mode="full")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run(self, request: IndexRequest, plan: _Plan, progress: ProgressCallback) -> IndexResult:
        project_id = plan.project.id
        files = self._select_files(request.files, plan)
        result = IndexResult(
            project_id=project_id,
            status="complete",
            total_files=len(files),
            skipped_files=len(request.files) - len(files),
            mode=plan.mode,
        )

        if not files:
            self._repo.set_project_status(project_id, "ready")
            result.message = "No new files to index"
            return result

        # ---- Chunk ----
        now = self._now()
        file_records: list[FileRecord] = []
        chunks: list[Chunk] = []
        for i, source in enumerate(files):
            file_id = str(uuid.uuid4())
            spans = self._chunker.chunk(source.content, source.path)
            chunks.extend(
                Chunk(
                    id=str(uuid.uuid4()),
                    file_id=file_id,
                    project_id=project_id,
                    content=s.content,
                    start_line=s.start_line,
                    end_line=s.end_line,
                    chunk_type=s.chunk_type,
                )
                for s in spans
            )
            file_records.append(
                FileRecord(
                    id=file_id,
                    project_id=project_id,
                    relative_path=source.path,
                    content_hash=hash_content(source.content),
                    chunk_count=len(spans),
                    indexed_at=now,
                )
            )
            progress("chunking", i + 1, len(files))

        result.processed_files = len(file_records)
        result.total_chunks = len(chunks)

        # ---- Persist ----
        batch_size = self._cfg.indexing.db_batch_size
        self._repo.add_files(file_records, batch_size=batch_size)
        self._repo.add_chunks(chunks, batch_size=batch_size)

        # ---- Embed ----
        paths = {f.id: f.relative_path for f in file_records}
        records = self._embed_chunks(chunks, paths, result, progress)

        # ---- Upsert ----
        progress("upserting", 0, len(records))
        upserted = self._vectors.upsert(records)
        progress("upserting", len(records), len(records))
        result.vectors_inserted = upserted.inserted
        result.vectors_errors = upserted.errors

        # ---- Finish ----
        failed = result.vectors_errors > 0 or result.embedding_errors > 0
        indexed_at = self._now()
        self._repo.finish_project(
            project_id,
            status="error" if failed else "ready",
            file_count=len(file_records),
            indexed_at=indexed_at,
            increment=plan.mode == "append",
        )
        result.last_indexed_at = indexed_at
        if failed:
            result.status = "error"
            result.error = _describe_errors(result)
        result.message = (
            f"Indexed {result.processed_files} files into {result.total_chunks} chunks"
        )
        return result

    def _select_files(self, files: Sequence[SourceFile], plan: _Plan) -> list[SourceFile]:
        """Apply the eligibility filter, then (append mode) skip known paths.

        Append mode compares paths only: a known path whose content changed
        is NOT re-indexed. Use force=true to pick up edits.
        """
        eligible = [f for f in files if should_index(f.path)]

        seen: set[str] = set()
        unique: list[SourceFile] = []
        for f in eligible:
            if f.path in seen:
                logger.warning("Duplicate path '%s' in request; keeping first copy", f.path)
                continue
            seen.add(f.path)
            unique.append(f)

        if plan.mode == "append" and plan.existing_paths:
            before = len(unique)
            unique = [f for f in unique if f.path not in plan.existing_paths]
            logger.info("Append mode: skipped %d existing files", before - len(unique))
        return unique

    def _embed_chunks(
        self,
        chunks: list[Chunk],
        paths: dict[str, str],
        result: IndexResult,
        progress: ProgressCallback,
    ) -> list[VectorRecord]:
        records: list[VectorRecord] = []
        batch_size = self._cfg.embedding.batch_size
        for offset in range(0, len(chunks), batch_size):
            batch = chunks[offset : offset + batch_size]
            try:
                vectors = self._embedder.embed([c.content for c in batch])
            except QuotaExceededError as exc:
                logger.warning("Embedding batch at offset %d refused: %s", offset, exc)
                result.quota_exceeded = True
                result.embedding_errors += len(batch)
                continue
            except Exception as exc:
                logger.warning("Embedding batch at offset %d failed: %s", offset, exc)
                result.embedding_errors += len(batch)
                continue

            for chunk, values in zip(batch, vectors):
                path = paths.get(chunk.file_id, "")
                records.append(
                    VectorRecord(
                        id=chunk.id,
                        values=values,
                        metadata=VectorMetadata(
                            project_id=chunk.project_id,
                            file_path=path,
                            file_type=file_type(path),
                            start_line=chunk.start_line,
                            end_line=chunk.end_line,
                        ),
                    )
                )
            progress("embedding", min(offset + batch_size, len(chunks)), len(chunks))
        return records


def _validate(request: IndexRequest) -> None:
    if not isinstance(request.project_path, str) or not request.project_path.strip():
        raise ValidationError("project_path is required")
    if not request.files:
        raise ValidationError("files array is required with path and content for each file")
    for f in request.files:
        if not isinstance(f.path, str) or not f.path.strip():
            raise ValidationError("every file needs a non-empty path")
        if not isinstance(f.content, str):
            raise ValidationError(f"content for '{f.path}' must be text")


def _describe_errors(result: IndexResult) -> str:
    parts = []
    if result.embedding_errors:
        reason = " (daily quota reached)" if result.quota_exceeded else ""
        parts.append(f"{result.embedding_errors} chunks failed to embed{reason}")
    if result.vectors_errors:
        parts.append(f"{result.vectors_errors} vectors failed to upsert")
    return "; ".join(parts)
