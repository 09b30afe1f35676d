"""Project management and usage metrics over the relational + vector stores."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from coderag.db.cache import QuotaCounter
from coderag.db.models import FileRecord, Project
from coderag.db.repository import Repository
from coderag.db.vectors import VectorStore
from coderag.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ProjectDetails:
    project: Project
    files: int
    chunks: int


@dataclass
class IndexProgress:
    project_id: str
    status: str
    file_count: int
    processed_files: int
    total_chunks: int
    last_indexed_at: int | None

    @property
    def in_progress(self) -> bool:
        return self.status == "indexing"


class ProjectService:
    """Read and delete indexed projects.

    Args:
        repo: Relational store.
        vectors: Vector index; project deletes clear it before the rows go.
        embedding_quota: Daily embedding counter (metrics only).
        llm_quota: Daily query counter (metrics only).
    """

    def __init__(
        self,
        repo: Repository,
        vectors: VectorStore,
        embedding_quota: QuotaCounter | None = None,
        llm_quota: QuotaCounter | None = None,
    ) -> None:
        self._repo = repo
        self._vectors = vectors
        self._embedding_quota = embedding_quota
        self._llm_quota = llm_quota

    def list_projects(self) -> list[Project]:
        """All projects, newest first."""
        return self._repo.list_projects()

    def get_project(self, project_id: str) -> ProjectDetails:
        project = self._require(project_id)
        stats = self._repo.project_stats(project_id)
        return ProjectDetails(project=project, files=stats["files"], chunks=stats["chunks"])

    def list_files(self, project_id: str) -> list[FileRecord]:
        self._require(project_id)
        return self._repo.list_files(project_id)

    def delete_project(self, project_id: str) -> int:
        """Delete a project's vectors, then the project and everything under it.

        Returns:
            Number of vectors removed.
        """
        self._require(project_id)
        removed = self._vectors.delete_by_project(project_id)
        self._repo.delete_project(project_id)
        logger.info("Deleted project %s (%d vectors)", project_id, removed)
        return removed

    def index_progress(self, project_id: str) -> IndexProgress:
        project = self._require(project_id)
        stats = self._repo.project_stats(project_id)
        return IndexProgress(
            project_id=project.id,
            status=project.status,
            file_count=project.file_count,
            processed_files=stats["files"],
            total_chunks=stats["chunks"],
            last_indexed_at=project.last_indexed_at,
        )

    def metrics(self) -> dict:
        """Global row counts plus today's quota usage per capability."""
        result: dict = dict(self._repo.counts())
        result["vectors"] = self._vectors.count()
        result["usage"] = {}
        for quota in (self._embedding_quota, self._llm_quota):
            if quota is not None:
                result["usage"][quota.capability] = quota.usage()
        return result

    def _require(self, project_id: str) -> Project:
        project = self._repo.get_project(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project
