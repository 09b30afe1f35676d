"""coderag exception taxonomy.

Validation, quota, not-found and conflict failures each have their own class
so the outer boundary (CLI, or an embedding host) can report them distinctly.
Partial batch failures during indexing are counted, never raised.
"""

from __future__ import annotations


class CodeRagError(Exception):
    """Base class for every error raised deliberately by coderag."""


class ValidationError(CodeRagError, ValueError):
    """A request is missing a required field or carries an invalid value.

    Raised before any side effect is performed.
    """


class NotFoundError(CodeRagError, LookupError):
    """A referenced project, file or conversation does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind.capitalize()} not found: '{identifier}'")
        self.kind = kind
        self.identifier = identifier


class QuotaExceededError(CodeRagError):
    """The daily quota for an inference capability is used up.

    Never retried or queued automatically.
    """

    def __init__(self, capability: str, limit: int, requested: int = 1) -> None:
        super().__init__(
            f"Daily {capability} limit reached ({limit}). Try again tomorrow."
        )
        self.capability = capability
        self.limit = limit
        self.requested = requested


class IndexingConflictError(CodeRagError):
    """Another indexing run currently holds the project."""

    def __init__(self, project_id: str) -> None:
        super().__init__(
            f"Project '{project_id}' is already being indexed. "
            "Retry later, or use force=true if a previous run crashed."
        )
        self.project_id = project_id
