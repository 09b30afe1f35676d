"""Domain models for the coderag database layer."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Literal

ProjectStatus = Literal["pending", "indexing", "ready", "error"]
ChunkType = Literal["code", "markdown", "config", "text"]
Role = Literal["user", "assistant"]


@dataclass
class Project:
    id: str
    name: str
    path: str
    status: str = "pending"
    file_count: int = 0
    last_indexed_at: int | None = None
    created_at: int | None = None


@dataclass
class FileRecord:
    id: str
    project_id: str
    relative_path: str
    content_hash: str
    chunk_count: int = 0
    indexed_at: int | None = None


@dataclass
class Chunk:
    id: str
    file_id: str
    project_id: str
    content: str
    start_line: int
    end_line: int
    chunk_type: str = "code"


@dataclass
class HydratedChunk:
    """A chunk joined with its file path and project name (query-time view)."""

    id: str
    project_id: str
    content: str
    start_line: int
    end_line: int
    chunk_type: str
    relative_path: str
    project_name: str


@dataclass
class SourceReference:
    """Pointer to a retrieved chunk attached to an answer."""

    chunk_id: str
    file_path: str
    project_name: str
    start_line: int
    end_line: int
    score: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Conversation:
    id: str
    project_id: str | None = None
    title: str | None = None
    message_count: int = 0
    created_at: int | None = None


@dataclass
class Message:
    id: str
    conversation_id: str
    role: str
    content: str
    sources: list[SourceReference] = field(default_factory=list)
    created_at: int | None = None

    def sources_json(self) -> str | None:
        """Serialise source references for the ``messages.sources`` column."""
        if self.role != "assistant":
            return None
        return json.dumps([s.to_dict() for s in self.sources])
