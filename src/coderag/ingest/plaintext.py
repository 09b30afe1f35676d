"""Plain text chunker — fixed line windows with overlap."""

from __future__ import annotations

from coderag.ingest.base import BaseChunker, ChunkSpan, split_lines


class PlainTextChunker(BaseChunker):
    """Split any text into fixed-size line windows with a 3-line overlap.

    Delegates entirely to ``BaseChunker._split_fixed_window()``.
    """

    chunk_type = "text"

    def chunk(self, content: str, path: str = "") -> list[ChunkSpan]:
        if not content.strip():
            return []
        return self._split_fixed_window(split_lines(content))
