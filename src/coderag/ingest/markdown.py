"""Markdown chunker — heading-aware sections with midpoint splitting."""

from __future__ import annotations

import re

from coderag.ingest.base import BaseChunker, ChunkSpan, split_lines

# Matches H1, H2, H3 headings at the start of a line.
_HEADING_RE = re.compile(r"^#{1,3}\s+")


class MarkdownChunker(BaseChunker):
    """Split Markdown on H1/H2/H3 heading lines.

    Strategy:
    - Every H1/H2/H3 heading line starts a new *section* that runs up to the
      next heading (or end of file).
    - Content before the first heading (preamble) is its own section.
    - A section longer than ``max_chars`` is cut in half by line count, and
      each half is checked again, until every part fits or is a single line.
    - Sections are disjoint: markdown chunks never overlap.
    """

    chunk_type = "markdown"

    def chunk(self, content: str, path: str = "") -> list[ChunkSpan]:
        if not content.strip():
            return []

        lines = split_lines(content)
        spans: list[ChunkSpan] = []
        for start, end in self._sections(lines):
            self._emit_section(spans, lines[start:end], start + 1)
        return spans

    @staticmethod
    def _sections(lines: list[str]) -> list[tuple[int, int]]:
        """Return ``(start, end)`` line index ranges, end exclusive."""
        starts = sorted({0, *(i for i, line in enumerate(lines) if _HEADING_RE.match(line))})
        bounds = starts + [len(lines)]
        return [(bounds[i], bounds[i + 1]) for i in range(len(starts))]

    def _emit_section(
        self, spans: list[ChunkSpan], lines: list[str], start_line: int
    ) -> None:
        if len("\n".join(lines)) > self.max_chars and len(lines) > 1:
            mid = len(lines) // 2
            self._emit_section(spans, lines[:mid], start_line)
            self._emit_section(spans, lines[mid:], start_line + mid)
            return
        self._emit(spans, lines, start_line)
