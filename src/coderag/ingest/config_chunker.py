"""Config file chunker — whole file when it fits, windows otherwise."""

from __future__ import annotations

from coderag.ingest.base import BaseChunker, ChunkSpan, split_lines


class ConfigChunker(BaseChunker):
    """Keep JSON / YAML / TOML / INI files whole unless they exceed the budget."""

    chunk_type = "config"

    def chunk(self, content: str, path: str = "") -> list[ChunkSpan]:
        if not content.strip():
            return []
        lines = split_lines(content)
        if len(content) <= self.max_chars:
            span = self._span(lines, 1)
            return [span] if span else []
        return self._split_fixed_window(lines)
