"""Chunker dispatch by file type.

  code      → CodeChunker      (declaration boundaries, windowed fallback)
  markdown  → MarkdownChunker  (H1-H3 sections)
  config    → ConfigChunker    (whole file if it fits)
  text      → PlainTextChunker (fixed windows)
"""

from __future__ import annotations

from coderag.config import ChunkingCfg
from coderag.ingest.base import BaseChunker, ChunkSpan
from coderag.ingest.code import CodeChunker
from coderag.ingest.config_chunker import ConfigChunker
from coderag.ingest.filetypes import file_type
from coderag.ingest.markdown import MarkdownChunker
from coderag.ingest.plaintext import PlainTextChunker


class FileChunker:
    """Route files to the chunker for their type, all sharing one size budget."""

    def __init__(self, cfg: ChunkingCfg | None = None) -> None:
        cfg = cfg or ChunkingCfg()
        common = {
            "max_tokens": cfg.max_tokens,
            "chars_per_token": cfg.chars_per_token,
            "overlap_lines": cfg.overlap_lines,
        }
        self._chunkers: dict[str, BaseChunker] = {
            "code": CodeChunker(min_boundary_gap=cfg.min_boundary_gap, **common),
            "markdown": MarkdownChunker(**common),
            "config": ConfigChunker(**common),
            "text": PlainTextChunker(**common),
        }

    def chunker_for(self, path: str) -> BaseChunker:
        return self._chunkers[file_type(path)]

    def chunk(self, content: str, path: str) -> list[ChunkSpan]:
        """Split *content* of the file at *path* into ordered spans."""
        return self.chunker_for(path).chunk(content, path)


_DEFAULT = FileChunker()


def chunk_file(content: str, path: str) -> list[ChunkSpan]:
    """Chunk with the default budget (512 tokens × 4 chars, 3-line overlap)."""
    return _DEFAULT.chunk(content, path)
