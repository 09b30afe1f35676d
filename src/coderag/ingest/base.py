"""Base chunker interface and the shared fixed-size line window."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

MAX_CHUNK_TOKENS = 512
CHARS_PER_TOKEN = 4
OVERLAP_LINES = 3


@dataclass(frozen=True)
class ChunkSpan:
    """A contiguous run of file lines produced by a chunker.

    ``start_line`` and ``end_line`` are 1-based and inclusive; ``content`` is
    exactly those lines joined with ``"\\n"``.
    """

    content: str
    start_line: int
    end_line: int
    chunk_type: str


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()`` and may use ``_split_fixed_window()``
    for the windowed fallback path. Chunkers are pure: no I/O, no
    exceptions for any string input.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    chunk_type: str = "text"

    def __init__(
        self,
        max_tokens: int = MAX_CHUNK_TOKENS,
        chars_per_token: int = CHARS_PER_TOKEN,
        overlap_lines: int = OVERLAP_LINES,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        if overlap_lines < 0:
            raise ValueError("overlap_lines must be >= 0")
        self.max_tokens = max_tokens
        self.chars_per_token = chars_per_token
        self.overlap_lines = overlap_lines

    @property
    def max_chars(self) -> int:
        return self.max_tokens * self.chars_per_token

    @abstractmethod
    def chunk(self, content: str, path: str = "") -> list[ChunkSpan]:
        """Split *content* into ordered spans.

        Args:
            content: Full decoded text of the file.
            path: File path (used for language detection where relevant).

        Returns:
            Spans in non-decreasing start-line order. Whitespace-only spans
            are never returned.
        """

    def _split_fixed_window(
        self, lines: list[str], first_line: int = 1
    ) -> list[ChunkSpan]:
        """Group *lines* into windows of at most ``max_chars`` characters.

        A window is closed as soon as its joined length reaches the budget
        or the input ends. The next window starts with the last
        ``overlap_lines`` lines of the previous one, but never with all of
        them, so every window adds at least one new line.

        Args:
            lines: Lines to window (no trailing newlines).
            first_line: 1-based file line number of ``lines[0]``.
        """
        spans: list[ChunkSpan] = []
        if not lines:
            return spans

        window: list[str] = []
        window_chars = 0  # len("\n".join(window)), kept incrementally
        window_start = 0  # index into lines
        last = len(lines) - 1

        for i, line in enumerate(lines):
            window_chars += len(line) + (1 if window else 0)
            window.append(line)

            if window_chars >= self.max_chars or i == last:
                self._emit(spans, window, first_line + window_start)
                if i == last:
                    break
                carry = min(self.overlap_lines, len(window) - 1)
                window = window[len(window) - carry :] if carry else []
                window_chars = len("\n".join(window)) if window else 0
                window_start = i + 1 - len(window)

        return spans

    def _span(self, lines: list[str], start_line: int) -> ChunkSpan | None:
        """Build one span from *lines* starting at *start_line*, or None if blank."""
        if not lines:
            return None
        content = "\n".join(lines)
        if not content.strip():
            return None
        return ChunkSpan(
            content=content,
            start_line=start_line,
            end_line=start_line + len(lines) - 1,
            chunk_type=self.chunk_type,
        )

    def _emit(self, spans: list[ChunkSpan], lines: list[str], start_line: int) -> None:
        span = self._span(lines, start_line)
        if span is not None:
            spans.append(span)


def split_lines(content: str) -> list[str]:
    """Split on ``"\\n"`` only, so ``"\\n".join()`` restores the input exactly."""
    return content.split("\n")
