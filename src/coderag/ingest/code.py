"""Code chunker — declaration boundaries per language, windowed fallback.

Boundary signatures are a registry keyed by file extension, so new
languages are added with register_boundary_patterns() rather than by
touching the chunker.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from coderag.ingest.base import BaseChunker, ChunkSpan, split_lines

MIN_BOUNDARY_GAP = 5

_JS_PATTERNS = (
    r"^(export\s+)?(default\s+)?(async\s+)?function\s*\*?\s*\w+",
    r"^(export\s+)?(default\s+)?(abstract\s+)?class\s+\w+",
    r"^(export\s+)?const\s+\w+\s*=\s*(async\s+)?(\(|function\b)",
)
_TS_PATTERNS = _JS_PATTERNS + (
    r"^(export\s+)?interface\s+\w+",
    r"^(export\s+)?enum\s+\w+",
)
_C_PATTERNS = (
    r"^(?!(?:if|else|for|while|switch|return|do|case)\b)[\w*][\w*\s]*\s\**\w+\s*\([^;]*$",
    r"^(typedef\s+)?struct\s+\w+",
)
_CPP_PATTERNS = _C_PATTERNS + (
    r"^(template\s*<.*>\s*)?class\s+\w+",
    r"^namespace\s+\w+",
)

_BOUNDARY_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {}


def register_boundary_patterns(extensions: str | Iterable[str], patterns: Iterable[str]) -> None:
    """Register declaration signatures for one or more file extensions.

    Patterns are matched against each stripped line with ``re.match``; the
    first matching pattern marks a candidate boundary. Registering an
    extension again replaces its patterns.

    Args:
        extensions: Extension(s) without the dot, e.g. ``"py"`` or ``["c", "h"]``.
        patterns: Regular expressions, tried in order.
    """
    exts = [extensions] if isinstance(extensions, str) else list(extensions)
    compiled = tuple(re.compile(p) for p in patterns)
    for ext in exts:
        _BOUNDARY_PATTERNS[ext.lower().lstrip(".")] = compiled


def boundary_patterns(extension: str) -> tuple[re.Pattern[str], ...]:
    """Return the registered patterns for *extension* (empty if unknown)."""
    return _BOUNDARY_PATTERNS.get(extension.lower().lstrip("."), ())


register_boundary_patterns(["ts", "tsx"], _TS_PATTERNS)
register_boundary_patterns(["js", "jsx", "mjs", "cjs"], _JS_PATTERNS)
register_boundary_patterns("py", (r"^(async\s+)?def\s+\w+", r"^class\s+\w+"))
register_boundary_patterns(
    "go", (r"^func\s+(\(\w+\s+\*?\w+\)\s+)?\w+", r"^type\s+\w+\s+(struct|interface)")
)
register_boundary_patterns(
    "rs",
    (
        r"^(pub(\(\w+\))?\s+)?(async\s+)?(unsafe\s+)?fn\s+\w+",
        r"^(pub(\(\w+\))?\s+)?(struct|enum|trait)\s+\w+",
        r"^impl\b",
    ),
)
register_boundary_patterns(
    "java",
    (
        r"^(public\s+|protected\s+|private\s+)?(abstract\s+|final\s+)?(class|interface|enum|record)\s+\w+",
        r"^(public\s+|protected\s+|private\s+)(static\s+)?(final\s+)?[\w<>\[\],\s]+\s+\w+\s*\(",
    ),
)
register_boundary_patterns(["c", "h"], _C_PATTERNS)
register_boundary_patterns(["cpp", "hpp", "cc", "cxx"], _CPP_PATTERNS)
register_boundary_patterns(["sh", "bash"], (r"^(function\s+)?\w+\s*\(\)\s*\{?", r"^function\s+\w+"))


class CodeChunker(BaseChunker):
    """Split source code at function / class / struct / impl declarations.

    Strategy:
    - Scan stripped lines for the extension's boundary signatures.
    - Accept a candidate only if at least ``min_boundary_gap`` lines separate
      it from the previous accepted boundary (nested declarations stay in
      their parent's chunk).
    - Each boundary-to-boundary span is one chunk; spans over ``max_chars``
      are windowed with a 3-line overlap.
    - No boundaries at all (or an unknown extension): window the whole file.
    """

    chunk_type = "code"

    def __init__(self, *args, min_boundary_gap: int = MIN_BOUNDARY_GAP, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        if min_boundary_gap < 0:
            raise ValueError("min_boundary_gap must be >= 0")
        self.min_boundary_gap = min_boundary_gap

    def chunk(self, content: str, path: str = "") -> list[ChunkSpan]:
        if not content.strip():
            return []

        lines = split_lines(content)
        boundaries = self.detect_boundaries(lines, path)
        if not boundaries:
            return self._split_fixed_window(lines)

        if boundaries[0] != 0:
            boundaries = [0, *boundaries]

        spans: list[ChunkSpan] = []
        for i, start in enumerate(boundaries):
            end = boundaries[i + 1] if i + 1 < len(boundaries) else len(lines)
            segment = lines[start:end]
            if len("\n".join(segment)) > self.max_chars:
                spans.extend(self._split_fixed_window(segment, first_line=start + 1))
            else:
                self._emit(spans, segment, start + 1)
        return spans

    def detect_boundaries(self, lines: list[str], path: str) -> list[int]:
        """Return accepted 0-based boundary line indices, ascending."""
        ext = path.rsplit(".", 1)[-1] if "." in path else ""
        patterns = boundary_patterns(ext)
        if not patterns:
            return []

        accepted: list[int] = []
        # Line 0 always opens the first span, so gaps are measured from it.
        previous = 0
        for i, line in enumerate(lines):
            stripped = line.strip()
            if not stripped:
                continue
            if not any(p.match(stripped) for p in patterns):
                continue
            if i == 0 or i - previous > self.min_boundary_gap:
                accepted.append(i)
                previous = i
        return accepted
