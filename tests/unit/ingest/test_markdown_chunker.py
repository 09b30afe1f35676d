"""Tests for BaseChunker + MarkdownChunker."""

from __future__ import annotations

import pytest

from coderag.ingest.markdown import MarkdownChunker


def _assert_line_exact(spans, content):
    lines = content.split("\n")
    for s in spans:
        assert 1 <= s.start_line <= s.end_line <= len(lines)
        assert s.content.split("\n") == lines[s.start_line - 1 : s.end_line]


def _section(n: int, body_lines: int = 9) -> list[str]:
    return [f"## Section {n}"] + [f"Paragraph {n}.{i} of the section." for i in range(body_lines)]


# ------------------------------------------------------------------
# BaseChunker — validated via MarkdownChunker (concrete subclass)
# ------------------------------------------------------------------


def test_base_chunker_invalid_max_tokens():
    with pytest.raises(ValueError, match="max_tokens"):
        MarkdownChunker(max_tokens=0)


def test_base_chunker_invalid_overlap_negative():
    with pytest.raises(ValueError, match="overlap_lines"):
        MarkdownChunker(overlap_lines=-1)


def test_max_chars_default():
    assert MarkdownChunker().max_chars == 2048


def test_max_chars_follows_chars_per_token():
    assert MarkdownChunker(max_tokens=100, chars_per_token=3).max_chars == 300


# ------------------------------------------------------------------
# Sections
# ------------------------------------------------------------------


def test_empty_and_blank_input():
    assert MarkdownChunker().chunk("") == []
    assert MarkdownChunker().chunk("  \n\n  ") == []


def test_three_sections_of_ten_lines():
    content = "\n".join(_section(1) + _section(2) + _section(3))
    spans = MarkdownChunker().chunk(content, "README.md")

    assert len(spans) == 3
    assert all(s.chunk_type == "markdown" for s in spans)
    assert [(s.start_line, s.end_line) for s in spans] == [(1, 10), (11, 20), (21, 30)]
    assert sum(s.end_line - s.start_line + 1 for s in spans) == 30
    _assert_line_exact(spans, content)


def test_preamble_is_own_section():
    content = "Intro line\n\n# Title\nbody"
    spans = MarkdownChunker().chunk(content)
    assert [(s.start_line, s.end_line) for s in spans] == [(1, 2), (3, 4)]


def test_h4_does_not_split():
    content = "# Top\ntext\n#### Deep\nmore"
    spans = MarkdownChunker().chunk(content)
    assert len(spans) == 1


def test_hash_without_space_is_not_heading():
    content = "# Top\n#hashtag\ntext"
    assert len(MarkdownChunker().chunk(content)) == 1


def test_oversized_section_split_at_midpoint():
    lines = ["# Big"] + [f"line {i:02d} " + "x" * 20 for i in range(15)]
    content = "\n".join(lines)
    spans = MarkdownChunker(max_tokens=25).chunk(content)  # 100-char budget

    assert len(spans) > 1
    assert all(len(s.content) <= 100 or s.start_line == s.end_line for s in spans)
    # Disjoint and contiguous: no overlap for markdown.
    for prev, nxt in zip(spans, spans[1:]):
        assert nxt.start_line == prev.end_line + 1
    _assert_line_exact(spans, content)


def test_deterministic():
    content = "\n".join(_section(1) + _section(2))
    assert MarkdownChunker().chunk(content) == MarkdownChunker().chunk(content)
