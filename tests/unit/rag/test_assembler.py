"""Tests for context assembly and prompt building."""

from __future__ import annotations

from coderag.db.models import HydratedChunk, Message
from coderag.db.vectors import VectorMatch, VectorMetadata
from coderag.rag.assembler import (
    SYSTEM_PROMPT,
    ContextItem,
    assemble,
    build_messages,
    format_context,
)


def _match(cid: str, score: float) -> VectorMatch:
    return VectorMatch(
        id=cid,
        score=score,
        metadata=VectorMetadata(
            project_id="p1", file_path=f"{cid}.py", file_type="code", start_line=1, end_line=2
        ),
    )


def _hydrated(cid: str) -> HydratedChunk:
    return HydratedChunk(
        id=cid,
        project_id="p1",
        content=f"def {cid}(): pass",
        start_line=1,
        end_line=2,
        chunk_type="code",
        relative_path=f"src/{cid}.py",
        project_name="app",
    )


def _item(cid: str = "a") -> ContextItem:
    return ContextItem(
        chunk_id=cid,
        content="print('hi')",
        file_path="src/main.py",
        project_name="app",
        start_line=3,
        end_line=4,
        score=0.8,
    )


def test_assemble_keeps_match_order():
    matches = [_match("b", 0.9), _match("a", 0.8), _match("c", 0.7)]
    hydrated = {cid: _hydrated(cid) for cid in ("a", "c", "b")}
    assert [i.chunk_id for i in assemble(matches, hydrated)] == ["b", "a", "c"]


def test_assemble_drops_unhydrated():
    items = assemble([_match("a", 0.9), _match("gone", 0.8)], {"a": _hydrated("a")})
    assert [i.chunk_id for i in items] == ["a"]
    assert items[0].score == 0.9
    assert items[0].file_path == "src/a.py"


def test_format_context_numbered_blocks():
    text = format_context([_item("a"), _item("b")])
    assert text.startswith("[Source 1] app/src/main.py:3-4\n```\nprint('hi')\n```")
    assert "[Source 2] app/src/main.py:3-4" in text


def test_build_messages_structure():
    messages = build_messages("How does it print?", [_item()])
    assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert messages[-1]["role"] == "user"
    assert messages[-1]["content"].startswith("Context from codebase:\n[Source 1]")
    assert messages[-1]["content"].endswith("\n\nQuestion: How does it print?")


def test_build_messages_limits_history():
    history = [
        Message(id=str(i), conversation_id="c", role="user" if i % 2 == 0 else "assistant", content=f"m{i}")
        for i in range(10)
    ]
    messages = build_messages("q", [_item()], history, history_messages=6)
    assert [m["content"] for m in messages[1:-1]] == ["m4", "m5", "m6", "m7", "m8", "m9"]


def test_build_messages_no_history():
    assert len(build_messages("q", [], [], history_messages=0)) == 2
