"""Context assembly: ranked hydration and the answer prompt.

Pipeline:
  1. Join vector matches with hydrated chunk rows, keeping the vector
     index's ranking (hydration order is irrelevant).
  2. Render numbered ``[Source i] project/path:start-end`` blocks.
  3. Build the chat messages: system prompt, recent history, question.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from coderag.db.models import HydratedChunk, Message
from coderag.db.vectors import VectorMatch

SYSTEM_PROMPT = """\
You are a helpful code assistant with access to the user's codebase. Answer questions based on the provided code context.

Guidelines:
- Be concise and direct
- Reference specific files and line numbers when relevant
- If the context doesn't contain enough information, say so
- Provide code examples when helpful
- Format code blocks with appropriate language tags"""


@dataclass
class ContextItem:
    chunk_id: str
    content: str
    file_path: str
    project_name: str
    start_line: int
    end_line: int
    score: float


def assemble(
    matches: Sequence[VectorMatch], hydrated: dict[str, HydratedChunk]
) -> list[ContextItem]:
    """Return context items in match order; matches with no live chunk are dropped."""
    items: list[ContextItem] = []
    for match in matches:
        chunk = hydrated.get(match.id)
        if chunk is None:
            continue
        items.append(
            ContextItem(
                chunk_id=chunk.id,
                content=chunk.content,
                file_path=chunk.relative_path,
                project_name=chunk.project_name,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
                score=match.score,
            )
        )
    return items


def format_context(items: Sequence[ContextItem]) -> str:
    return "\n\n".join(
        f"[Source {i + 1}] {c.project_name}/{c.file_path}:{c.start_line}-{c.end_line}\n"
        f"```\n{c.content}\n```"
        for i, c in enumerate(items)
    )


def build_messages(
    query: str,
    items: Sequence[ContextItem],
    history: Sequence[Message] = (),
    history_messages: int = 6,
) -> list[dict]:
    """OpenAI-style messages: system, the last *history_messages* turns, question."""
    messages: list[dict] = [{"role": "system", "content": SYSTEM_PROMPT}]
    recent = list(history)[-history_messages:] if history_messages > 0 else []
    messages.extend({"role": m.role, "content": m.content} for m in recent)
    messages.append(
        {
            "role": "user",
            "content": f"Context from codebase:\n{format_context(items)}\n\nQuestion: {query}",
        }
    )
    return messages
