"""Answer + title generation behind the daily LLM query quota."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from coderag.db.cache import QuotaCounter
from coderag.db.models import Message
from coderag.errors import QuotaExceededError
from coderag.rag import llm_client
from coderag.rag.assembler import ContextItem, build_messages

logger = logging.getLogger(__name__)

QUERY_CAPABILITY = "query"

EMPTY_ANSWER = "Unable to generate response."
DEFAULT_TITLE = "New Conversation"
_TITLE_MAX_CHARS = 50

_TITLE_SYSTEM = (
    "Generate a very short title (max 6 words) for this conversation. "
    "Return only the title, no quotes or punctuation."
)


@dataclass
class Answer:
    text: str
    tokens_used: int | None = None


def fallback_title(query: str) -> str:
    """Title derived from the query text alone (no model call)."""
    title = " ".join(query.split())[:_TITLE_MAX_CHARS].strip()
    return title or DEFAULT_TITLE


class AnswerGenerator:
    """Generate grounded answers, one quota unit per answer.

    Args:
        quota: Daily counter for the ``query`` capability.
        model: LiteLLM completion model for answers.
        title_model: Cheaper model used for conversation titles.
        max_tokens: Output token cap per answer.
        history_messages: Prior turns included in the prompt.
    """

    def __init__(
        self,
        quota: QuotaCounter,
        model: str = "openai/gpt-4o-mini",
        title_model: str = "openai/gpt-4o-mini",
        max_tokens: int = 1024,
        history_messages: int = 6,
    ) -> None:
        self._quota = quota
        self.model = model
        self.title_model = title_model
        self.max_tokens = max_tokens
        self.history_messages = history_messages

    def generate(
        self,
        query: str,
        context: Sequence[ContextItem],
        history: Sequence[Message] = (),
    ) -> Answer:
        """Answer *query* from *context*.

        Raises:
            QuotaExceededError: Today's query limit is used up (no call made).
        """
        if not self._quota.try_consume(1):
            raise QuotaExceededError(QUERY_CAPABILITY, self._quota.limit)

        messages = build_messages(query, context, history, self.history_messages)
        try:
            text, tokens = llm_client.complete(
                model=self.model, messages=messages, max_tokens=self.max_tokens
            )
        except Exception:
            self._quota.refund(1)
            raise
        return Answer(text=text.strip() or EMPTY_ANSWER, tokens_used=tokens)

    def title(self, query: str) -> str:
        """Short conversation title; falls back to the query text on failure."""
        try:
            text, _ = llm_client.complete(
                model=self.title_model,
                messages=[
                    {"role": "system", "content": _TITLE_SYSTEM},
                    {"role": "user", "content": query},
                ],
                max_tokens=20,
            )
        except Exception as exc:
            logger.info("Title generation failed, using query text: %s", exc)
            return fallback_title(query)
        return text.strip()[:_TITLE_MAX_CHARS] or DEFAULT_TITLE

    def usage(self) -> dict[str, int]:
        return self._quota.usage()
