"""Tests for AnswerGenerator: LLM quota gate, empty replies, titles."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from coderag.db.cache import DAY_SECONDS, QuotaCounter
from coderag.db.models import Message
from coderag.errors import QuotaExceededError
from coderag.rag.answer import (
    DEFAULT_TITLE,
    EMPTY_ANSWER,
    QUERY_CAPABILITY,
    AnswerGenerator,
    fallback_title,
)
from coderag.rag.assembler import ContextItem


def _completion(content, total_tokens=None):
    response = MagicMock()
    response.choices[0].message.content = content
    response.usage.total_tokens = total_tokens
    return response


CONTEXT = [
    ContextItem(
        chunk_id="c1",
        content="def login(user): ...",
        file_path="src/auth.py",
        project_name="api",
        start_line=10,
        end_line=12,
        score=0.91,
    )
]


@pytest.fixture
def quota(cache):
    return QuotaCounter(cache, QUERY_CAPABILITY, 3)


@pytest.fixture
def generator(quota):
    return AnswerGenerator(quota, model="openai/gpt-4o-mini", history_messages=2)


def test_generate_returns_text_and_tokens(generator, quota):
    with patch("litellm.completion", return_value=_completion("  Use login().  ", 120)) as mock:
        answer = generator.generate("How do I log in?", CONTEXT)
    assert answer.text == "Use login()."
    assert answer.tokens_used == 120
    assert quota.used() == 1
    prompt = mock.call_args.kwargs["messages"][-1]["content"]
    assert "[Source 1] api/src/auth.py:10-12" in prompt


def test_generate_includes_recent_history(generator):
    history = [
        Message(id=str(i), conversation_id="c", role="user" if i % 2 == 0 else "assistant", content=f"h{i}")
        for i in range(4)
    ]
    with patch("litellm.completion", return_value=_completion("ok")) as mock:
        generator.generate("next?", CONTEXT, history)
    sent = mock.call_args.kwargs["messages"]
    assert [m["content"] for m in sent[1:-1]] == ["h2", "h3"]


def test_empty_reply_becomes_fallback(generator):
    with patch("litellm.completion", return_value=_completion("")):
        assert generator.generate("q", CONTEXT).text == EMPTY_ANSWER


def test_quota_at_limit_refuses_without_call(generator, quota, cache):
    cache.put(quota.key(), "3", ttl=DAY_SECONDS)
    with patch("litellm.completion") as mock:
        with pytest.raises(QuotaExceededError, match="Daily query limit reached"):
            generator.generate("q", CONTEXT)
    mock.assert_not_called()
    assert quota.used() == 3


def test_failed_call_refunds(generator, quota):
    with patch("litellm.completion", side_effect=RuntimeError("timeout")):
        with pytest.raises(RuntimeError):
            generator.generate("q", CONTEXT)
    assert quota.used() == 0


def test_title_trimmed(generator, quota):
    with patch("litellm.completion", return_value=_completion("  " + "Long title " * 10)):
        title = generator.title("question")
    assert len(title) <= 50
    assert quota.used() == 0


def test_title_falls_back_to_query(generator):
    with patch("litellm.completion", side_effect=RuntimeError("down")):
        assert generator.title("where is the payment retry logic implemented?") == (
            "where is the payment retry logic implemented?"
        )


def test_empty_title_default(generator):
    with patch("litellm.completion", return_value=_completion("   ")):
        assert generator.title("q") == DEFAULT_TITLE


def test_fallback_title():
    assert fallback_title("a" * 80) == "a" * 50
    assert fallback_title("  spaced\n  out  ") == "spaced out"
    assert fallback_title("   ") == DEFAULT_TITLE
