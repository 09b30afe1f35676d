"""Tests for the LiteLLM client wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from coderag.rag.llm_client import (
    complete,
    embed_batch,
    env_var_for,
    provider_of,
    validate_api_key,
)


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4o-mini")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/gpt-4o-mini")


def test_validate_api_key_anthropic(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="ANTHROPIC_API_KEY"):
        validate_api_key("anthropic/claude-3-5-haiku-latest")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/nomic-embed-text")


def test_bare_model_treated_as_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert provider_of("text-embedding-3-small") == "openai"
    with pytest.raises(EnvironmentError):
        validate_api_key("text-embedding-3-small")


def test_env_var_for():
    assert env_var_for("voyage/voyage-code-3") == "VOYAGE_API_KEY"
    assert env_var_for("ollama/llama3") is None


# ------------------------------------------------------------------
# complete()
# ------------------------------------------------------------------


def _completion(content, total_tokens=None):
    response = MagicMock()
    response.choices[0].message.content = content
    response.usage.total_tokens = total_tokens
    return response


def test_complete_returns_content_and_tokens():
    with patch("coderag.rag.llm_client.litellm.completion", return_value=_completion("Hi!", 42)):
        assert complete("openai/gpt-4o-mini", [{"role": "user", "content": "Hi"}]) == ("Hi!", 42)


def test_complete_none_content_is_empty():
    with patch("coderag.rag.llm_client.litellm.completion", return_value=_completion(None)):
        assert complete("openai/gpt-4o-mini", []) == ("", None)


def test_complete_passes_params_to_litellm():
    with patch(
        "coderag.rag.llm_client.litellm.completion", return_value=_completion("ok")
    ) as mock_completion:
        complete("openai/gpt-4o-mini", [{"role": "user", "content": "x"}], max_tokens=64)
    kwargs = mock_completion.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert kwargs["max_tokens"] == 64
    assert kwargs["num_retries"] == 3


# ------------------------------------------------------------------
# embed_batch()
# ------------------------------------------------------------------


def test_embed_batch_single_call_in_input_order():
    response = MagicMock()
    response.data = [
        {"index": 1, "embedding": [0.0, 1.0]},
        {"index": 0, "embedding": [1.0, 0.0]},
    ]
    with patch(
        "coderag.rag.llm_client.litellm.embedding", return_value=response
    ) as mock_embedding:
        vectors = embed_batch("openai/text-embedding-3-small", ["a", "b"])
    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    mock_embedding.assert_called_once()
    assert mock_embedding.call_args.kwargs["input"] == ["a", "b"]


def test_embed_batch_empty_makes_no_call():
    with patch("coderag.rag.llm_client.litellm.embedding") as mock_embedding:
        assert embed_batch("openai/text-embedding-3-small", []) == []
    mock_embedding.assert_not_called()
