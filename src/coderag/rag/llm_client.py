"""LiteLLM client wrapper with retry, backoff, and API key validation.

All completion + embedding calls in coderag route through this module.
LiteLLM's built-in retry is used (num_retries=3, exponential backoff).
"""

from __future__ import annotations

import os
from collections.abc import Sequence

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


def env_var_for(model: str) -> str | None:
    """Env var holding the API key for *model*'s provider; None when no key is checked."""
    return _PROVIDER_ENV.get(provider_of(model))


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = env_var_for(model)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 1024,
    temperature: float = 0.0,
    num_retries: int = 3,
) -> tuple[str, int | None]:
    """Call litellm.completion() with retry/backoff.

    Returns:
        ``(content, total_tokens)``; content is ``""`` when the model returned
        nothing, total_tokens is None when the provider reports no usage.
    """
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    content = response.choices[0].message.content or ""
    usage = getattr(response, "usage", None)
    total = getattr(usage, "total_tokens", None) if usage is not None else None
    return content, total if isinstance(total, int) else None


def embed_batch(model: str, texts: Sequence[str], num_retries: int = 3) -> list[list[float]]:
    """Embed *texts* in one litellm.embedding() call, preserving input order."""
    if not texts:
        return []
    response = litellm.embedding(
        model=model,
        input=list(texts),
        num_retries=num_retries,
    )
    data = response.data
    if _has_index(data):
        data = sorted(data, key=lambda d: d["index"])
    return [list(d["embedding"]) for d in data]


def _has_index(data: Sequence) -> bool:
    return all(isinstance(d, dict) and "index" in d for d in data)
