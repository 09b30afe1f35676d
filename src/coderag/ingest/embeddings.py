"""Embedding client: LiteLLM embeddings behind the daily embedding quota.

A batch is refused up front, with no partial work, when it would push the
day's count past the limit. Units reserved for a batch whose provider call
fails are refunded.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from coderag.db.cache import QuotaCounter
from coderag.errors import QuotaExceededError
from coderag.rag import llm_client

logger = logging.getLogger(__name__)

EMBEDDING_CAPABILITY = "embedding"


class EmbeddingClient:
    """Embed texts with one model, counting every text against the quota.

    Args:
        quota: Daily counter for the ``embedding`` capability.
        model: LiteLLM embedding model string (provider/model format).
        dimensions: Expected vector length; other lengths are rejected.
    """

    def __init__(
        self,
        quota: QuotaCounter,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
        num_retries: int = 3,
    ) -> None:
        self._quota = quota
        self.model = model
        self.dimensions = dimensions
        self.num_retries = num_retries

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one vector per text, in input order.

        Raises:
            QuotaExceededError: The batch would exceed today's limit. Nothing
                was sent and the counter is unchanged.
            ValueError: The provider returned the wrong number or size of
                vectors (units are refunded).
        """
        if not texts:
            return []

        if not self._quota.try_consume(len(texts)):
            logger.warning(
                "Embedding quota refused batch of %d (used %d of %d today)",
                len(texts),
                self._quota.used(),
                self._quota.limit,
            )
            raise QuotaExceededError(EMBEDDING_CAPABILITY, self._quota.limit, len(texts))

        try:
            vectors = llm_client.embed_batch(self.model, texts, num_retries=self.num_retries)
            self._check(vectors, len(texts))
        except Exception:
            self._quota.refund(len(texts))
            raise
        return vectors

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query string."""
        return self.embed([text])[0]

    def usage(self) -> dict[str, int]:
        return self._quota.usage()

    def _check(self, vectors: list[list[float]], expected: int) -> None:
        if len(vectors) != expected:
            raise ValueError(
                f"Embedding model '{self.model}' returned {len(vectors)} vectors for {expected} texts"
            )
        for v in vectors:
            if len(v) != self.dimensions:
                raise ValueError(
                    f"Embedding model '{self.model}' returned {len(v)} dimensions, "
                    f"expected {self.dimensions}"
                )
