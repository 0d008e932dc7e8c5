"""OpenAI embedding client."""

from __future__ import annotations

from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from docsync.config.logger import app_logger
from docsync.config.settings import settings
from docsync.exceptions import EmbeddingError
from docsync.services.rate_limiter import RateLimiter
from docsync.utils.retry import DEFAULT_RETRY, RetryConfig, with_retry

_openai_client: AsyncOpenAI | None = None


def get_openai_client() -> AsyncOpenAI:
    """Return a singleton OpenAI client."""
    global _openai_client
    if _openai_client is None:
        if not settings.OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY must be configured")
        _openai_client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        app_logger.info("OpenAI client initialized")
    return _openai_client


class EmbeddingClient:
    """Batch embedding with order preservation and strict dimension checks."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        rate_limiter: Optional[RateLimiter] = None,
        retry: RetryConfig = DEFAULT_RETRY,
    ) -> None:
        self._client = client
        self.model = model
        self.dimensions = dimensions
        self.rate_limiter = rate_limiter
        self.retry = retry

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed ``texts`` in one request, returning vectors in input order.

        Any vector whose length differs from ``dimensions`` fails the whole batch.
        """
        if not texts:
            return []

        async def call():
            if self.rate_limiter is not None:
                await self.rate_limiter.wait_if_needed()
            return await self.client.embeddings.create(
                model=self.model,
                input=list(texts),
                dimensions=self.dimensions,
            )

        try:
            response = await with_retry(call, self.retry)
        except Exception as e:
            raise EmbeddingError(
                "Failed to generate embeddings",
                {"text_count": len(texts), "error": str(e)},
            ) from e

        embeddings = [item.embedding for item in sorted(response.data, key=lambda item: item.index)]
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                "Embedding count does not match input count",
                {"expected": len(texts), "actual": len(embeddings)},
            )
        for embedding in embeddings:
            if len(embedding) != self.dimensions:
                raise EmbeddingError(
                    "Invalid embedding dimensions",
                    {"expected": self.dimensions, "actual": len(embedding)},
                )
        return embeddings

    async def embed_single(self, text: str) -> List[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_with_batching(self, texts: Sequence[str], batch_size: int = 32) -> List[List[float]]:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        results: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            results.extend(await self.embed_batch(texts[start : start + batch_size]))
        return results
