"""Voyage AI embeddings client.

Embeds queries and documents through the Voyage /v1/embeddings endpoint.
The output dimension is fixed process-wide and must match the vector column
of the chunk table.
"""
import logging
from typing import Literal, Optional

import httpx

from ..config import EmbeddingsConfig
from ..errors import EmbeddingError, RateLimitedError
from .retry import call_with_retry

logger = logging.getLogger(__name__)

EMBED_DIMENSIONS = 1024

InputType = Literal["query", "document"]


def to_pgvector(vector: list[float]) -> str:
    """Format a vector as a pgvector literal."""
    return "[" + ",".join(str(float(x)) for x in vector) + "]"


class EmbeddingClient:
    """Async Voyage embeddings client with rate-limit retries."""

    def __init__(self, config: Optional[EmbeddingsConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or EmbeddingsConfig()
        self._client = client

    @property
    def dimension(self) -> int:
        return self.config.dimension

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    async def embed_one(self, text: str, input_type: InputType = "query") -> list[float]:
        """Embed a single text.

        Raises:
            RateLimitedError: Still rate limited after all retries
            EmbeddingError: Any other provider failure
        """
        vectors = await call_with_retry(
            self._request,
            [text],
            input_type,
            self.config.timeout,
            max_attempts=self.config.max_retries,
            backoff_seconds=self.config.backoff_seconds,
        )
        return vectors[0]

    async def embed_batch(self, texts: list[str], input_type: InputType = "document") -> list[list[float]]:
        """Embed texts in groups of batch_size, preserving order.

        A rate-limited group is retried as a whole, so no group is dropped.
        """
        if not texts:
            return []

        results: list[list[float]] = []
        batch_size = self.config.batch_size

        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            vectors = await call_with_retry(
                self._request,
                batch,
                input_type,
                self.config.batch_timeout,
                max_attempts=self.config.max_retries,
                backoff_seconds=self.config.backoff_seconds,
            )
            results.extend(vectors)

            if start + batch_size < len(texts):
                logger.info(f"Embedded {start + len(batch)}/{len(texts)} texts")

        return results

    async def _request(self, texts: list[str], input_type: InputType, timeout: float) -> list[list[float]]:
        payload = {
            "input": texts,
            "model": self.config.model,
            "input_type": input_type,
            "output_dimension": self.config.dimension,
            "output_dtype": "float",
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

        if self._client is not None:
            response = await self._client.post(self.config.base_url, json=payload, headers=headers, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(self.config.base_url, json=payload, headers=headers)

        if response.status_code == 429:
            raise RateLimitedError(f"Voyage embed error (429): {response.text}")
        if not response.is_success:
            raise EmbeddingError(f"Voyage embed error ({response.status_code}): {response.text}")

        try:
            data = response.json()["data"]
            vectors = [item["embedding"] for item in sorted(data, key=lambda d: d.get("index", 0))]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingError(f"Malformed embeddings response: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        for vector in vectors:
            if len(vector) != self.config.dimension:
                raise EmbeddingError(f"Expected dimension {self.config.dimension}, got {len(vector)}")

        return vectors
