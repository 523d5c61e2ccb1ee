"""
Embedding client.

Turns execution summaries and recall queries into fixed-length vectors
using the OpenAI embeddings endpoint.
"""

import hashlib
import math
import os
from typing import Optional

from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential

from scout_engine.config import DEFAULT_EMBEDDING_MODEL


class EmbeddingClient:
    """Async client for the OpenAI embeddings API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_EMBEDDING_MODEL,
        dimensions: Optional[int] = None,
        base_url: Optional[str] = None,
    ):
        """
        Initialize the embedding client.

        Args:
            api_key: OpenAI API key. If not provided, reads from OPENAI_API_KEY env var.
            model: Embedding model identifier
            dimensions: Optional output dimension for models that support shortening
            base_url: Optional alternative OpenAI-compatible endpoint
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenAI API key required. Set OPENAI_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self.model = model
        self.dimensions = dimensions
        self.client = AsyncOpenAI(api_key=self.api_key, base_url=base_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector
        """
        kwargs = {"model": self.model, "input": text}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions

        response = await self.client.embeddings.create(**kwargs)
        return list(response.data[0].embedding)


class MockEmbeddingClient:
    """
    Deterministic embedding client for testing.

    Hashes character trigrams into a fixed number of buckets and
    normalizes, so similar texts get similar vectors and the same text
    always gets the same vector.
    """

    def __init__(self, dimensions: int = 16, model: str = "mock-embedding"):
        self.dimensions = dimensions
        self.model = model
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        vector = [0.0] * self.dimensions
        normalized = text.lower()
        for i in range(max(len(normalized) - 2, 1)):
            gram = normalized[i:i + 3]
            digest = hashlib.sha1(gram.encode("utf-8")).digest()
            vector[digest[0] % self.dimensions] += 1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]
