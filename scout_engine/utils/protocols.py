"""
Shared Protocol definitions for type hints across the codebase.

These protocols define the interfaces expected from external backends
(generation, embeddings, search), allowing for dependency injection and
testing.
"""

from typing import Optional, Protocol

from scout_engine.models.llm import LLMResponse
from scout_engine.models.search import SearchResult


class LLMClientProtocol(Protocol):
    """Interface of the generation backend."""

    async def complete(
        self,
        model: str,
        messages: list[dict],
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Complete a chat conversation with the LLM.

        Args:
            model: Model identifier (e.g., "openai/gpt-4o-mini")
            messages: List of message dicts with "role" and "content"
            temperature: Sampling temperature
            max_tokens: Optional maximum tokens to generate
            json_mode: Request structured (JSON object) output

        Returns:
            LLMResponse with content and token usage
        """
        ...


class EmbeddingClientProtocol(Protocol):
    """Interface of the embedding backend."""

    model: str

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for a text."""
        ...


class SearchClientProtocol(Protocol):
    """Interface of the search/retrieval backend."""

    async def search(
        self,
        queries: list[str],
        limit: int = 5,
        bypass_cache: bool = False,
        include_raw_content: bool = False,
        location: Optional[str] = None,
    ) -> dict[str, list[SearchResult]]:
        """Run each query and return its results keyed by query."""
        ...

    async def scrape(
        self,
        url: str,
        bypass_cache: bool = False,
        include_raw_content: bool = False,
    ) -> SearchResult:
        """Fetch a page and return its extracted content."""
        ...
