"""
Firecrawl client for web search and page extraction.

Uses the Firecrawl v1 REST API to search the web and scrape pages into
markdown.
API documentation: https://docs.firecrawl.dev/api-reference/introduction
"""

import asyncio
import logging
import os
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from scout_engine.models.enums import FirecrawlKeyStatus
from scout_engine.models.search import CreditUsage, SearchResult


logger = logging.getLogger(__name__)


class SearchBackendError(Exception):
    """The search backend was unreachable or returned an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Connection failures, rate limits and server errors are transient."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500

    def __str__(self) -> str:
        if self.status_code is None:
            return f"Search backend unavailable: {self.message}"
        return f"Search backend error {self.status_code}: {self.message}"


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, SearchBackendError) and exc.retryable


class FirecrawlClient:
    """
    Client for the Firecrawl search and scrape endpoints.

    Transient failures (transport errors, 429, 5xx) are retried with
    exponential backoff before surfacing as SearchBackendError.
    """

    BASE_URL = "https://api.firecrawl.dev/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        retry_wait=None,
        base_url: Optional[str] = None,
    ):
        """
        Initialize the Firecrawl client.

        Args:
            api_key: Firecrawl API key. If not provided, reads from FIRECRAWL_API_KEY env var.
            timeout: HTTP request timeout in seconds
            max_attempts: Attempts per request for transient failures
            retry_wait: Optional tenacity wait strategy (defaults to exponential backoff)
            base_url: Override the API base URL (self-hosted deployments)
        """
        api_key = api_key or os.getenv("FIRECRAWL_API_KEY")
        if not api_key or not api_key.strip():
            raise ValueError(
                "Firecrawl API key required. Set FIRECRAWL_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self.api_key = api_key.strip()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request_once(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Send one request and map failures to SearchBackendError."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=self._headers(),
                    json=body,
                )
        except httpx.HTTPError as e:
            raise SearchBackendError(str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            raise SearchBackendError(
                _error_message(response),
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SearchBackendError(
                "Response was not valid JSON", status_code=response.status_code
            ) from e

        if isinstance(data, dict) and data.get("success") is False:
            raise SearchBackendError(
                data.get("error") or "Request was not successful",
                status_code=response.status_code,
            )
        return data

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
    ) -> dict[str, Any]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying Firecrawl {method} {path} "
                        f"(attempt {attempt.retry_state.attempt_number})"
                    )
                return await self._request_once(method, path, body)

    @staticmethod
    def _formats(include_raw_content: bool) -> list[str]:
        formats = ["markdown"]
        if include_raw_content:
            formats.append("rawHtml")
        return formats

    async def search_one(
        self,
        query: str,
        limit: int = 5,
        bypass_cache: bool = False,
        include_raw_content: bool = False,
        location: Optional[str] = None,
    ) -> list[SearchResult]:
        """
        Search the web for a single query.

        Args:
            query: Search query string
            limit: Maximum number of results
            bypass_cache: Force fresh scrapes of result pages
            include_raw_content: Also return raw HTML
            location: Optional location hint for localized results

        Returns:
            List of SearchResult
        """
        scrape_options: dict[str, Any] = {"formats": self._formats(include_raw_content)}
        if bypass_cache:
            scrape_options["maxAge"] = 0

        body: dict[str, Any] = {
            "query": query,
            "limit": limit,
            "scrapeOptions": scrape_options,
        }
        if location:
            body["location"] = location

        data = await self._request("POST", "/search", body)

        results = []
        for item in data.get("data") or []:
            url = item.get("url")
            if not url:
                continue
            metadata = item.get("metadata") or {}
            results.append(SearchResult(
                url=url,
                title=item.get("title") or metadata.get("title") or "",
                description=item.get("description") or metadata.get("description") or "",
                content=item.get("markdown") or "",
                raw_content=item.get("rawHtml"),
            ))
        return results

    async def search(
        self,
        queries: list[str],
        limit: int = 5,
        bypass_cache: bool = False,
        include_raw_content: bool = False,
        location: Optional[str] = None,
    ) -> dict[str, list[SearchResult]]:
        """
        Run several queries concurrently.

        Args:
            queries: Query strings
            limit: Maximum results per query
            bypass_cache: Force fresh scrapes of result pages
            include_raw_content: Also return raw HTML
            location: Optional location hint

        Returns:
            Dict mapping each query to its results

        Raises:
            SearchBackendError: If any query fails after retries
        """
        if not queries:
            return {}

        tasks = [
            asyncio.create_task(self.search_one(
                q,
                limit=limit,
                bypass_cache=bypass_cache,
                include_raw_content=include_raw_content,
                location=location,
            ))
            for q in queries
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # First failure wins; stop the other queries before surfacing it
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return dict(zip(queries, results))

    async def scrape(
        self,
        url: str,
        bypass_cache: bool = False,
        include_raw_content: bool = False,
    ) -> SearchResult:
        """
        Fetch a page and extract its content.

        Args:
            url: Page URL
            bypass_cache: Force a fresh fetch
            include_raw_content: Also return raw HTML

        Returns:
            SearchResult with extracted markdown
        """
        body: dict[str, Any] = {
            "url": url,
            "formats": self._formats(include_raw_content),
        }
        if bypass_cache:
            body["maxAge"] = 0

        data = await self._request("POST", "/scrape", body)
        page = data.get("data") or {}
        metadata = page.get("metadata") or {}

        return SearchResult(
            url=metadata.get("sourceURL") or url,
            title=metadata.get("title") or "",
            description=metadata.get("description") or "",
            content=page.get("markdown") or "",
            raw_content=page.get("rawHtml"),
        )

    async def get_credit_usage(self, is_custom_key: bool = False) -> CreditUsage:
        """
        Get remaining credits for the configured key.

        An unauthorized key is reported as status INVALID rather than
        raised, so callers can show it to the key's owner.

        Args:
            is_custom_key: Whether the key was supplied by the user

        Returns:
            CreditUsage
        """
        try:
            data = await self._request("GET", "/team/credit-usage")
        except SearchBackendError as e:
            if e.status_code in (401, 403):
                logger.warning(f"Firecrawl key rejected: {e.status_code}")
                return CreditUsage(
                    status=FirecrawlKeyStatus.INVALID,
                    is_custom_key=is_custom_key,
                    error="API key is invalid",
                )
            raise

        usage = data.get("data") or {}
        return CreditUsage(
            remaining_credits=usage.get("remaining_credits"),
            plan_credits=usage.get("plan_credits"),
            billing_period_start=usage.get("billing_period_start"),
            billing_period_end=usage.get("billing_period_end"),
            status=FirecrawlKeyStatus.ACTIVE,
            is_custom_key=is_custom_key,
        )


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data)[:200]
    return str(data)[:200]
