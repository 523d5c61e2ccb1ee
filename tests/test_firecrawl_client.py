"""
Tests for the Firecrawl client.

Uses mocked HTTP responses to test client logic without making real API calls.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from tenacity import wait_none

from scout_engine.models.enums import FirecrawlKeyStatus
from scout_engine.search.firecrawl_client import FirecrawlClient, SearchBackendError


SEARCH_RESPONSE = {
    "success": True,
    "data": [
        {
            "url": "https://rentals.example.com/listing/1",
            "title": "T2 in Arroios",
            "description": "Two bedrooms, 1400 EUR",
            "markdown": "# T2 in Arroios\n\nBright apartment.",
        },
        {
            "url": "https://rentals.example.com/listing/2",
            "metadata": {"title": "T2 in Alvalade", "description": "1450 EUR"},
        },
        {"title": "no url, skipped"},
    ],
}

SCRAPE_RESPONSE = {
    "success": True,
    "data": {
        "markdown": "# Listing\n\n2 bedrooms, balcony.",
        "metadata": {
            "title": "T2 with balcony",
            "sourceURL": "https://rentals.example.com/listing/3",
        },
    },
}


def _response(status_code, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json = MagicMock(return_value=payload if payload is not None else {})
    response.text = ""
    response.reason_phrase = ""
    return response


def _patched_client(mock_client, request_mock):
    mock_instance = AsyncMock()
    mock_instance.request = request_mock
    mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_instance.__aexit__ = AsyncMock(return_value=False)
    mock_client.return_value = mock_instance
    return mock_instance


@pytest.fixture
def client():
    return FirecrawlClient(api_key="fc-test", retry_wait=wait_none())


class TestSearchBackendError:
    """Tests for error classification."""

    @pytest.mark.parametrize("status,retryable", [
        (None, True), (429, True), (500, True), (503, True),
        (400, False), (401, False), (404, False),
    ])
    def test_retryable(self, status, retryable):
        assert SearchBackendError("x", status_code=status).retryable is retryable


class TestFirecrawlClient:
    """Tests for FirecrawlClient."""

    def test_requires_api_key(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                FirecrawlClient()
        assert "API key required" in str(exc_info.value)

    def test_strips_api_key(self):
        assert FirecrawlClient(api_key="  fc-key\n").api_key == "fc-key"

    @pytest.mark.asyncio
    async def test_search_parses_results(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            request = AsyncMock(return_value=_response(200, SEARCH_RESPONSE))
            _patched_client(mock_client, request)

            results = await client.search(["lisbon t2"], limit=3, bypass_cache=True)

        found = results["lisbon t2"]
        assert [r.url for r in found] == [
            "https://rentals.example.com/listing/1",
            "https://rentals.example.com/listing/2",
        ]
        assert found[0].content.startswith("# T2 in Arroios")
        assert found[1].title == "T2 in Alvalade"

        args, kwargs = request.call_args
        assert args == ("POST", "https://api.firecrawl.dev/v1/search")
        assert kwargs["json"]["limit"] == 3
        assert kwargs["json"]["scrapeOptions"]["maxAge"] == 0
        assert kwargs["headers"]["Authorization"] == "Bearer fc-test"

    @pytest.mark.asyncio
    async def test_search_runs_each_query(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            request = AsyncMock(return_value=_response(200, SEARCH_RESPONSE))
            _patched_client(mock_client, request)

            results = await client.search(["a", "b"], location="Lisbon, Portugal")

        assert set(results) == {"a", "b"}
        assert request.call_count == 2
        assert request.call_args.kwargs["json"]["location"] == "Lisbon, Portugal"

    @pytest.mark.asyncio
    async def test_failed_query_cancels_the_others(self, client):
        cancelled = []

        async def search_one(query, **kwargs):
            if query == "bad":
                await asyncio.sleep(0.01)
                raise SearchBackendError("Invalid query", status_code=400)
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(query)
                raise
            return []

        with patch.object(client, "search_one", side_effect=search_one):
            with pytest.raises(SearchBackendError):
                await client.search(["bad", "slow-1", "slow-2"])

        assert sorted(cancelled) == ["slow-1", "slow-2"]

    @pytest.mark.asyncio
    async def test_search_without_queries_makes_no_request(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            assert await client.search([]) == {}
        mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_scrape_returns_page(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            request = AsyncMock(return_value=_response(200, SCRAPE_RESPONSE))
            _patched_client(mock_client, request)

            page = await client.scrape("https://rentals.example.com/listing/3", include_raw_content=True)

        assert page.title == "T2 with balcony"
        assert "balcony" in page.content
        assert request.call_args.kwargs["json"]["formats"] == ["markdown", "rawHtml"]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            request = AsyncMock(return_value=_response(404, {"error": "Page not found"}))
            _patched_client(mock_client, request)

            with pytest.raises(SearchBackendError) as exc_info:
                await client.scrape("https://rentals.example.com/gone")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Page not found"
        assert request.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried_then_raised(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            request = AsyncMock(return_value=_response(503, {"error": "Overloaded"}))
            _patched_client(mock_client, request)

            with pytest.raises(SearchBackendError) as exc_info:
                await client.search(["lisbon t2"])

        assert exc_info.value.status_code == 503
        assert request.call_count == 3

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            request = AsyncMock(side_effect=[
                httpx.ConnectError("connection reset"),
                _response(200, SCRAPE_RESPONSE),
            ])
            _patched_client(mock_client, request)

            page = await client.scrape("https://rentals.example.com/listing/3")

        assert page.title == "T2 with balcony"
        assert request.call_count == 2

    @pytest.mark.asyncio
    async def test_unsuccessful_payload_raises(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            request = AsyncMock(return_value=_response(200, {"success": False, "error": "Bad query"}))
            _patched_client(mock_client, request)

            with pytest.raises(SearchBackendError) as exc_info:
                await client.search(["???"])

        assert "Bad query" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_credit_usage(self, client):
        payload = {"success": True, "data": {"remaining_credits": 420, "plan_credits": 500}}
        with patch("httpx.AsyncClient") as mock_client:
            _patched_client(mock_client, AsyncMock(return_value=_response(200, payload)))

            usage = await client.get_credit_usage(is_custom_key=True)

        assert usage.status == FirecrawlKeyStatus.ACTIVE
        assert usage.remaining_credits == 420
        assert usage.is_custom_key

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_key_reports_invalid(self, client, status):
        with patch("httpx.AsyncClient") as mock_client:
            _patched_client(mock_client, AsyncMock(return_value=_response(status, {"error": "Unauthorized"})))

            usage = await client.get_credit_usage()

        assert usage.status == FirecrawlKeyStatus.INVALID
        assert usage.error == "API key is invalid"
