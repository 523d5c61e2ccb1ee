"""
Pytest configuration and shared fixtures for the test suite.
"""

import json
from datetime import datetime, timezone

import pytest

from scout_engine.config import EngineConfig, SchedulerConfig
from scout_engine.llm.client import MockLLMClient
from scout_engine.llm.embeddings import MockEmbeddingClient
from scout_engine.models.enums import ScoutFrequency
from scout_engine.models.scout import Scout, ScoutLocation
from scout_engine.models.search import SearchResult
from scout_engine.store.memory import InMemoryExecutionStore
from scout_engine.store.sqlite import SQLiteExecutionStore


# ============================================================================
# Time
# ============================================================================

@pytest.fixture
def now():
    """Fixed evaluation time."""
    return datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Scout Fixtures
# ============================================================================

@pytest.fixture
def sample_location():
    """Create a sample structured location."""
    return ScoutLocation(city="Lisbon", country="Portugal", radius_km=25)


@pytest.fixture
def make_scout(sample_location):
    """Factory for complete, eligible scouts."""
    def _create(**overrides):
        fields = {
            "owner_id": "owner-1",
            "title": "Lisbon apartments",
            "goal": "Find two-bedroom apartments for rent under 1500 EUR",
            "description": "Long-term rentals near public transport",
            "location": sample_location,
            "search_queries": ["lisbon 2 bedroom apartment rent", "arrendamento T2 lisboa"],
            "frequency": ScoutFrequency.HOURLY,
        }
        fields.update(overrides)
        return Scout(**fields)
    return _create


@pytest.fixture
def sample_scout(make_scout):
    """Create a sample scout that has never run."""
    return make_scout()


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture
def memory_store():
    """Create an empty in-memory store."""
    return InMemoryExecutionStore()


@pytest.fixture
def sqlite_store(tmp_path):
    """Create an empty SQLite store in a temp directory."""
    return SQLiteExecutionStore(tmp_path / "scouts.db")


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Run a test against both store implementations."""
    if request.param == "memory":
        return InMemoryExecutionStore()
    return SQLiteExecutionStore(tmp_path / "scouts.db")


# ============================================================================
# Backend Fixtures
# ============================================================================

class FakeSearchClient:
    """Search backend double with canned results and pages."""

    def __init__(self, results=None, pages=None, scrape_errors=None):
        self.results = results or {}
        self.pages = pages or {}
        self.scrape_errors = scrape_errors or {}
        self.search_calls: list[list[str]] = []
        self.scrape_calls: list[str] = []

    async def search(self, queries, limit=5, bypass_cache=False, include_raw_content=False, location=None):
        self.search_calls.append(list(queries))
        return {q: list(self.results.get(q, [])) for q in queries}

    async def scrape(self, url, bypass_cache=False, include_raw_content=False):
        self.scrape_calls.append(url)
        if url in self.scrape_errors:
            raise self.scrape_errors[url]
        if url in self.pages:
            return self.pages[url]
        return SearchResult(url=url, title=f"Listing {url[-1]}", content=f"Details for {url}")


@pytest.fixture
def make_search_client():
    """Factory for fake search backends."""
    def _create(results=None, pages=None, scrape_errors=None):
        return FakeSearchClient(results=results, pages=pages, scrape_errors=scrape_errors)
    return _create


@pytest.fixture
def listing_results():
    """Three search results for the first sample query."""
    return {
        "lisbon 2 bedroom apartment rent": [
            SearchResult(url=f"https://rentals.example.com/listing/{i}", title=f"T2 listing {i}")
            for i in range(1, 4)
        ],
    }


@pytest.fixture
def decision():
    """Factory for think-step JSON responses."""
    def _create(action, queries=None, url=None, reasoning="next step"):
        return json.dumps({
            "action": action,
            "queries": queries or [],
            "url": url,
            "reasoning": reasoning,
        })
    return _create


@pytest.fixture
def summary():
    """Factory for summarize-step JSON responses."""
    def _create(text, done=False):
        return json.dumps({"summary": text, "done": done})
    return _create


@pytest.fixture
def make_llm_client():
    """Factory for scripted mock LLM clients."""
    def _create(responses):
        return MockLLMClient(responses=responses)
    return _create


@pytest.fixture
def mock_embedding_client():
    """Deterministic embedding client."""
    return MockEmbeddingClient(dimensions=16)


# ============================================================================
# Config Fixtures
# ============================================================================

@pytest.fixture
def engine_config():
    """Engine limits used by the agent loop tests."""
    return EngineConfig(
        model="test-model",
        max_steps=10,
        stale_step_limit=3,
        step_timeout_seconds=5,
        max_run_seconds=60,
    )


@pytest.fixture
def scheduler_config():
    """Scheduler limits with the production defaults."""
    return SchedulerConfig()
