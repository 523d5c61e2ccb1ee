"""
Loop guard for the agent loop.

Combines the hard step ceiling, the visited query/URL set and the
diminishing-returns rule that stops a run once several consecutive
actions add no new source.
"""

from urllib.parse import urlsplit, urlunsplit


def normalize_query(query: str) -> str:
    """Case- and whitespace-insensitive form of a search query."""
    return " ".join(query.lower().split())


def normalize_url(url: str) -> str:
    """Canonical form of a URL for visited-set comparison."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/") or "/"
    return urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        path,
        parts.query,
        "",  # fragment never changes the fetched page
    ))


class LoopGuard:
    """Bookkeeping that keeps one execution bounded and non-repetitive."""

    def __init__(self, max_steps: int, stale_step_limit: int):
        """
        Args:
            max_steps: Maximum number of steps that may be recorded
            stale_step_limit: Consecutive actions without a new source
                before the run is considered exhausted
        """
        self.max_steps = max_steps
        self.stale_step_limit = stale_step_limit
        self.steps_recorded = 0
        self.stale_actions = 0
        self._queries: set[str] = set()
        self._urls: set[str] = set()
        self._sources: set[str] = set()

    # Step ceiling

    @property
    def exhausted(self) -> bool:
        return self.steps_recorded >= self.max_steps

    def record_step(self) -> None:
        if self.exhausted:
            raise RuntimeError(f"Step ceiling of {self.max_steps} already reached")
        self.steps_recorded += 1

    # Visited set

    def is_new_query(self, query: str) -> bool:
        return normalize_query(query) not in self._queries

    def visit_query(self, query: str) -> None:
        self._queries.add(normalize_query(query))

    def is_new_url(self, url: str) -> bool:
        return normalize_url(url) not in self._urls

    def visit_url(self, url: str) -> None:
        self._urls.add(normalize_url(url))

    # Diminishing returns

    def add_sources(self, urls) -> int:
        """Register discovered sources; returns how many were new."""
        new = 0
        for url in urls:
            key = normalize_url(url)
            if key not in self._sources:
                self._sources.add(key)
                new += 1
        return new

    def record_action(self, new_sources: int) -> None:
        """Track a search/read action and whether it found anything new."""
        if new_sources > 0:
            self.stale_actions = 0
        else:
            self.stale_actions += 1

    @property
    def stalled(self) -> bool:
        return self.stale_actions >= self.stale_step_limit
