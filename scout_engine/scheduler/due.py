"""
Due-ness of scouts.

Pure functions of their inputs: the dispatcher, the tests and any
storage-side query all agree on when a scout should run.
"""

from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Union

from scout_engine.models.enums import ScoutFrequency


FREQUENCY_THRESHOLDS: dict[ScoutFrequency, timedelta] = {
    ScoutFrequency.HOURLY: timedelta(hours=1),
    ScoutFrequency.EVERY_3_DAYS: timedelta(hours=72),
    ScoutFrequency.WEEKLY: timedelta(hours=168),
}


def _coerce_frequency(frequency: Union[ScoutFrequency, str, None]) -> Optional[ScoutFrequency]:
    if frequency is None or isinstance(frequency, ScoutFrequency):
        return frequency
    try:
        return ScoutFrequency(frequency)
    except ValueError:
        return None


def _filled(text: Optional[str]) -> bool:
    return bool(text and text.strip())


def is_scout_eligible(
    title: Optional[str],
    goal: Optional[str],
    description: Optional[str],
    location: Any,
    search_queries: Optional[Iterable[str]],
    frequency: Union[ScoutFrequency, str, None],
) -> bool:
    """
    Check that a scout's configuration is complete.

    Args:
        title: Scout title
        goal: What the scout is looking for
        description: Longer description
        location: Structured location filter (any non-null value)
        search_queries: Configured search queries
        frequency: Run frequency

    Returns:
        True if every required field is present and at least one
        non-blank search query exists
    """
    if not (_filled(title) and _filled(goal) and _filled(description)):
        return False
    if location is None:
        return False
    if not any(_filled(q) for q in (search_queries or [])):
        return False
    return frequency is not None and frequency != ""


def should_run_scout(
    frequency: Union[ScoutFrequency, str, None],
    last_run_at: Optional[datetime],
    is_active: bool,
    title: Optional[str],
    goal: Optional[str],
    description: Optional[str],
    location: Any,
    search_queries: Optional[Iterable[str]],
    now: datetime,
) -> bool:
    """
    Decide whether a scout is due to run at ``now``.

    Inactive or incomplete scouts are never due. A scout that has never
    run is due. Otherwise the time since ``last_run_at`` must reach the
    threshold of its frequency (1h, 72h, 168h). Unknown frequencies are
    never due.

    Returns:
        True if the scout should be dispatched
    """
    if not is_active:
        return False
    if not is_scout_eligible(title, goal, description, location, search_queries, frequency):
        return False

    if last_run_at is None:
        return True

    freq = _coerce_frequency(frequency)
    if freq is None:
        return False

    return now - last_run_at >= FREQUENCY_THRESHOLDS[freq]


def due_order_key(scout) -> tuple[int, float, str]:
    """Never-run scouts first, then oldest last run, then id."""
    if scout.last_run_at is None:
        return (0, 0.0, scout.id)
    return (1, scout.last_run_at.timestamp(), scout.id)


def select_due_scouts(scouts: Iterable, now: datetime, limit: int) -> list:
    """
    Pick the scouts to claim in one dispatch cycle.

    Args:
        scouts: Candidate scouts
        now: Evaluation time
        limit: Batch cap for the cycle

    Returns:
        At most ``limit`` due scouts, oldest-first
    """
    if limit <= 0:
        return []
    due = [s for s in scouts if s.is_due(now)]
    due.sort(key=due_order_key)
    return due[:limit]
