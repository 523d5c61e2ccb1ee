"""Tests for scout due-ness and batch selection."""

from datetime import timedelta

import pytest

from scout_engine.models.enums import ScoutFrequency
from scout_engine.scheduler.due import (
    is_scout_eligible,
    select_due_scouts,
    should_run_scout,
)


def _predicate(scout, now, **overrides):
    fields = {
        "frequency": scout.frequency,
        "last_run_at": scout.last_run_at,
        "is_active": scout.is_active,
        "title": scout.title,
        "goal": scout.goal,
        "description": scout.description,
        "location": scout.location,
        "search_queries": scout.search_queries,
        "now": now,
    }
    fields.update(overrides)
    return should_run_scout(**fields)


class TestEligibility:
    """Tests for configuration completeness."""

    def test_complete_scout_is_eligible(self, sample_scout):
        assert sample_scout.is_eligible()

    @pytest.mark.parametrize("field", ["title", "goal", "description"])
    def test_blank_text_field_is_ineligible(self, make_scout, field):
        assert not make_scout(**{field: "   "}).is_eligible()

    def test_missing_location_is_ineligible(self, make_scout):
        assert not make_scout(location=None).is_eligible()

    def test_empty_queries_are_ineligible(self, make_scout):
        assert not make_scout(search_queries=[]).is_eligible()
        assert not make_scout(search_queries=["", "  "]).is_eligible()

    def test_missing_frequency_is_ineligible(self, make_scout):
        assert not make_scout(frequency=None).is_eligible()

    def test_accepts_raw_values(self):
        assert is_scout_eligible("t", "g", "d", {"city": "Porto"}, ["q"], "weekly")


class TestShouldRunScout:
    """Tests for the due predicate."""

    def test_never_run_scout_is_due(self, sample_scout, now):
        assert _predicate(sample_scout, now)

    def test_inactive_scout_is_never_due(self, sample_scout, now):
        assert not _predicate(sample_scout, now, is_active=False)

    def test_incomplete_scout_is_never_due(self, sample_scout, now):
        assert not _predicate(sample_scout, now, goal="")

    def test_hourly_scout_run_59_minutes_ago_is_not_due(self, sample_scout, now):
        assert not _predicate(sample_scout, now, last_run_at=now - timedelta(minutes=59))

    def test_hourly_scout_run_61_minutes_ago_is_due(self, sample_scout, now):
        assert _predicate(sample_scout, now, last_run_at=now - timedelta(minutes=61))

    def test_threshold_is_inclusive(self, sample_scout, now):
        assert _predicate(sample_scout, now, last_run_at=now - timedelta(hours=1))

    @pytest.mark.parametrize("frequency,hours", [
        (ScoutFrequency.EVERY_3_DAYS, 72),
        (ScoutFrequency.WEEKLY, 168),
    ])
    def test_longer_frequencies(self, sample_scout, now, frequency, hours):
        just_before = now - timedelta(hours=hours) + timedelta(minutes=1)
        just_after = now - timedelta(hours=hours) - timedelta(minutes=1)

        assert not _predicate(sample_scout, now, frequency=frequency, last_run_at=just_before)
        assert _predicate(sample_scout, now, frequency=frequency, last_run_at=just_after)

    def test_unknown_frequency_is_never_due(self, sample_scout, now):
        assert not _predicate(
            sample_scout, now, frequency="monthly", last_run_at=now - timedelta(days=400)
        )

    def test_model_is_due_delegates(self, make_scout, now):
        scout = make_scout(last_run_at=now - timedelta(minutes=30))
        assert not scout.is_due(now)
        assert scout.is_due(now + timedelta(minutes=30))


class TestSelectDueScouts:
    """Tests for per-cycle selection."""

    def test_batch_is_capped(self, make_scout, now):
        scouts = [make_scout() for _ in range(25)]
        assert len(select_due_scouts(scouts, now, limit=20)) == 20

    def test_orders_never_run_first_then_oldest(self, make_scout, now):
        recent = make_scout(id="c", last_run_at=now - timedelta(hours=2))
        oldest = make_scout(id="b", last_run_at=now - timedelta(hours=10))
        never = make_scout(id="z", last_run_at=None)
        not_due = make_scout(id="a", last_run_at=now - timedelta(minutes=5))

        selected = select_due_scouts([recent, not_due, oldest, never], now, limit=20)

        assert [s.id for s in selected] == ["z", "b", "c"]

    def test_zero_limit_selects_nothing(self, sample_scout, now):
        assert select_due_scouts([sample_scout], now, limit=0) == []
