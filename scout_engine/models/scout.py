"""
Scout Engine - Scout Schemas

Models for the standing scout configuration and the snapshot of it that
an execution runs against.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from scout_engine.models.enums import ScoutFrequency


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class ScoutLocation(BaseModel):
    """Structured location filter for a scout's searches."""

    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    radius_km: Optional[float] = Field(default=None, gt=0.0)

    def describe(self) -> str:
        """Human-readable location string for prompts."""
        parts = [p for p in (self.city, self.region, self.country) if p]
        text = ", ".join(parts) if parts else "anywhere"
        if self.radius_km:
            text += f" (within {self.radius_km:g} km)"
        return text


class Scout(BaseModel):
    """A standing instruction to search, read and summarize on a schedule."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    title: str = ""
    goal: str = ""
    description: str = ""
    location: Optional[ScoutLocation] = None
    search_queries: list[str] = Field(default_factory=list)
    frequency: Optional[ScoutFrequency] = None
    is_active: bool = True
    last_run_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_eligible(self) -> bool:
        """Whether every required field is filled in."""
        from scout_engine.scheduler.due import is_scout_eligible

        return is_scout_eligible(
            title=self.title,
            goal=self.goal,
            description=self.description,
            location=self.location,
            search_queries=self.search_queries,
            frequency=self.frequency,
        )

    def is_due(self, now: datetime) -> bool:
        """Whether the scout should run at ``now``."""
        from scout_engine.scheduler.due import should_run_scout

        return should_run_scout(
            frequency=self.frequency,
            last_run_at=self.last_run_at,
            is_active=self.is_active,
            title=self.title,
            goal=self.goal,
            description=self.description,
            location=self.location,
            search_queries=self.search_queries,
            now=now,
        )

    def snapshot(self) -> "ScoutSnapshot":
        """Freeze the configuration an execution will run against."""
        return ScoutSnapshot(
            scout_id=self.id,
            owner_id=self.owner_id,
            title=self.title,
            goal=self.goal,
            description=self.description,
            location=self.location,
            search_queries=list(self.search_queries),
        )


class ScoutSnapshot(BaseModel):
    """
    Scout configuration captured when an execution is claimed.

    Owner edits made while a run is in flight do not affect it.
    """

    model_config = ConfigDict(frozen=True)

    scout_id: str
    owner_id: str
    title: str
    goal: str
    description: str
    location: Optional[ScoutLocation] = None
    search_queries: list[str] = Field(default_factory=list)
