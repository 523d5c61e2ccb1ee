"""
Scout Engine - Search Backend Schemas

Models returned by the search/retrieval backend client.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from scout_engine.models.enums import FirecrawlKeyStatus


class SearchResult(BaseModel):
    """A single page returned by search or scrape."""

    url: str
    title: str = ""
    description: str = ""
    content: str = ""  # Extracted body text (markdown)
    raw_content: Optional[str] = None


class CreditUsage(BaseModel):
    """Remaining search backend credits for an API key."""

    remaining_credits: Optional[int] = None
    plan_credits: Optional[int] = None
    billing_period_start: Optional[datetime] = None
    billing_period_end: Optional[datetime] = None
    status: FirecrawlKeyStatus = FirecrawlKeyStatus.PENDING
    is_custom_key: bool = False
    error: Optional[str] = None


class SourceFinding(BaseModel):
    """Content the agent has read during an execution."""

    url: str
    title: str = ""
    excerpt: str = Field(default="", description="Truncated extracted content")
