"""
Scout Engine - User Preferences

Per-owner settings the engine consults: search backend keys and the
embedding model in effect for similarity recall.
"""

from typing import Optional

from pydantic import BaseModel, Field

from scout_engine.models.enums import FirecrawlKeyStatus


class UserPreferences(BaseModel):
    """User-scoped preferences record."""

    owner_id: str
    firecrawl_api_key: Optional[str] = None  # Sponsored key
    firecrawl_custom_api_key: Optional[str] = None  # User-supplied key
    firecrawl_key_status: FirecrawlKeyStatus = FirecrawlKeyStatus.PENDING
    embedding_model: Optional[str] = None
    embedding_dimension: Optional[int] = Field(default=None, gt=0)

    def resolve_firecrawl_key(self) -> Optional[str]:
        """
        Pick the search backend key to use for this owner.

        The custom key takes priority over the sponsored one. Whitespace
        is trimmed since pasted keys often carry a trailing newline.
        """
        for key in (self.firecrawl_custom_api_key, self.firecrawl_api_key):
            if key and key.strip():
                return key.strip()
        return None

    @property
    def has_custom_key(self) -> bool:
        return bool(self.firecrawl_custom_api_key and self.firecrawl_custom_api_key.strip())
