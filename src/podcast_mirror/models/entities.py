"""
Pydantic data models for feed items and processing outcomes.
"""

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, field_validator


class ItemStatus(str, Enum):
    """Outcome of processing a single feed item."""
    DOWNLOADED = "downloaded"
    MARKED = "marked"
    ALREADY_SEEN = "already_seen"
    FAILED = "failed"


class FeedItem(BaseModel):
    """
    One feed entry with a downloadable enclosure.

    The guid identifies the item across feed re-fetches even if its URL
    changes; scanners fall back to the URL when the feed has no guid.
    """
    guid: str
    url: str
    title: str = ""

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject items without an enclosure URL."""
        if not v:
            raise ValueError("url must not be empty")
        return v

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump()
