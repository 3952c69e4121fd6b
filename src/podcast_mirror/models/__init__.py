"""
Data models for podcast-mirror.
"""

from podcast_mirror.models.entities import FeedItem, ItemStatus

__all__ = [
    "FeedItem",
    "ItemStatus",
]
