"""
Ingestion module for feed scanning and enclosure downloading.

Provides the lenient feed scanner and the idempotent downloader that
mirrors enclosures into a local directory.
"""

from podcast_mirror.ingestion.feed_scanner import scan_feed
from podcast_mirror.ingestion.downloader import FeedMirror, MirrorResult, mirror_feed

__all__ = ["scan_feed", "FeedMirror", "MirrorResult", "mirror_feed"]
