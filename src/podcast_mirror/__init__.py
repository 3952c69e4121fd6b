"""
podcast-mirror

Mirrors the media enclosures of an RSS/Atom feed into a local directory,
downloading each episode at most once across repeated runs.
"""

__version__ = "0.1.0"
__author__ = "Podcast Mirror Team"

from podcast_mirror.config import Config

__all__ = ["Config", "__version__"]
