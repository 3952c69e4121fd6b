"""
Shared test fixtures.

Provides pytest fixtures for common test resources including:
- Temporary destination directory
- Fake HTTP transport serving canned feed and enclosure bodies
- Feed document builders
"""

import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from unittest.mock import MagicMock

import pytest

from podcast_mirror.errors import FetchError


FEED_URL = "https://example.com/feed.rss"


def make_response(body: bytes = b"", status_code: int = 200) -> MagicMock:
    """Build a mock streamed requests.Response serving body."""
    response = MagicMock()
    response.status_code = status_code

    def _iter_content(chunk_size=1, decode_unicode=False):
        for i in range(0, len(body), max(chunk_size, 1)):
            yield body[i:i + chunk_size]

    response.iter_content.side_effect = _iter_content
    return response


class FakeFetcher:
    """
    Stand-in for the HTTP transport.

    Serves bodies from a URL -> bytes mapping. A mapped FetchError is
    raised instead of returned; unknown URLs raise a 404 FetchError.

    Attributes:
        calls: URLs requested, in order
    """

    def __init__(self, responses: Dict[str, Union[bytes, Exception]]) -> None:
        self.responses = dict(responses)
        self.calls: List[str] = []
        self.opened: List[MagicMock] = []

    def __call__(self, url: str) -> MagicMock:
        self.calls.append(url)
        body = self.responses.get(url)
        if body is None:
            raise FetchError(f"server returned 404 for {url}", url=url, status_code=404)
        if isinstance(body, Exception):
            raise body
        response = make_response(body)
        self.opened.append(response)
        return response

    def enclosure_calls(self) -> List[str]:
        """Requested URLs other than the feed itself."""
        return [url for url in self.calls if url != FEED_URL]


def build_rss(items: List[Tuple[Optional[str], str, Optional[str]]]) -> bytes:
    """
    Build an RSS 2.0 document.

    Args:
        items: (guid, title, enclosure_url) tuples; None omits the element

    Returns:
        Encoded feed document
    """
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">',
        "<channel>",
        "<title>Test Show</title>",
    ]
    for guid, title, url in items:
        parts.append("<item>")
        parts.append(f"<title>{title}</title>")
        if guid is not None:
            parts.append(f"<guid>{guid}</guid>")
        if url is not None:
            parts.append(f'<enclosure url="{url}" type="audio/mpeg" length="1234"/>')
        parts.append("</item>")
    parts.append("</channel></rss>")
    return "\n".join(parts).encode("utf-8")


@pytest.fixture
def temp_dir():
    """
    Create temporary directory for test files.

    Yields:
        Path: Temporary directory path
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def dest_dir(temp_dir: Path) -> Path:
    """Destination directory for mirrored files (not yet created)."""
    return temp_dir / "podcasts"


@pytest.fixture
def sample_feed() -> bytes:
    """Three-episode RSS feed."""
    return build_rss([
        ("guid-1", "Episode 1", "https://cdn.example.com/ep1.mp3"),
        ("guid-2", "Episode 2", "https://cdn.example.com/ep2.mp3?source=rss"),
        ("guid-3", "Episode 3", "https://cdn.example.com/ep3.mp3"),
    ])


@pytest.fixture
def sample_fetcher(sample_feed: bytes) -> FakeFetcher:
    """Fetcher serving sample_feed and its three enclosures."""
    return FakeFetcher({
        FEED_URL: sample_feed,
        "https://cdn.example.com/ep1.mp3": b"audio-one",
        "https://cdn.example.com/ep2.mp3?source=rss": b"audio-two",
        "https://cdn.example.com/ep3.mp3": b"audio-three",
    })
