"""
Seen-ledger recording which feed items have already been handled.

A ledger stores opaque keys (tuples of path segments). The filesystem
ledger represents each key as a zero-byte marker file; existence of the
file is the only state. Marker rules describe where markers live for the
current format and for the legacy formats still honoured on lookup.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Set, Tuple

from podcast_mirror.ingestion.naming import escape_segment
from podcast_mirror.models.entities import FeedItem

logger = logging.getLogger(__name__)

MarkerKey = Tuple[str, ...]


class SeenLedger(Protocol):
    """Storage for seen-markers."""

    def exists(self, key: MarkerKey) -> bool:
        ...

    def mark(self, key: MarkerKey) -> None:
        ...


class FilesystemLedger:
    """
    Ledger backed by empty marker files under a root directory.

    Attributes:
        root: Directory holding markers (normally ``<dest>/.seen``)
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, key: MarkerKey) -> Path:
        """Filesystem path of the marker for key."""
        return self.root.joinpath(*key)

    def exists(self, key: MarkerKey) -> bool:
        return self.path_for(key).exists()

    def mark(self, key: MarkerKey) -> None:
        """
        Create the marker for key.

        Raises:
            OSError: If the marker or its parent directories cannot be created
        """
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch()
        logger.info("Touched %s", path)


class MemoryLedger:
    """In-memory ledger for tests and throwaway runs."""

    def __init__(self) -> None:
        self.keys: Set[MarkerKey] = set()

    def exists(self, key: MarkerKey) -> bool:
        return key in self.keys

    def mark(self, key: MarkerKey) -> None:
        self.keys.add(key)


# ---------------------------------------------------------------------------
#  Marker rules
# ---------------------------------------------------------------------------

# (item, feed_url, base_filename, max_len) -> key
KeyBuilder = Callable[[FeedItem, str, str, int], MarkerKey]


@dataclass(frozen=True)
class MarkerRule:
    """
    One location where a seen-marker may live.

    Attributes:
        name: Label used in log messages
        build_key: Computes the marker key for an item
        write_forward: If True, a hit under this rule also writes the
            current-format marker
    """

    name: str
    build_key: KeyBuilder
    write_forward: bool = False


def feed_guid_key(item: FeedItem, feed_url: str, base: str, max_len: int) -> MarkerKey:
    """Current format: ``<escaped feed>/<escaped guid>``."""
    return (escape_segment(feed_url, max_len), escape_segment(item.guid, max_len))


def url_key(item: FeedItem, feed_url: str, base: str, max_len: int) -> MarkerKey:
    """Legacy format keyed by the escaped enclosure URL."""
    return (escape_segment(item.url, max_len),)


def basename_key(item: FeedItem, feed_url: str, base: str, max_len: int) -> MarkerKey:
    """Oldest format keyed by the derived filename, stored unescaped."""
    return (base[:max_len],)


# The first rule defines where new markers are written.
DEFAULT_MARKER_RULES: Tuple[MarkerRule, ...] = (
    MarkerRule("feed-guid", feed_guid_key),
    MarkerRule("url", url_key, write_forward=True),
    MarkerRule("basename", basename_key, write_forward=True),
)
