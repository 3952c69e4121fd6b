"""
Idempotent enclosure downloader.

Processes feed items one at a time: derives a filename, consults the
seen-ledger, streams the enclosure into a collision-free destination path
and records a marker so the item is never downloaded again.

Per item the flow is::

    Pending -> seen check -> AlreadyDone
                          -> Downloading -> Failed
                                         -> Saved -> Marked

A failed item leaves no marker and is retried on the next run.

Example:
    >>> from podcast_mirror.config import get_config
    >>> from podcast_mirror.ingestion.downloader import mirror_feed
    >>> result = mirror_feed(get_config(feed_url="https://example.com/feed.rss"))
    >>> print(f"Downloaded {result.downloaded} file(s)")
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from podcast_mirror.config import (
    Config,
    DEFAULT_CHUNK_SIZE,
    MAX_FILENAME_LEN,
    SEEN_SUBDIR,
)
from podcast_mirror.errors import DownloadError, FetchError, NamingError
from podcast_mirror.ingestion.feed_scanner import scan_feed
from podcast_mirror.ingestion.ledger import (
    DEFAULT_MARKER_RULES,
    FilesystemLedger,
    MarkerKey,
    MarkerRule,
    SeenLedger,
)
from podcast_mirror.ingestion.naming import derive_filename, unique_path
from podcast_mirror.ingestion.transport import Fetcher, iter_body, make_fetcher, open_stream
from podcast_mirror.models.entities import FeedItem, ItemStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Result model
# ---------------------------------------------------------------------------

@dataclass
class MirrorResult:
    """
    Summary of a mirror run.

    Attributes:
        feed_url: Feed that was mirrored
        checked_at: ISO-8601 timestamp of when the run started
        total_items: Number of items the scanner found
        processed: Number of items attempted (bounded by the item limit)
        downloaded: Items whose enclosure was written to disk
        marked: Items marked as seen without downloading
        already_seen: Items skipped because a marker existed
        failed: One entry per failed item with its guid, title, URL and error
    """

    feed_url: str = ""
    checked_at: str = ""
    total_items: int = 0
    processed: int = 0
    downloaded: int = 0
    marked: int = 0
    already_seen: int = 0
    failed: List[Dict[str, Any]] = field(default_factory=list)

    def record(
        self,
        status: ItemStatus,
        item: Optional[FeedItem] = None,
        error: Optional[Exception] = None,
    ) -> None:
        """Count an item outcome. Failures also keep the item and its error."""
        if status is ItemStatus.FAILED:
            entry = item.to_dict() if item is not None else {}
            entry["error"] = str(error) if error is not None else ""
            self.failed.append(entry)
        elif status is ItemStatus.DOWNLOADED:
            self.downloaded += 1
        elif status is ItemStatus.MARKED:
            self.marked += 1
        elif status is ItemStatus.ALREADY_SEEN:
            self.already_seen += 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "feed_url": self.feed_url,
            "checked_at": self.checked_at,
            "total_items": self.total_items,
            "processed": self.processed,
            "downloaded": self.downloaded,
            "marked": self.marked,
            "already_seen": self.already_seen,
            "failed": self.failed,
            "failed_count": len(self.failed),
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


# ---------------------------------------------------------------------------
#  Orchestrator
# ---------------------------------------------------------------------------

class FeedMirror:
    """
    Downloads feed items into a destination directory at most once.

    Attributes:
        dest_dir: Directory receiving downloaded files
        prefix: Prepended to every derived filename
        skip_download: If True, items are marked as seen without fetching
        ledger: Seen-marker storage
        fetch: Callable opening a streamed response for a URL
        marker_rules: Ordered marker locations; the first is the current format
        max_filename_len: Maximum length of an escaped marker segment
        chunk_size: Read size for streamed downloads
    """

    def __init__(
        self,
        dest_dir: Path,
        prefix: str = "",
        skip_download: bool = False,
        ledger: Optional[SeenLedger] = None,
        fetch: Fetcher = open_stream,
        marker_rules: Sequence[MarkerRule] = DEFAULT_MARKER_RULES,
        max_filename_len: int = MAX_FILENAME_LEN,
        seen_subdir: str = SEEN_SUBDIR,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if not marker_rules:
            raise ValueError("at least one marker rule is required")
        self.dest_dir = Path(dest_dir)
        self.prefix = prefix
        self.skip_download = skip_download
        self.ledger = ledger if ledger is not None else FilesystemLedger(self.dest_dir / seen_subdir)
        self.fetch = fetch
        self.marker_rules = tuple(marker_rules)
        self.max_filename_len = max_filename_len
        self.chunk_size = chunk_size

    @classmethod
    def from_config(
        cls,
        config: Config,
        ledger: Optional[SeenLedger] = None,
        fetch: Optional[Fetcher] = None,
    ) -> "FeedMirror":
        """Build a FeedMirror from application configuration."""
        if fetch is None:
            fetch = make_fetcher(timeout=config.request_timeout, user_agent=config.user_agent)
        if ledger is None:
            ledger = FilesystemLedger(config.seen_dir)
        return cls(
            dest_dir=config.dest_dir,
            prefix=config.prefix,
            skip_download=config.skip_download,
            ledger=ledger,
            fetch=fetch,
            max_filename_len=config.max_filename_len,
            chunk_size=config.chunk_size,
        )

    def process_item(self, item: FeedItem, feed_url: str) -> ItemStatus:
        """
        Download a single item unless it has already been handled.

        Args:
            item: Item to process
            feed_url: Feed the item came from; part of the marker identity

        Returns:
            ALREADY_SEEN, DOWNLOADED or MARKED

        Raises:
            NamingError: If no filename can be derived
            DownloadError: If fetching, writing or marking fails
        """
        base = derive_filename(item)

        current_key = self.marker_rules[0].build_key(item, feed_url, base, self.max_filename_len)
        if self._already_seen(item, feed_url, base, current_key):
            return ItemStatus.ALREADY_SEEN

        try:
            self.dest_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DownloadError(
                f"unable to create {self.dest_dir}: {exc}", url=item.url
            ) from exc
        dest_path = unique_path(self.dest_dir, self.prefix, base)

        if self.skip_download:
            logger.info("Skipping download of %s to %s", item.url, dest_path)
            status = ItemStatus.MARKED
        else:
            logger.info("Downloading %s to %s", item.url, dest_path)
            self._download(item.url, dest_path)
            status = ItemStatus.DOWNLOADED

        self._mark(current_key, item.url)
        return status

    def mirror(
        self,
        items: Iterable[FeedItem],
        feed_url: str,
        limit: int = -1,
    ) -> MirrorResult:
        """
        Process items sequentially, continuing past per-item failures.

        Args:
            items: Items in scanner order
            feed_url: Feed the items came from
            limit: Maximum number of items to process; negative for no limit

        Returns:
            MirrorResult with per-outcome counts and failures
        """
        items = list(items)
        result = MirrorResult(
            feed_url=feed_url,
            checked_at=datetime.now().astimezone().isoformat(timespec="seconds"),
            total_items=len(items),
        )

        for i, item in enumerate(items):
            if limit >= 0 and i >= limit:
                break
            result.processed += 1
            try:
                status = self.process_item(item, feed_url)
            except (NamingError, DownloadError) as exc:
                logger.error("Failed to download %s: %s", item.url, exc)
                result.record(ItemStatus.FAILED, item, exc)
                continue
            result.record(status)

        logger.info(
            "Processed %d of %d item(s): %d downloaded, %d marked, %d already seen, %d failed",
            result.processed,
            result.total_items,
            result.downloaded,
            result.marked,
            result.already_seen,
            len(result.failed),
        )
        return result

    # -----------------------------------------------------------------------
    #  Internals
    # -----------------------------------------------------------------------

    def _already_seen(
        self,
        item: FeedItem,
        feed_url: str,
        base: str,
        current_key: MarkerKey,
    ) -> bool:
        """Check every marker rule in order, migrating legacy hits forward."""
        for rule in self.marker_rules:
            key = rule.build_key(item, feed_url, base, self.max_filename_len)
            if not self.ledger.exists(key):
                continue

            logger.info("Skipping %s", item.url)
            if rule.write_forward and not self.ledger.exists(current_key):
                logger.info("Migrating %s marker for %s", rule.name, item.url)
                self._mark(current_key, item.url)
            return True
        return False

    def _download(self, url: str, dest_path: Path) -> None:
        try:
            response = self.fetch(url)
        except FetchError as exc:
            raise DownloadError(str(exc), url=url) from exc

        try:
            written = 0
            with open(dest_path, "wb") as f:
                for chunk in iter_body(response, url, self.chunk_size):
                    f.write(chunk)
                    written += len(chunk)
        except (FetchError, OSError) as exc:
            dest_path.unlink(missing_ok=True)
            raise DownloadError(
                f"failed to save {url} to {dest_path}: {exc}", url=url
            ) from exc
        finally:
            response.close()

        logger.debug("Wrote %d bytes to %s", written, dest_path)

    def _mark(self, key: MarkerKey, url: str) -> None:
        try:
            self.ledger.mark(key)
        except OSError as exc:
            raise DownloadError(f"unable to record {url} as seen: {exc}", url=url) from exc


# ---------------------------------------------------------------------------
#  Main entry point
# ---------------------------------------------------------------------------

def mirror_feed(
    config: Config,
    fetch: Optional[Fetcher] = None,
    ledger: Optional[SeenLedger] = None,
) -> MirrorResult:
    """
    Scan the configured feed and mirror its enclosures.

    Args:
        config: Application configuration; feed_url must be set
        fetch: Transport override (defaults to requests with config settings)
        ledger: Ledger override (defaults to markers under dest_dir)

    Returns:
        MirrorResult for the run

    Raises:
        ValueError: If no feed URL is configured
        FetchError: If the feed cannot be fetched
        ParseError: If the feed cannot be parsed
    """
    if not config.feed_url:
        raise ValueError("No feed URL configured")

    if fetch is None:
        fetch = make_fetcher(timeout=config.request_timeout, user_agent=config.user_agent)

    items = scan_feed(config.feed_url, fetch=fetch, chunk_size=config.chunk_size)
    mirror = FeedMirror.from_config(config, ledger=ledger, fetch=fetch)
    return mirror.mirror(items, config.feed_url, limit=config.max_items)
