"""
Lenient feed scanning and enclosure extraction.

Streams a feed through lxml's pull parser in recovery mode and runs a small
state machine over the element events. Malformed documents, feeds that mix
namespaces inconsistently and flat feeds without ``<item>`` containers all
still yield (guid, title, url) triples.

Example:
    >>> from podcast_mirror.ingestion.feed_scanner import scan_feed
    >>> items = scan_feed("https://example.com/feed.rss")
    >>> for item in items:
    ...     print(item.title, item.url)
"""

import logging
import re
from typing import Iterable, List, Optional, Set, Tuple

from lxml import etree

from podcast_mirror.config import DEFAULT_CHUNK_SIZE
from podcast_mirror.errors import ParseError
from podcast_mirror.ingestion.transport import Fetcher, iter_body, open_stream
from podcast_mirror.models.entities import FeedItem

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

ATOM_NS = "http://www.w3.org/2005/Atom"
MRSS_NS = "http://search.yahoo.com/mrss/"

ITEM_TAGS = frozenset({"item", "entry"})

# Namespaces whose <title> and <id> belong to the feed itself. itunes:title
# and media:title are ignored.
FEED_NAMESPACES = frozenset({"", ATOM_NS})

# Either a resolved namespace URI or the raw prefix of an undeclared one
MEDIA_NAMESPACES = frozenset({MRSS_NS, "media"})


def _split_tag(tag: str) -> Tuple[str, str]:
    """
    Split an lxml tag into (namespace, local name).

    Declared namespaces arrive as ``{uri}local``. In recovery mode an
    undeclared prefix is kept verbatim as ``prefix:local``, in which case
    the prefix is returned in place of the URI.
    """
    if tag.startswith("{"):
        namespace, _, local = tag[1:].partition("}")
        return namespace, local
    prefix, _, local = tag.rpartition(":")
    return prefix, local


# ---------------------------------------------------------------------------
#  State machine
# ---------------------------------------------------------------------------

class FeedScanner:
    """
    Event-driven extractor for enclosure-bearing feed items.

    Feed it ``start``/``end`` events via :meth:`handle`; completed items
    accumulate in :attr:`items` in document order, deduplicated by URL.

    Attributes:
        items: Emitted items
    """

    def __init__(self) -> None:
        self.items: List[FeedItem] = []
        self._seen_urls: Set[str] = set()
        self._in_item = False
        self._guid = ""
        self._title = ""
        self._url: Optional[str] = None

    def handle(self, event: str, element: etree._Element) -> None:
        """Advance the state machine by one parser event."""
        if not isinstance(element.tag, str):
            return
        namespace, local = _split_tag(element.tag)

        if event == "start":
            if local in ITEM_TAGS:
                self._enter_item()
            elif local == "enclosure" or (local == "content" and namespace in MEDIA_NAMESPACES):
                self._on_enclosure(element.get("url"))
            return

        if local in ITEM_TAGS:
            self._leave_item()
            element.clear()
        elif local == "guid" or (local == "id" and namespace in FEED_NAMESPACES):
            if self._in_item:
                self._guid = (element.text or "").strip()
        elif local == "title" and namespace in FEED_NAMESPACES:
            self._title = (element.text or "").strip()

    def _enter_item(self) -> None:
        self._in_item = True
        self._guid = ""
        self._title = ""
        self._url = None

    def _leave_item(self) -> None:
        if self._url:
            self._emit(self._guid or self._url, self._url, self._title)
        self._in_item = False
        self._guid = ""
        self._title = ""
        self._url = None

    def _on_enclosure(self, url: Optional[str]) -> None:
        url = (url or "").strip()
        if not url:
            return
        if self._in_item:
            if self._url is None:
                self._url = url
            return
        # Flat feed: the enclosure closes an implicit item
        self._emit(url, url, self._title)
        self._title = ""

    def _emit(self, guid: str, url: str, title: str) -> None:
        if url in self._seen_urls:
            logger.debug("Ignoring duplicate enclosure %s", url)
            return
        self._seen_urls.add(url)
        self.items.append(FeedItem(guid=guid, url=url, title=title))


# ---------------------------------------------------------------------------
#  Entity repair
# ---------------------------------------------------------------------------

_PREDEFINED_ENTITIES = frozenset({b"amp", b"lt", b"gt", b"quot", b"apos"})

# CDATA sections and comments pass through untouched; every other "&" is
# checked against the reference grammar.
_MARKUP_RE = re.compile(rb"<!\[CDATA\[|<!--|&")
_REFERENCE_RE = re.compile(rb"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|([A-Za-z_][A-Za-z0-9._-]*));")
_PARTIAL_REFERENCE_RE = re.compile(rb"&(?:#[0-9]*|#[xX][0-9a-fA-F]*|[A-Za-z_][A-Za-z0-9._-]*)?")
_SECTION_ENDS = {b"<![CDATA[": b"]]>", b"<!--": b"-->"}
_MAX_REFERENCE_LEN = 64


class EntityRepair:
    """
    Byte-stream filter that escapes stray ampersands before parsing.

    Bare ``&`` characters and references to entities XML does not define
    (``&nbsp;``) become ``&amp;`` so the parser keeps them verbatim. A
    construct split across chunks is held back until the next chunk
    completes it.
    """

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, chunk: bytes) -> bytes:
        """Repair a chunk, returning the bytes that are safe to parse."""
        return self._repair(self._pending + chunk, final=False)

    def flush(self) -> bytes:
        """Return whatever is still held back at end of input."""
        return self._repair(self._pending, final=True)

    def _repair(self, data: bytes, final: bool) -> bytes:
        out = bytearray()
        pos = 0
        self._pending = b""

        while True:
            match = _MARKUP_RE.search(data, pos)
            if match is None:
                break
            out += data[pos:match.start()]
            token = match.group()

            if token != b"&":
                end = data.find(_SECTION_ENDS[token], match.end())
                if end < 0:
                    if final:
                        out += data[match.start():]
                    else:
                        self._pending = data[match.start():]
                    return bytes(out)
                pos = end + len(_SECTION_ENDS[token])
                out += data[match.start():pos]
                continue

            reference = _REFERENCE_RE.match(data, match.start())
            if reference is not None:
                name = reference.group(1)
                if name is not None and name not in _PREDEFINED_ENTITIES:
                    out += b"&amp;"
                    out += data[match.end():reference.end()]
                else:
                    out += reference.group()
                pos = reference.end()
                continue

            partial = _PARTIAL_REFERENCE_RE.match(data, match.start())
            if (
                not final
                and partial.end() == len(data)
                and len(data) - match.start() < _MAX_REFERENCE_LEN
            ):
                self._pending = data[match.start():]
                return bytes(out)
            out += b"&amp;"
            pos = match.end()

        tail = data[pos:]
        if not final:
            held = _open_section_prefix(tail)
            if held:
                self._pending = tail[-held:]
                tail = tail[:-held]
        out += tail
        return bytes(out)


def _open_section_prefix(data: bytes) -> int:
    """Length of a trailing, incomplete ``<![CDATA[`` or ``<!--`` opener."""
    start = data.rfind(b"<", max(0, len(data) - len(b"<![CDATA[")))
    if start < 0:
        return 0
    tail = data[start:]
    if any(opener.startswith(tail) for opener in _SECTION_ENDS):
        return len(tail)
    return 0


# ---------------------------------------------------------------------------
#  Entry points
# ---------------------------------------------------------------------------

def _new_parser() -> etree.XMLPullParser:
    return etree.XMLPullParser(
        events=("start", "end"),
        recover=True,
        resolve_entities=False,
        no_network=True,
    )


def _drain(parser: etree.XMLPullParser, scanner: FeedScanner) -> int:
    """Hand queued parser events to the scanner; return how many there were."""
    count = 0
    for event, element in parser.read_events():
        count += 1
        scanner.handle(event, element)
    return count


def scan_bytes(chunks: Iterable[bytes]) -> List[FeedItem]:
    """
    Extract feed items from a stream of raw feed bytes.

    Stray ampersands are escaped on the way in (see :class:`EntityRepair`),
    so URLs and titles keep their original text.

    Args:
        chunks: Feed body in arbitrary-sized pieces

    Returns:
        Items in document order, deduplicated by URL. An empty or
        whitespace-only body yields no items.

    Raises:
        ParseError: If a non-empty body contains no recoverable element
    """
    parser = _new_parser()
    scanner = FeedScanner()
    repair = EntityRepair()
    has_content = False
    events = 0

    try:
        for chunk in chunks:
            has_content = has_content or bool(chunk.strip())
            data = repair.feed(chunk)
            if data:
                parser.feed(data)
            events += _drain(parser, scanner)
        if not has_content:
            return []
        data = repair.flush()
        if data:
            parser.feed(data)
        parser.close()
        events += _drain(parser, scanner)
    except (etree.XMLSyntaxError, etree.ParserError) as exc:
        raise ParseError(f"unable to parse feed: {exc}") from exc

    if events == 0:
        raise ParseError("unable to parse feed: no XML elements found")
    return scanner.items


def scan_feed(
    feed_url: str,
    fetch: Fetcher = open_stream,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> List[FeedItem]:
    """
    Fetch a feed and extract its enclosure-bearing items.

    Args:
        feed_url: URL of the RSS/Atom feed
        fetch: Callable returning an open streamed response for a URL
        chunk_size: Read size for the response body

    Returns:
        Items in document order, deduplicated by URL

    Raises:
        FetchError: If the feed cannot be fetched
        ParseError: If the feed body cannot be parsed
    """
    logger.info("Fetching feed %s", feed_url)
    response = fetch(feed_url)
    try:
        try:
            items = scan_bytes(iter_body(response, feed_url, chunk_size))
        except ParseError as exc:
            exc.url = feed_url
            raise
    finally:
        response.close()

    logger.info("Found %d item(s) in %s", len(items), feed_url)
    return items
