"""
Filename derivation and path-segment helpers.

Turns enclosure URLs into destination filenames, escapes arbitrary strings
into single path segments for the seen-ledger, and picks collision-free
destination paths.
"""

import os
import posixpath
import re
from itertools import count
from pathlib import Path
from urllib.parse import quote, urlsplit

from podcast_mirror.config import MAX_FILENAME_LEN
from podcast_mirror.errors import NamingError
from podcast_mirror.models.entities import FeedItem

# Simplecast serves episodes through Podtrac redirect URLs such as
#   https://dts.podtrac.com/redirect.mp3/nyt.simplecastaudio.com/<show>/episodes/
#   4a49fb56-5d6d-4800-8b83-72047d6b81e7/audio/128/default.mp3?aid=rss_feed&...
# where every episode ends in default.mp3. The episode UUID is used instead.
EPISODE_ID_RE = re.compile(
    r"/episodes/([0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12})/"
)

# Characters left unescaped in a path segment, matching Go's url.PathEscape
# so that markers written by earlier releases are still found.
_SEGMENT_SAFE = "$&+:=@"


def escape_segment(value: str, max_len: int = MAX_FILENAME_LEN) -> str:
    """
    Percent-encode value for use as a single path segment.

    Args:
        value: Arbitrary string (feed URL, guid, enclosure URL)
        max_len: Maximum length of the escaped result

    Returns:
        Escaped string, truncated to max_len characters

    Example:
        >>> escape_segment("https://example.com/a b?x=1")
        'https:%2F%2Fexample.com%2Fa%20b%3Fx=1'
    """
    escaped = quote(value, safe=_SEGMENT_SAFE)[:max_len]
    if escaped in (".", ".."):
        # Would name the current or parent directory
        escaped = escaped.replace(".", "%2E")
    return escaped


def url_basename(url: str) -> str:
    """Return the last component of a URL's path, ignoring query and fragment."""
    path = urlsplit(url).path.rstrip("/")
    return posixpath.basename(path)


def derive_filename(item: FeedItem) -> str:
    """
    Derive the destination filename for a feed item.

    Uses the basename of the enclosure URL. Simplecast episode URLs are
    named after the item title, or the episode UUID if the title is empty.

    Args:
        item: Feed item to name

    Returns:
        Non-empty filename that is a single path segment

    Raises:
        NamingError: If no valid filename can be derived

    Example:
        >>> derive_filename(FeedItem(guid="1", url="https://example.com/show/ep1.mp3?x=1"))
        'ep1.mp3'
    """
    base = url_basename(item.url)

    match = EPISODE_ID_RE.search(item.url)
    if match:
        if item.title:
            base = item.title.replace("/", "_").replace("\x00", "") + ".mp3"
        else:
            base = match.group(1) + ".mp3"

    if not base or base in (".", ".."):
        raise NamingError(f"unable to get valid filename from {item.url}", url=item.url)
    return base


def unique_path(dest_dir: Path, prefix: str, base: str) -> Path:
    """
    Choose an unused destination path for base within dest_dir.

    Tries ``dest_dir/prefix+base`` first, then inserts 0, 1, 2, ... before
    the extension until a free name is found.

    Example:
        With ``ep1.mp3`` taken, returns ``ep10.mp3``.
    """
    candidate = dest_dir / (prefix + base)
    if not candidate.exists():
        return candidate

    stem, ext = os.path.splitext(base)
    for i in count():
        candidate = dest_dir / f"{prefix}{stem}{i}{ext}"
        if not candidate.exists():
            return candidate
