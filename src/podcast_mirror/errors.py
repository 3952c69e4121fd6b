"""
Error types raised by the feed scanner and download orchestrator.

Exception Hierarchy:
    MirrorError (base)
    ├── FetchError - transport failure or non-success HTTP status
    ├── ParseError - feed body the lenient scanner could not recover
    ├── NamingError - no usable filename for an item
    └── DownloadError - filesystem or per-item fetch failure

Feed-level FetchError and ParseError abort a run. NamingError and
DownloadError are caught per item by the orchestrator.
"""

from typing import Optional


class MirrorError(Exception):
    """
    Base exception for podcast_mirror.

    Attributes:
        message: Human-readable error message
        url: Feed or enclosure URL the error relates to, if known
    """

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        self.message = message
        self.url = url
        super().__init__(message)


class FetchError(MirrorError):
    """Raised when a URL cannot be fetched or the server rejects the request."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, url=url)


class ParseError(MirrorError):
    """Raised when a feed body is beyond what lenient parsing tolerates."""


class NamingError(MirrorError):
    """Raised when no valid filename can be derived for an item."""


class DownloadError(MirrorError):
    """Raised when an item cannot be fetched, written, or marked as seen."""
