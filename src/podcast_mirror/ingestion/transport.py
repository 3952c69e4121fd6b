"""
HTTP transport for feeds and enclosures.

Wraps ``requests`` streamed GETs so the scanner and downloader see a single
capability: given a URL, return an open response whose body can be read in
chunks, or raise FetchError. No timeout is applied unless one is given.
"""

import logging
from typing import Callable, Iterator, Optional

import requests

from podcast_mirror.config import DEFAULT_CHUNK_SIZE, DEFAULT_USER_AGENT
from podcast_mirror.errors import FetchError

logger = logging.getLogger(__name__)

# Signature shared by open_stream and test doubles
Fetcher = Callable[[str], requests.Response]


def open_stream(
    url: str,
    timeout: Optional[float] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> requests.Response:
    """
    Open a streamed HTTP GET to url.

    Args:
        url: URL to fetch
        timeout: Seconds to wait for the server, or None to wait indefinitely
        user_agent: User-Agent header value

    Returns:
        The open response; callers must close it

    Raises:
        FetchError: On connection failure or a status other than 200
    """
    logger.debug("Opening %s (timeout=%s)", url, timeout)
    try:
        response = requests.get(
            url,
            stream=True,
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )
    except requests.exceptions.RequestException as exc:
        raise FetchError(f"failed to fetch {url}: {exc}", url=url) from exc

    if response.status_code != 200:
        response.close()
        raise FetchError(
            f"server returned {response.status_code} for {url}",
            url=url,
            status_code=response.status_code,
        )
    return response


def iter_body(
    response: requests.Response,
    url: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[bytes]:
    """
    Yield the non-empty chunks of a streamed response body.

    Raises:
        FetchError: If the connection fails while reading
    """
    try:
        for chunk in response.iter_content(chunk_size=chunk_size):
            if chunk:
                yield chunk
    except requests.exceptions.RequestException as exc:
        raise FetchError(f"failed to read {url}: {exc}", url=url) from exc


def make_fetcher(
    timeout: Optional[float] = None,
    user_agent: str = DEFAULT_USER_AGENT,
) -> Fetcher:
    """Bind transport settings into a single-argument fetch callable."""

    def fetch(url: str) -> requests.Response:
        return open_stream(url, timeout=timeout, user_agent=user_agent)

    return fetch
