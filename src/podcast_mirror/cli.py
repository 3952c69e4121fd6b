"""
Command-line interface for podcast-mirror.

Usage:
    podcast-mirror --feed https://example.com/feed.rss
    podcast-mirror --feed URL --dest ~/podcasts --prefix show-
    podcast-mirror --feed URL --skip          # Mark everything as downloaded
    podcast-mirror --feed URL --num 2         # Only the first two items
    podcast-mirror --feed URL --output-json   # JSON summary for automation

Exits with status 1 if no feed is configured or the feed cannot be read.
Failures of individual items are logged but do not change the exit status.
"""

import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from podcast_mirror import __version__
from podcast_mirror.config import get_config
from podcast_mirror.errors import FetchError, ParseError
from podcast_mirror.ingestion.downloader import mirror_feed

logger = logging.getLogger("podcast_mirror")

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def configure_logging(quiet: bool = False, verbose: bool = False) -> None:
    """
    Configure process-wide logging.

    Informational messages are shown by default; ``quiet`` limits output
    to warnings and errors, ``verbose`` adds debug output.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podcast-mirror",
        description="Mirror the media enclosures of an RSS/Atom feed to a local directory",
    )
    parser.add_argument(
        "--feed",
        default=None,
        help="URL of feed to mirror (default: PODCAST_MIRROR_FEED_URL or mirror.yaml)",
    )
    parser.add_argument(
        "--dest",
        default=None,
        help="Directory where files should be saved (default: $HOME/temp/podcasts)",
    )
    parser.add_argument(
        "--prefix",
        default=None,
        help="Prefix to prepend to filenames",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        default=None,
        help="Suppress informational logging",
    )
    parser.add_argument(
        "--skip",
        action="store_true",
        default=None,
        help="Mark files as downloaded without downloading",
    )
    parser.add_argument(
        "--num",
        type=int,
        default=None,
        help="Maximum number of files to mirror (default: -1, no limit)",
    )
    parser.add_argument(
        "--output-json",
        action="store_true",
        default=False,
        help="Print a JSON summary of the run (for CI/automation)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = get_config(
            feed_url=args.feed,
            dest_dir=args.dest,
            prefix=args.prefix,
            quiet=args.quiet,
            skip_download=args.skip,
            max_items=args.num,
        )
    except ValidationError as exc:
        configure_logging()
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    configure_logging(quiet=config.quiet, verbose=args.verbose)

    if not config.feed_url:
        logger.error("No feed URL configured. Pass --feed or set PODCAST_MIRROR_FEED_URL.")
        sys.exit(1)

    try:
        result = mirror_feed(config)
    except (FetchError, ParseError) as exc:
        logger.error("Failed to extract items from %s: %s", config.feed_url, exc)
        sys.exit(1)

    if args.output_json:
        print(result.to_json())


if __name__ == "__main__":
    main()
