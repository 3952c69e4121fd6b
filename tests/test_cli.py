"""
Tests for the command-line interface.

The transport is replaced with FakeFetcher via patching make_fetcher, so no
network access happens.
"""

import json
import os
from unittest.mock import patch

import pytest

from podcast_mirror.cli import build_parser, main
from podcast_mirror.ingestion.naming import escape_segment

from conftest import FEED_URL, FakeFetcher


@pytest.fixture(autouse=True)
def isolated_env(temp_dir, monkeypatch):
    """Keep configuration sources and root logging state out of the tests."""
    import logging

    for key in list(os.environ):
        if key.startswith("PODCAST_MIRROR_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(temp_dir)
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def _run(argv, fetcher):
    with patch("podcast_mirror.ingestion.downloader.make_fetcher", return_value=fetcher):
        main(argv)


class TestParser:

    def test_flag_defaults_are_unset(self):
        args = build_parser().parse_args([])

        assert args.feed is None
        assert args.dest is None
        assert args.prefix is None
        assert args.quiet is None
        assert args.skip is None
        assert args.num is None
        assert args.output_json is False

    def test_flags(self):
        args = build_parser().parse_args([
            "--feed", FEED_URL, "--dest", "/tmp/x", "--prefix", "p-",
            "--quiet", "--skip", "--num", "2",
        ])

        assert args.feed == FEED_URL
        assert args.dest == "/tmp/x"
        assert args.prefix == "p-"
        assert args.quiet is True
        assert args.skip is True
        assert args.num == 2


class TestMain:

    def test_missing_feed_exits_nonzero(self, dest_dir):
        with pytest.raises(SystemExit) as excinfo:
            _run(["--dest", str(dest_dir)], FakeFetcher({}))

        assert excinfo.value.code == 1

    def test_feed_fetch_failure_exits_nonzero(self, dest_dir):
        fetcher = FakeFetcher({})

        with pytest.raises(SystemExit) as excinfo:
            _run(["--feed", FEED_URL, "--dest", str(dest_dir)], fetcher)

        assert excinfo.value.code == 1
        assert fetcher.calls == [FEED_URL]
        assert not dest_dir.exists()

    def test_mirrors_feed(self, dest_dir, sample_fetcher):
        _run(["--feed", FEED_URL, "--dest", str(dest_dir)], sample_fetcher)

        assert (dest_dir / "ep1.mp3").read_bytes() == b"audio-one"
        assert (dest_dir / "ep3.mp3").exists()
        assert (dest_dir / ".seen" / escape_segment(FEED_URL) / "guid-2").is_file()

    def test_item_failures_do_not_change_exit_status(self, dest_dir, sample_fetcher):
        del sample_fetcher.responses["https://cdn.example.com/ep2.mp3?source=rss"]

        _run(["--feed", FEED_URL, "--dest", str(dest_dir), "--quiet"], sample_fetcher)

        assert (dest_dir / "ep1.mp3").exists()
        assert not (dest_dir / "ep2.mp3").exists()
        assert (dest_dir / "ep3.mp3").exists()

    def test_num_limits_items(self, dest_dir, sample_fetcher):
        _run(["--feed", FEED_URL, "--dest", str(dest_dir), "--num", "2"], sample_fetcher)

        assert sample_fetcher.enclosure_calls() == [
            "https://cdn.example.com/ep1.mp3",
            "https://cdn.example.com/ep2.mp3?source=rss",
        ]

    def test_skip_then_normal_run(self, dest_dir, sample_fetcher):
        _run(["--feed", FEED_URL, "--dest", str(dest_dir), "--skip"], sample_fetcher)
        assert sample_fetcher.enclosure_calls() == []

        second = FakeFetcher(sample_fetcher.responses)
        _run(["--feed", FEED_URL, "--dest", str(dest_dir)], second)

        assert second.enclosure_calls() == []
        assert not (dest_dir / "ep1.mp3").exists()

    def test_prefix(self, dest_dir, sample_fetcher):
        _run(["--feed", FEED_URL, "--dest", str(dest_dir), "--prefix", "show-"], sample_fetcher)

        assert (dest_dir / "show-ep1.mp3").exists()

    def test_feed_from_environment(self, dest_dir, sample_fetcher, monkeypatch):
        monkeypatch.setenv("PODCAST_MIRROR_FEED_URL", FEED_URL)

        _run(["--dest", str(dest_dir)], sample_fetcher)

        assert (dest_dir / "ep1.mp3").exists()

    def test_output_json(self, dest_dir, sample_fetcher, capsys):
        _run(
            ["--feed", FEED_URL, "--dest", str(dest_dir), "--quiet", "--output-json"],
            sample_fetcher,
        )

        data = json.loads(capsys.readouterr().out)
        assert data["downloaded"] == 3
        assert data["feed_url"] == FEED_URL


class TestLogging:
    """Tests for what reaches stderr at each verbosity."""

    MISSING = "https://cdn.example.com/ep2.mp3?source=rss"

    def test_quiet_keeps_errors_and_drops_info(self, dest_dir, sample_fetcher, capsys):
        del sample_fetcher.responses[self.MISSING]
        argv = ["--feed", FEED_URL, "--dest", str(dest_dir), "--quiet"]

        _run(argv, sample_fetcher)
        _run(argv, FakeFetcher(sample_fetcher.responses))

        err = capsys.readouterr().err
        assert err.count(f"ERROR Failed to download {self.MISSING}") == 2
        assert "Downloading" not in err
        assert "Skipping" not in err
        assert "INFO" not in err

    def test_default_shows_progress(self, dest_dir, sample_fetcher, capsys):
        argv = ["--feed", FEED_URL, "--dest", str(dest_dir)]

        _run(argv, sample_fetcher)
        _run(argv, FakeFetcher(sample_fetcher.responses))

        err = capsys.readouterr().err
        assert "INFO Downloading https://cdn.example.com/ep1.mp3" in err
        assert "INFO Skipping https://cdn.example.com/ep1.mp3" in err

    def test_feed_failure_logged_under_quiet(self, dest_dir, capsys):
        with pytest.raises(SystemExit):
            _run(["--feed", FEED_URL, "--dest", str(dest_dir), "--quiet"], FakeFetcher({}))

        assert f"ERROR Failed to extract items from {FEED_URL}" in capsys.readouterr().err
