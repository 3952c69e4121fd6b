"""
Configuration management for podcast-mirror.

Provides centralized configuration using pydantic-settings for validation
and environment variable support. A ``mirror.yaml`` file in the working
directory (or up to three parents) supplies per-project defaults.
"""

from pathlib import Path
from typing import Any, Optional, Tuple, Type

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


# Subdirectory of the destination dir holding seen-markers
SEEN_SUBDIR = ".seen"

# Maximum length of a single marker path segment
MAX_FILENAME_LEN = 255

DEFAULT_DEST_DIR = Path.home() / "temp" / "podcasts"
DEFAULT_USER_AGENT = "podcast-mirror/0.1.0"
DEFAULT_CHUNK_SIZE = 65536

CONFIG_FILENAME = "mirror.yaml"


def find_mirror_yaml(search_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Locate a mirror.yaml configuration file.

    Searches search_dir (or the current working directory) and up to
    three parent directories.

    Args:
        search_dir: Directory to start searching from

    Returns:
        Path to the first mirror.yaml found, or None
    """
    start = search_dir or Path.cwd()
    for parent in [start] + list(start.parents)[:3]:
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


class Config(BaseSettings):
    """
    Application configuration with environment variable support.

    Configuration can be provided via:
    1. Keyword arguments (used by the CLI for explicit flags)
    2. Environment variables (prefixed with PODCAST_MIRROR_)
    3. .env file
    4. mirror.yaml
    5. Default values

    Example:
        export PODCAST_MIRROR_FEED_URL="https://example.com/feed.rss"
        export PODCAST_MIRROR_DEST_DIR="/srv/podcasts"
    """

    model_config = SettingsConfigDict(
        env_prefix="PODCAST_MIRROR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Feed
    feed_url: str = Field(
        default="",
        description="URL of the RSS/Atom feed to mirror"
    )

    # Destination
    dest_dir: Path = Field(
        default=DEFAULT_DEST_DIR,
        description="Directory where downloaded files are saved"
    )
    prefix: str = Field(
        default="",
        description="Prefix prepended to every derived filename"
    )

    # Run behaviour
    quiet: bool = Field(
        default=False,
        description="Suppress informational logging"
    )
    skip_download: bool = Field(
        default=False,
        description="Mark items as downloaded without fetching them"
    )
    max_items: int = Field(
        default=-1,
        description="Maximum number of items to process (-1 for no limit)"
    )

    # Seen ledger
    seen_subdir: str = Field(
        default=SEEN_SUBDIR,
        description="Subdirectory of dest_dir holding seen-markers"
    )
    max_filename_len: int = Field(
        default=MAX_FILENAME_LEN,
        gt=0,
        description="Maximum length of an encoded marker path segment"
    )

    # Transport
    request_timeout: Optional[float] = Field(
        default=None,
        description="Per-request timeout in seconds (None waits indefinitely)"
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent with HTTP requests"
    )
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        gt=0,
        description="Read size in bytes for streamed downloads"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        sources = [init_settings, env_settings, dotenv_settings]
        yaml_path = find_mirror_yaml()
        if yaml_path is not None:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=yaml_path))
        sources.append(file_secret_settings)
        return tuple(sources)

    @property
    def seen_dir(self) -> Path:
        """Directory holding seen-markers for this destination."""
        return self.dest_dir / self.seen_subdir


def get_config(**overrides: Any) -> Config:
    """
    Get the application configuration instance.

    Merges settings from environment variables, .env file and mirror.yaml
    (if present). Overrides whose value is None are ignored so that unset
    command-line flags do not mask other sources.

    Args:
        **overrides: Field values taking precedence over every other source

    Returns:
        Config: Application configuration
    """
    explicit = {key: value for key, value in overrides.items() if value is not None}
    return Config(**explicit)
