"""
Configuration management for the Podcast Receiver.

Provides centralized configuration using Pydantic for validation and
environment variable support. Supports podcast.yaml for per-project settings.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import yaml
from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Default data paths relative to project root
DB_PATH = PROJECT_ROOT / "data" / "db" / "podcast_receiver.db"
STORAGE_FOLDER = PROJECT_ROOT / "data" / "podcasts"

# Strings accepted in place of a number to mean "no limit" / "never"
UNLIMITED_WORDS = {"", "-1", "unlimited", "disabled", "never", "none"}


def load_podcast_yaml(search_dir: Optional[Path] = None) -> dict:
    """
    Load podcast.yaml configuration file.

    Searches for podcast.yaml starting from search_dir (or PROJECT_ROOT)
    and walking up to 3 parent directories.

    Args:
        search_dir: Directory to start searching from

    Returns:
        Dictionary with podcast.yaml contents, or empty dict if not found
    """
    start = search_dir or PROJECT_ROOT
    for parent in [start] + list(start.parents)[:3]:
        candidate = parent / "podcast.yaml"
        if candidate.exists():
            with open(candidate, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
    return {}


class PodcastYamlSettingsSource(PydanticBaseSettingsSource):
    """Settings source reading the ``receiver:`` section of podcast.yaml."""

    def __init__(self, settings_cls: Type[BaseSettings], search_dir: Optional[Path] = None):
        super().__init__(settings_cls)
        section = load_podcast_yaml(search_dir).get("receiver") or {}
        self._section: Dict[str, Any] = section if isinstance(section, dict) else {}

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._section.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            if field_name in self._section:
                value, key, _ = self.get_field_value(field, field_name)
                values[key] = value
        return values


class Config(BaseSettings):
    """
    Application configuration with environment variable support.

    Configuration can be provided via:
    1. Environment variables (prefixed with PODCAST_RECEIVER_)
    2. .env file
    3. podcast.yaml (``receiver:`` section)
    4. Default values

    The three limits accept ``None`` (or "unlimited", "disabled", -1 in
    env/yaml) to switch the limit off.

    Example:
        export PODCAST_RECEIVER_STORAGE_FOLDER="/srv/podcasts"
        export PODCAST_RECEIVER_RETENTION_CAP=unlimited
    """

    model_config = SettingsConfigDict(
        env_prefix="PODCAST_RECEIVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Storage paths
    db_path: Path = Field(
        default=DB_PATH,
        description="Path to SQLite database file"
    )
    storage_folder: Path = Field(
        default=STORAGE_FOLDER,
        description="Base folder; each channel gets a sub-directory here"
    )

    # Refresh and download policy
    refresh_interval_hours: Optional[int] = Field(
        default=24,
        ge=1,
        description="Hours between automatic refreshes (None disables)"
    )
    download_count_cap: Optional[int] = Field(
        default=1,
        ge=0,
        description="Newly discovered episodes per channel marked for download (None = all)"
    )
    retention_cap: Optional[int] = Field(
        default=10,
        ge=0,
        description="Episodes kept per channel (None = keep everything)"
    )

    # HTTP settings
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Connect/read timeout in seconds for feed and enclosure requests"
    )
    user_agent: str = Field(
        default="podcast-receiver/0.1",
        description="User-Agent header sent with every request"
    )

    log_level: str = Field(
        default="INFO",
        description="Root log level used by the CLI"
    )

    @field_validator(
        "refresh_interval_hours", "download_count_cap", "retention_cap", mode="before"
    )
    @classmethod
    def parse_unlimited(cls, v: Any) -> Any:
        """Map the "no limit" spellings to None."""
        if v is None:
            return None
        if isinstance(v, str) and v.strip().lower() in UNLIMITED_WORDS:
            return None
        if isinstance(v, int) and not isinstance(v, bool) and v < 0:
            return None
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            PodcastYamlSettingsSource(settings_cls),
            file_secret_settings,
        )

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.storage_folder.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)


def get_config() -> Config:
    """
    Get the application configuration instance.

    Merges settings from environment variables, .env file,
    and podcast.yaml (if present).

    Returns:
        Config: Application configuration
    """
    config = Config()
    config.ensure_directories()
    return config
