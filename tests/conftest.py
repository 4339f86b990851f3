"""
Shared test fixtures.

Provides pytest fixtures for common test resources including:
- Temporary directory and test configuration
- Initialized temporary database
- In-memory library indexer
- Stored channel and episode factories
"""

import pytest
from pathlib import Path
import tempfile
from typing import Callable

from podcast_receiver.collaborators import InMemoryLibraryIndexer
from podcast_receiver.config import Config
from podcast_receiver.models.database import Database
from podcast_receiver.models.entities import Channel, Episode


@pytest.fixture
def temp_dir():
    """
    Create temporary directory for test files.

    Yields:
        Path: Temporary directory path
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_dir: Path) -> Config:
    """
    Create test configuration with temporary paths.

    Args:
        temp_dir: Temporary directory fixture

    Returns:
        Config: Test configuration
    """
    config = Config(
        db_path=temp_dir / "db" / "test.db",
        storage_folder=temp_dir / "podcasts",
        refresh_interval_hours=24,
        download_count_cap=1,
        retention_cap=10,
        http_timeout=5.0,
    )
    config.ensure_directories()
    return config


@pytest.fixture
def test_db(test_config: Config) -> Database:
    """
    Create test database with schema.

    Args:
        test_config: Test configuration fixture

    Returns:
        Database: Initialized test database
    """
    db = Database(test_config.db_path)
    db.initialize()
    return db


@pytest.fixture
def indexer() -> InMemoryLibraryIndexer:
    return InMemoryLibraryIndexer()


@pytest.fixture
def make_channel(test_db: Database) -> Callable[..., Channel]:
    """Factory storing a channel and returning it with its ID."""
    counter = {"n": 0}

    def _make(url: str = None, title: str = "Test Show", description: str = "A show") -> Channel:
        counter["n"] += 1
        url = url or f"https://example.com/feed{counter['n']}.xml"
        return test_db.create_channel(Channel(url=url, title=title, description=description))

    return _make


@pytest.fixture
def make_episode(test_db: Database) -> Callable[..., Episode]:
    """Factory storing an episode and returning it with its ID."""
    counter = {"n": 0}

    def _make(channel_id: int, **fields) -> Episode:
        counter["n"] += 1
        fields.setdefault("enclosure_url", f"https://cdn.example.com/ep{counter['n']}.mp3")
        fields.setdefault("title", f"Episode {counter['n']}")
        return test_db.create_episode(Episode(channel_id=channel_id, **fields))

    return _make
