"""
Tests for configuration loading.

Covers:
- Defaults
- "No limit" spellings from the environment
- podcast.yaml ``receiver:`` section and its precedence below env vars
"""

import pytest
from pydantic import ValidationError

from podcast_receiver.config import Config, PodcastYamlSettingsSource, load_podcast_yaml


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "PODCAST_RECEIVER_RETENTION_CAP",
        "PODCAST_RECEIVER_DOWNLOAD_COUNT_CAP",
        "PODCAST_RECEIVER_REFRESH_INTERVAL_HOURS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_explicit_values(temp_dir):
    config = Config(db_path=temp_dir / "x.db", storage_folder=temp_dir)
    assert config.db_path == temp_dir / "x.db"
    assert config.http_timeout > 0


@pytest.mark.parametrize("raw", ["unlimited", "Disabled", "-1", "never", "none"])
def test_unlimited_from_env(monkeypatch, raw):
    monkeypatch.setenv("PODCAST_RECEIVER_RETENTION_CAP", raw)
    assert Config().retention_cap is None


def test_numeric_from_env(monkeypatch):
    monkeypatch.setenv("PODCAST_RECEIVER_DOWNLOAD_COUNT_CAP", "3")
    assert Config().download_count_cap == 3


def test_negative_int_means_unlimited():
    assert Config(retention_cap=-1).retention_cap is None


def test_zero_interval_rejected():
    with pytest.raises(ValidationError):
        Config(refresh_interval_hours=0)


def test_load_podcast_yaml(temp_dir):
    (temp_dir / "podcast.yaml").write_text("receiver:\n  retention_cap: 4\n", encoding="utf-8")
    nested = temp_dir / "a" / "b"
    nested.mkdir(parents=True)

    assert load_podcast_yaml(nested) == {"receiver": {"retention_cap": 4}}


def test_yaml_source_reads_receiver_section(temp_dir):
    (temp_dir / "podcast.yaml").write_text(
        "receiver:\n  retention_cap: unlimited\n  download_count_cap: 2\nother: 1\n",
        encoding="utf-8",
    )

    values = PodcastYamlSettingsSource(Config, search_dir=temp_dir)()

    assert values == {"retention_cap": "unlimited", "download_count_cap": 2}
