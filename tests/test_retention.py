"""
Tests for episode deletion and retention.

Covers:
- Oldest episodes beyond the cap are hard deleted with their files
- Retention never runs while a sibling episode is downloading
- Unlimited cap is a no-op
- Logical vs hard episode deletion, idempotency
- Channel deletion removes every episode and file
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from podcast_receiver.ingestion.retention import RetentionManager, remove_episode_file
from podcast_receiver.models import EpisodeStatus


def _dt(day: int) -> datetime:
    return datetime(2024, 1, day, tzinfo=timezone.utc)


@pytest.fixture
def manager(test_db, test_config):
    return RetentionManager(test_db, test_config)


@pytest.fixture
def downloaded(make_episode, test_config):
    """Factory for DOWNLOADED episodes with a real file on disk."""
    def _make(channel_id: int, day: int):
        path = test_config.storage_folder / f"ep{day}.mp3"
        path.write_bytes(b"audio")
        return make_episode(
            channel_id,
            publish_date=_dt(day),
            status=EpisodeStatus.DOWNLOADED,
            local_path=str(path),
        )
    return _make


class TestEnforce:

    def test_deletes_oldest_beyond_cap(self, manager, make_channel, downloaded, test_db, test_config):
        test_config.retention_cap = 2
        channel = make_channel()
        episodes = [downloaded(channel.id, day) for day in (1, 2, 3, 4, 5)]

        deleted = manager.enforce(channel.id)

        assert deleted == [episodes[0].id, episodes[1].id, episodes[2].id]
        remaining = test_db.get_episodes_by_channel(channel.id)
        assert [ep.id for ep in remaining] == [episodes[4].id, episodes[3].id]
        for ep in episodes[:3]:
            assert test_db.get_episode(ep.id) is None
            assert not Path(ep.local_path).exists()
        for ep in episodes[3:]:
            assert Path(ep.local_path).exists()

    def test_counts_undated_as_oldest(self, manager, make_channel, make_episode, downloaded, test_config):
        test_config.retention_cap = 1
        channel = make_channel()
        undated = make_episode(channel.id, status=EpisodeStatus.SKIPPED)
        downloaded(channel.id, 1)

        assert manager.enforce(channel.id) == [undated.id]

    def test_noop_while_downloading(self, manager, make_channel, make_episode, downloaded, test_db, test_config):
        test_config.retention_cap = 1
        channel = make_channel()
        for day in (1, 2, 3):
            downloaded(channel.id, day)
        make_episode(channel.id, status=EpisodeStatus.DOWNLOADING)

        assert manager.enforce(channel.id) == []
        assert len(test_db.get_episodes_by_channel(channel.id)) == 4

    def test_other_channel_downloading_does_not_block(self, manager, make_channel, make_episode, downloaded, test_config):
        test_config.retention_cap = 1
        channel = make_channel()
        other = make_channel()
        downloaded(channel.id, 1)
        downloaded(channel.id, 2)
        make_episode(other.id, status=EpisodeStatus.DOWNLOADING)

        assert len(manager.enforce(channel.id)) == 1

    def test_unlimited_is_noop(self, manager, make_channel, downloaded, test_db, test_config):
        test_config.retention_cap = None
        channel = make_channel()
        for day in range(1, 15):
            downloaded(channel.id, day)

        assert manager.enforce(channel.id) == []
        assert len(test_db.get_episodes_by_channel(channel.id)) == 14

    def test_logically_deleted_do_not_count(self, manager, make_channel, make_episode, downloaded, test_config):
        test_config.retention_cap = 2
        channel = make_channel()
        downloaded(channel.id, 1)
        downloaded(channel.id, 2)
        make_episode(channel.id, publish_date=_dt(3), status=EpisodeStatus.DELETED)

        assert manager.enforce(channel.id) == []

    def test_within_cap(self, manager, make_channel, downloaded, test_config):
        test_config.retention_cap = 10
        channel = make_channel()
        downloaded(channel.id, 1)
        assert manager.enforce(channel.id) == []


class TestDeleteEpisode:

    def test_logical_delete_keeps_record(self, manager, make_channel, downloaded, test_db):
        channel = make_channel()
        episode = downloaded(channel.id, 1)

        manager.delete_episode(episode.id, logical=True)

        stored = test_db.get_episode(episode.id)
        assert stored.status == EpisodeStatus.DELETED
        assert stored.bytes_downloaded == episode.bytes_downloaded
        assert not Path(episode.local_path).exists()

    def test_hard_delete_removes_record(self, manager, make_channel, downloaded, test_db):
        channel = make_channel()
        episode = downloaded(channel.id, 1)

        manager.delete_episode(episode.id, logical=False)

        assert test_db.get_episode(episode.id) is None

    def test_idempotent(self, manager, make_channel, downloaded, test_db):
        channel = make_channel()
        episode = downloaded(channel.id, 1)

        manager.delete_episode(episode.id, logical=True)
        manager.delete_episode(episode.id, logical=True)
        manager.delete_episode(episode.id, logical=False)
        manager.delete_episode(episode.id, logical=False)
        manager.delete_episode(99999, logical=True)

        assert test_db.get_episode(episode.id) is None

    def test_missing_file_is_ignored(self, manager, make_channel, make_episode, test_db):
        channel = make_channel()
        episode = make_episode(channel.id, local_path="/nonexistent/dir/ep.mp3")

        manager.delete_episode(episode.id, logical=True)

        assert test_db.get_episode(episode.id).status == EpisodeStatus.DELETED

    def test_parent_directory_is_kept(self, manager, make_channel, make_episode, test_config):
        channel = make_channel()
        directory = test_config.storage_folder / "Show"
        directory.mkdir()
        path = directory / "ep.mp3"
        path.write_bytes(b"audio")
        episode = make_episode(channel.id, local_path=str(path))

        manager.delete_episode(episode.id, logical=False)

        assert directory.is_dir()
        assert not path.exists()

    def test_file_removal_failure_logged(self, make_channel, make_episode, test_config, caplog):
        channel = make_channel()
        directory = test_config.storage_folder / "not-a-file"
        directory.mkdir()
        episode = make_episode(channel.id, local_path=str(directory))

        remove_episode_file(episode)

        assert directory.exists()
        assert "Could not delete" in caplog.text


class TestDeleteChannel:

    def test_removes_episodes_and_files(self, manager, make_channel, make_episode, downloaded, test_db):
        channel = make_channel()
        first = downloaded(channel.id, 1)
        second = downloaded(channel.id, 2)
        tombstone = make_episode(channel.id, status=EpisodeStatus.DELETED)

        manager.delete_channel(channel.id)

        assert test_db.get_channel(channel.id) is None
        for ep in (first, second, tombstone):
            assert test_db.get_episode(ep.id) is None
        assert not Path(first.local_path).exists()
        assert not Path(second.local_path).exists()

    def test_other_channels_untouched(self, manager, make_channel, downloaded, test_db):
        channel = make_channel()
        other = make_channel()
        downloaded(channel.id, 1)
        kept = downloaded(other.id, 2)

        manager.delete_channel(channel.id)

        assert test_db.get_episode(kept.id) is not None
        assert Path(kept.local_path).exists()
