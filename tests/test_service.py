"""
End-to-end tests for the PodcastService facade.

The HTTP session is mocked: feed requests return a document that is
parsed by a patched ``feedparser.parse``, enclosure requests return a
small streamed body.
"""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from podcast_receiver.models import EpisodeStatus
from podcast_receiver.service import PodcastService


FEED_URL = "https://example.com/feed.xml"


def _make_entry(audio_url, published):
    entry = SimpleNamespace(
        title=audio_url.rsplit("/", 1)[-1],
        published=published,
        enclosures=[{"href": audio_url, "length": "3"}],
    )
    entry.get = lambda key, default=None: getattr(entry, key, default)
    return entry


def _make_feed(entries):
    return SimpleNamespace(
        entries=entries,
        bozo=0,
        bozo_exception=None,
        version="rss20",
        feed={"title": "Daily Show", "description": "News every day"},
    )


def _make_session():
    def get(url, **kwargs):
        response = MagicMock()
        response.__enter__.return_value = response
        response.__exit__.return_value = False
        response.raise_for_status.return_value = None
        response.content = b"<rss/>"
        response.iter_content.return_value = iter([b"abc"])
        return response

    session = MagicMock(spec=requests.Session)
    session.get.side_effect = get
    return session


FEED = _make_feed([
    _make_entry("https://cdn.example.com/jan1.mp3", "Mon, 01 Jan 2024 12:00:00 +0000"),
    _make_entry("https://cdn.example.com/jan3.mp3", "Wed, 03 Jan 2024 12:00:00 +0000"),
    _make_entry("https://cdn.example.com/jan2.mp3", "Tue, 02 Jan 2024 12:00:00 +0000"),
])


@pytest.fixture
def service(test_config, test_db, indexer):
    svc = PodcastService(
        test_config,
        database=test_db,
        library_indexer=indexer,
        session=_make_session(),
        initial_delay=3600,
    )
    yield svc
    svc.shutdown(wait=True)


def _drain(service):
    """Wait for queued refresh and download work to finish."""
    service.scheduler.submit(lambda: None).result(timeout=10)
    service.pipeline.shutdown(wait=True)


class TestSubscribe:

    @patch("podcast_receiver.ingestion.feed_fetcher.feedparser.parse", return_value=FEED)
    def test_subscribe_populates_and_downloads_newest(self, mock_parse, service, test_config):
        channel = service.subscribe(FEED_URL).result(timeout=10)
        _drain(service)

        assert channel.title == "Daily Show"
        episodes = service.list_episodes(channel.id)
        assert [ep.title for ep in episodes] == ["jan3.mp3", "jan2.mp3", "jan1.mp3"]
        assert [ep.status for ep in episodes] == [
            EpisodeStatus.DOWNLOADED, EpisodeStatus.SKIPPED, EpisodeStatus.SKIPPED,
        ]
        assert Path(episodes[0].local_path).read_bytes() == b"abc"
        assert Path(episodes[0].local_path).parent == test_config.storage_folder / "Daily Show"

    @patch("podcast_receiver.ingestion.feed_fetcher.feedparser.parse", return_value=FEED)
    def test_refresh_all_finds_nothing_new(self, mock_parse, service):
        service.subscribe(FEED_URL).result(timeout=10)

        report = service.refresh_all(download=False).result(timeout=10)

        assert report.created_count == 0
        assert report.errors == []

    @patch("podcast_receiver.ingestion.feed_fetcher.feedparser.parse", return_value=FEED)
    def test_refresh_missing_channel(self, mock_parse, service):
        assert service.refresh_channel(4242).result(timeout=10) is None


class TestOperations:

    @patch("podcast_receiver.ingestion.feed_fetcher.feedparser.parse", return_value=FEED)
    def test_explicit_download_of_skipped(self, mock_parse, service):
        channel = service.subscribe(FEED_URL).result(timeout=10)
        skipped = service.list_episodes(channel.id)[-1]

        status = service.download_episode(skipped.id).result(timeout=10)

        assert status == EpisodeStatus.DOWNLOADED
        assert service.get_episode(skipped.id).status == EpisodeStatus.DOWNLOADED

    def test_logical_delete_hidden_from_queries(self, service, make_channel, make_episode):
        channel = make_channel()
        episode = make_episode(channel.id)

        service.delete_episode(episode.id)

        assert service.get_episode(episode.id) is None
        assert service.get_episode(episode.id, include_deleted=True).status == EpisodeStatus.DELETED
        assert service.list_episodes(channel.id) == []
        assert len(service.list_episodes(channel.id, include_deleted=True)) == 1

    def test_purge(self, service, make_channel, make_episode):
        channel = make_channel()
        episode = make_episode(channel.id)

        service.delete_episode(episode.id, logical=False)

        assert service.get_episode(episode.id, include_deleted=True) is None

    def test_delete_channel(self, service, make_channel, make_episode):
        channel = make_channel()
        make_episode(channel.id)

        service.delete_channel(channel.id).result(timeout=10)

        assert service.list_channels() == []
        assert service.list_episodes(channel.id, include_deleted=True) == []

    def test_enforce_retention(self, service, make_channel, make_episode, test_config):
        test_config.retention_cap = 1
        channel = make_channel()
        make_episode(channel.id)
        make_episode(channel.id)

        assert len(service.enforce_retention(channel.id)) == 1


class TestLifecycle:

    def test_start_recovers_and_schedules(self, service, make_channel, make_episode):
        channel = make_channel()
        interrupted = make_episode(channel.id, status=EpisodeStatus.DOWNLOADING)

        service.start()

        assert service.get_episode(interrupted.id).status == EpisodeStatus.ERROR
        assert service.scheduler.is_scheduled

    def test_disabled_interval(self, service):
        service.start()

        service.set_refresh_interval(None)

        assert not service.scheduler.is_scheduled
        assert service.config.refresh_interval_hours is None

    def test_timer_queues_full_refresh(self, test_config, test_db, indexer):
        svc = PodcastService(test_config, database=test_db, library_indexer=indexer, session=_make_session())
        try:
            with patch.object(svc, "refresh_all") as refresh_all:
                svc.scheduler.on_timer()
            refresh_all.assert_called_once_with(download=True)
        finally:
            svc.shutdown(wait=True)
