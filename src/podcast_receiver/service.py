"""
Podcast receiver service.

Wires the database, feed fetcher, download pipeline, retention manager and
refresh scheduler together and exposes the public operations. Operations
that do network or bulk work are queued on a background worker and return
a ``concurrent.futures.Future``; read queries run on the caller's thread.

Example:
    >>> service = PodcastService(get_config())
    >>> service.start()
    >>> channel = service.subscribe("https://example.com/feed.xml").result()
    >>> for episode in service.list_episodes(channel.id):
    ...     print(episode.title, episode.status.value)
    >>> service.shutdown()
"""

import logging
from concurrent.futures import Future
from typing import List, Optional

import requests

from podcast_receiver.collaborators import LibraryIndexer, SecurityGate
from podcast_receiver.config import Config
from podcast_receiver.ingestion.downloader import DownloadPipeline
from podcast_receiver.ingestion.feed_fetcher import FeedFetcher, RefreshReport
from podcast_receiver.ingestion.locks import ChannelLocks
from podcast_receiver.ingestion.retention import RetentionManager
from podcast_receiver.models.database import Database
from podcast_receiver.models.entities import Channel, Episode
from podcast_receiver.models.status import EpisodeStatus
from podcast_receiver.triggers.scheduler import RefreshScheduler

logger = logging.getLogger(__name__)


class PodcastService:
    """
    Public entry points of the podcast receiver.

    Attributes:
        config: Settings, read at the moment each job needs them
        database: Store holding channels and episodes
        retention: Deletion and retention logic
        pipeline: Bounded pool of download workers
        fetcher: Feed refresh logic
        scheduler: Periodic trigger plus the single refresh worker
    """

    def __init__(
        self,
        config: Config,
        database: Optional[Database] = None,
        security_gate: Optional[SecurityGate] = None,
        library_indexer: Optional[LibraryIndexer] = None,
        session: Optional[requests.Session] = None,
        initial_delay: Optional[float] = None,
    ) -> None:
        self.config = config
        self.database = database or Database(config.db_path)
        session = session or requests.Session()

        locks = ChannelLocks()
        self.retention = RetentionManager(self.database, config, locks)
        self.pipeline = DownloadPipeline(
            self.database,
            config,
            retention=self.retention,
            security_gate=security_gate,
            library_indexer=library_indexer,
            session=session,
            locks=locks,
        )
        self.fetcher = FeedFetcher(self.database, config, pipeline=self.pipeline, session=session)

        scheduler_kwargs = {} if initial_delay is None else {"initial_delay": initial_delay}
        self.scheduler = RefreshScheduler(
            on_timer=lambda: self.refresh_all(download=True), **scheduler_kwargs
        )

    # ------------------------------------------------------------------
    #  Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Create the schema, recover interrupted downloads and arm the timer."""
        self.database.initialize()
        recovered = self.pipeline.recover_interrupted()
        if recovered:
            logger.info("Marked %d interrupted download(s) as ERROR", len(recovered))
        self.schedule()

    def schedule(self) -> None:
        """(Re)arm the periodic refresh from the configured interval."""
        self.scheduler.set_interval(self.config.refresh_interval_hours)

    def set_refresh_interval(self, hours: Optional[int]) -> None:
        """
        Change the refresh interval at runtime.

        Args:
            hours: Hours between refreshes, or None to disable them
        """
        self.config.refresh_interval_hours = hours
        self.schedule()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the timer, then drain the refresh and download workers."""
        self.scheduler.shutdown(wait=wait)
        self.pipeline.shutdown(wait=wait)

    # ------------------------------------------------------------------
    #  Background operations
    # ------------------------------------------------------------------

    def subscribe(self, url: str) -> Future:
        """
        Subscribe to a feed and populate it in the background.

        The channel is stored and refreshed (with downloads) on the refresh
        worker, behind any cycle already queued.

        Returns:
            Future resolving to the stored Channel
        """
        return self.scheduler.submit(self._subscribe, url)

    def refresh_all(self, download: bool = True) -> Future:
        """
        Queue a refresh of every channel.

        Returns:
            Future resolving to the cycle's RefreshReport
        """
        return self.scheduler.submit(self._refresh_all, download)

    def refresh_channel(self, channel_id: int, download: bool = True) -> Future:
        """
        Queue a refresh of one channel.

        Returns:
            Future resolving to a RefreshReport, or None if the channel
            no longer exists when the refresh runs
        """
        return self.scheduler.submit(self._refresh_channel, channel_id, download)

    def download_episode(self, episode_id: int) -> Future:
        """
        Queue an explicit download; SKIPPED episodes are downloaded too.

        Returns:
            Future resolving to the final status written, or None
        """
        return self.pipeline.submit(episode_id)

    def delete_channel(self, channel_id: int) -> Future:
        """Queue deletion of a channel, its episodes and their files."""
        return self.scheduler.submit(self.retention.delete_channel, channel_id)

    # ------------------------------------------------------------------
    #  Synchronous operations
    # ------------------------------------------------------------------

    def delete_episode(self, episode_id: int, logical: bool = True) -> None:
        """
        Delete an episode and its file.

        Args:
            episode_id: Episode to delete
            logical: Keep the record as DELETED (True) or remove it (False)
        """
        self.retention.delete_episode(episode_id, logical=logical)
        logger.info("Deleted podcast episode %s", episode_id)

    def enforce_retention(self, channel_id: int) -> List[int]:
        """Run a retention pass for one channel; returns deleted episode IDs."""
        return self.retention.enforce(channel_id)

    def list_channels(self) -> List[Channel]:
        return self.database.get_all_channels()

    def list_episodes(self, channel_id: int, include_deleted: bool = False) -> List[Episode]:
        """Episodes of a channel, newest first."""
        episodes = self.database.get_episodes_by_channel(channel_id)
        if include_deleted:
            return episodes
        return [ep for ep in episodes if ep.status != EpisodeStatus.DELETED]

    def get_episode(self, episode_id: int, include_deleted: bool = False) -> Optional[Episode]:
        episode = self.database.get_episode(episode_id)
        if episode is None:
            return None
        if episode.status == EpisodeStatus.DELETED and not include_deleted:
            return None
        return episode

    # ------------------------------------------------------------------
    #  Refresh worker tasks
    # ------------------------------------------------------------------

    def _subscribe(self, url: str) -> Channel:
        channel = self.database.create_channel(Channel(url=url))
        logger.info("Subscribed to podcast %s", url)
        self.fetcher.refresh_channels([channel], download=True)
        return self.database.get_channel(channel.id) or channel

    def _refresh_all(self, download: bool) -> RefreshReport:
        report = self.fetcher.refresh_channels(self.database.get_all_channels(), download=download)
        logger.info(
            "Refresh cycle finished: %d channel(s), %d new episode(s), %d error(s)",
            len(report.channels), report.created_count, len(report.errors),
        )
        return report

    def _refresh_channel(self, channel_id: int, download: bool) -> Optional[RefreshReport]:
        channel = self.database.get_channel(channel_id)
        if channel is None:
            logger.debug("Channel %s vanished before refresh", channel_id)
            return None
        return self.fetcher.refresh_channels([channel], download=download)
