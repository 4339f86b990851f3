"""
Episode deletion and per-channel retention.

Deleting an episode removes its backing file (best effort) and then
either tombstones the record (status DELETED) or removes it. Retention
keeps only the newest ``retention_cap`` episodes of a channel and hard
deletes the rest, but never while one of the channel's episodes is being
downloaded.
"""

import logging
from pathlib import Path
from typing import Any, List, Optional

from podcast_receiver.ingestion.locks import ChannelLocks
from podcast_receiver.models.database import Database
from podcast_receiver.models.entities import Episode
from podcast_receiver.models.status import EpisodeStatus

logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Enforces the retention cap and implements episode/channel deletion.

    Attributes:
        database: Store holding channels and episodes
        config: Settings object; ``retention_cap`` is read on every pass
        locks: Per-channel locks shared with the download pipeline
    """

    def __init__(self, database: Database, config: Any, locks: Optional[ChannelLocks] = None) -> None:
        self.database = database
        self.config = config
        self.locks = locks or ChannelLocks()

    def enforce(self, channel_id: int) -> List[int]:
        """
        Delete a channel's episodes beyond the newest ``retention_cap``.

        No-op if the cap is unlimited or if any episode of the channel is
        currently DOWNLOADING.

        Args:
            channel_id: Channel to clean up

        Returns:
            IDs of the episodes that were deleted, oldest first
        """
        cap = self.config.retention_cap
        if cap is None:
            return []

        with self.locks.hold(channel_id):
            episodes = [
                ep for ep in self.database.get_episodes_by_channel(channel_id)
                if ep.status != EpisodeStatus.DELETED
            ]
            if any(ep.status == EpisodeStatus.DOWNLOADING for ep in episodes):
                logger.debug(
                    "Retention skipped for channel %s: a download is in progress", channel_id
                )
                return []

            # Stored order is newest first
            oldest_first = list(reversed(episodes))
            obsolete = oldest_first[:max(0, len(episodes) - cap)]
            for episode in obsolete:
                self.delete_episode(episode.id, logical=False)
                logger.info("Deleted old podcast episode %s", episode.enclosure_url)

        return [episode.id for episode in obsolete]

    def delete_episode(self, episode_id: int, logical: bool) -> None:
        """
        Delete an episode and its backing file.

        Idempotent: unknown IDs are ignored. A failure to remove the file
        is logged and does not stop the record from being deleted.

        Args:
            episode_id: Episode to delete
            logical: True to keep the record with status DELETED,
                False to remove the record entirely
        """
        episode = self.database.get_episode(episode_id)
        if episode is None:
            return

        remove_episode_file(episode)

        if logical:
            if episode.status != EpisodeStatus.DELETED:
                self.database.update_episode_status(episode_id, EpisodeStatus.DELETED)
        else:
            self.database.delete_episode(episode_id)

    def delete_channel(self, channel_id: int) -> None:
        """Hard delete every non-deleted episode of a channel, then the channel."""
        for episode in self.database.get_episodes_by_channel(channel_id):
            if episode.status != EpisodeStatus.DELETED:
                self.delete_episode(episode.id, logical=False)
        self.database.delete_channel(channel_id)
        logger.info("Deleted podcast channel %s", channel_id)


def remove_episode_file(episode: Episode) -> None:
    """Best-effort removal of an episode's file; the parent folder is kept."""
    if not episode.local_path:
        return
    try:
        Path(episode.local_path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not delete %s: %s", episode.local_path, exc)
