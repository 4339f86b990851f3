"""
Episode downloader with a bounded worker pool.

Streams enclosures to ``<storage_folder>/<channel title>/<file>`` using
three worker threads, checkpointing progress every ~30 kB. At each
checkpoint the download also notices whether the episode was deleted in
the meantime, in which case the partial file is removed and the deletion
stands. A successful download triggers a retention pass for its channel.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, BinaryIO, List, Optional

import requests

from podcast_receiver.collaborators import (
    FolderMetadata,
    LibraryIndexer,
    LoggingLibraryIndexer,
    SecurityGate,
    StorageFolderSecurityGate,
    WriteAccessDenied,
)
from podcast_receiver.ingestion.locks import ChannelLocks
from podcast_receiver.ingestion.paths import channel_directory, unique_episode_path
from podcast_receiver.ingestion.retention import RetentionManager
from podcast_receiver.models.database import Database
from podcast_receiver.models.entities import Channel, Episode
from podcast_receiver.models.status import EpisodeStatus

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

DOWNLOAD_WORKERS = 3
CHUNK_SIZE = 4096  # bytes per read
CHECKPOINT_BYTES = 30_000  # progress is persisted about this often


class DownloadPipeline:
    """
    Downloads episodes on a fixed pool of worker threads.

    ``submit`` returns immediately; each task re-reads the episode before
    doing anything, so queued work for an episode deleted in the meantime
    is a no-op. Failures are isolated per episode and recorded as status
    ERROR; they never escape the worker.

    Attributes:
        database: Store holding channels and episodes
        config: Settings; ``storage_folder`` and ``http_timeout`` are used
        retention: Retention manager run after each successful download
        security_gate: Consulted before a destination file is created
        library_indexer: Told about each channel directory that is created
        locks: Per-channel locks shared with the retention manager
    """

    def __init__(
        self,
        database: Database,
        config: Any,
        retention: Optional[RetentionManager] = None,
        security_gate: Optional[SecurityGate] = None,
        library_indexer: Optional[LibraryIndexer] = None,
        session: Optional[requests.Session] = None,
        locks: Optional[ChannelLocks] = None,
        max_workers: int = DOWNLOAD_WORKERS,
    ) -> None:
        self.database = database
        self.config = config
        self.locks = locks or (retention.locks if retention else ChannelLocks())
        self.retention = retention or RetentionManager(database, config, self.locks)
        self.security_gate = security_gate or StorageFolderSecurityGate(config.storage_folder)
        self.library_indexer = library_indexer or LoggingLibraryIndexer()
        self.session = session or requests.Session()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="podcast-download"
        )

    def submit(self, episode_id: int) -> Future:
        """Queue an episode for download and return the task's future."""
        return self._executor.submit(self._run, episode_id)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; optionally wait for queued downloads."""
        self._executor.shutdown(wait=wait)

    def recover_interrupted(self) -> List[int]:
        """
        Mark episodes left DOWNLOADING by an earlier process as ERROR.

        Only meaningful before any download of this process has started.

        Returns:
            IDs of the episodes that were recovered
        """
        recovered = []
        for episode in self.database.get_episodes_by_status(EpisodeStatus.DOWNLOADING):
            if self.database.update_episode_status(
                episode.id, EpisodeStatus.ERROR, expected_status=EpisodeStatus.DOWNLOADING
            ):
                logger.warning(
                    "Download of %s was interrupted, partial file %s", episode.enclosure_url, episode.local_path
                )
                recovered.append(episode.id)
        return recovered

    # ------------------------------------------------------------------
    #  Worker
    # ------------------------------------------------------------------

    def download(self, episode_id: int) -> Optional[EpisodeStatus]:
        """
        Download one episode on the calling thread.

        Args:
            episode_id: Episode to download

        Returns:
            Final status written by this task, or None if nothing was done
        """
        episode = self.database.get_episode(episode_id)
        if episode is None or episode.status == EpisodeStatus.DELETED:
            logger.info("Podcast episode %s was deleted. Aborting download.", episode_id)
            return None
        if not episode.status.can_transition_to(EpisodeStatus.DOWNLOADING):
            logger.debug("Episode %s is %s, not downloading", episode_id, episode.status.value)
            return None

        channel = self.database.get_channel(episode.channel_id)
        if channel is None:
            return None

        stored_status = episode.status
        try:
            out, path = self._start(channel, episode)
        except WriteAccessDenied as exc:
            # Status stays as it was, so a NEW episode is retried next cycle
            logger.warning("Failed to download podcast from %s: %s", episode.enclosure_url, exc)
            return None
        except OSError as exc:
            # Nothing was persisted yet, the stored status is still the one we read
            logger.warning("Failed to download podcast from %s: %s", episode.enclosure_url, exc)
            return self._fail(episode, expected=stored_status)
        if out is None:
            return None

        try:
            completed = self._transfer(episode, out, path)
        except (requests.RequestException, OSError) as exc:
            logger.warning("Failed to download podcast from %s: %s", episode.enclosure_url, exc)
            return self._fail(episode, expected=EpisodeStatus.DOWNLOADING)
        except Exception:
            logger.exception("Unexpected error downloading podcast from %s", episode.enclosure_url)
            return self._fail(episode, expected=EpisodeStatus.DOWNLOADING)
        finally:
            out.close()

        if not completed:
            return EpisodeStatus.DELETED

        self.retention.enforce(channel.id)
        return EpisodeStatus.DOWNLOADED

    def _start(self, channel: Channel, episode: Episode):
        """
        Create the destination file and mark the episode DOWNLOADING.

        Returns:
            (open file, path), or (None, None) if the episode changed
            status underneath us

        Raises:
            WriteAccessDenied: If the security gate refuses the path
            OSError: If the directory or file cannot be created
        """
        with self.locks.hold(channel.id):
            path = self._resolve_destination(channel, episode)
            out = open(path, "xb")
            try:
                previous = episode.set_status(EpisodeStatus.DOWNLOADING)
                episode.local_path = str(path)
                updated = self.database.update_episode(episode, expected_status=previous)
            except BaseException:
                out.close()
                path.unlink(missing_ok=True)
                raise

            if not updated:
                out.close()
                path.unlink(missing_ok=True)
                logger.info("Episode %s changed while starting; download abandoned", episode.id)
                return None, None

        logger.info("Starting to download podcast from %s", episode.enclosure_url)
        return out, path

    def _resolve_destination(self, channel: Channel, episode: Episode) -> Path:
        directory = channel_directory(
            self.config.storage_folder, channel.title, fallback=f"channel-{channel.id}"
        )
        if not directory.exists():
            try:
                directory.mkdir(parents=True)
            except FileExistsError:
                # Another channel with the same sanitized title created it first
                logger.debug("Podcast folder %s already exists", directory)
            else:
                self.library_indexer.register_folder(directory)
                self.library_indexer.set_folder_metadata(
                    directory, FolderMetadata(enabled=True, comment=channel.description)
                )

        path = unique_episode_path(directory, episode.enclosure_url, episode.title)
        if not self.security_gate.is_write_allowed(path):
            raise WriteAccessDenied(f"Access denied to file {path}")
        return path

    def _transfer(self, episode: Episode, out: BinaryIO, path: Path) -> bool:
        """
        Stream the enclosure into ``out``.

        Returns:
            True if the episode is now DOWNLOADED, False if it was
            deleted during the transfer (the partial file is removed)
        """
        transferred = 0
        next_checkpoint = CHECKPOINT_BYTES

        with self.session.get(
            episode.enclosure_url,
            stream=True,
            timeout=self.config.http_timeout,
            headers={"User-Agent": self.config.user_agent},
        ) as response:
            response.raise_for_status()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                out.write(chunk)
                transferred += len(chunk)

                if transferred >= next_checkpoint:
                    next_checkpoint += CHECKPOINT_BYTES
                    episode.bytes_downloaded = transferred
                    if not self.database.update_episode(
                        episode, expected_status=EpisodeStatus.DOWNLOADING
                    ):
                        self._discard(episode, out, path)
                        return False

        out.close()
        episode.bytes_downloaded = transferred
        episode.set_status(EpisodeStatus.DOWNLOADED)
        if not self.database.update_episode(episode, expected_status=EpisodeStatus.DOWNLOADING):
            self._discard(episode, out, path)
            return False

        logger.info("Downloaded %d bytes from podcast %s", transferred, episode.enclosure_url)
        return True

    def _discard(self, episode: Episode, out: BinaryIO, path: Path) -> None:
        logger.info("Podcast %s was deleted. Aborting download.", episode.enclosure_url)
        out.close()
        path.unlink(missing_ok=True)

    def _fail(self, episode: Episode, expected: EpisodeStatus) -> Optional[EpisodeStatus]:
        """Record ERROR unless the episode was deleted in the meantime."""
        if not expected.can_transition_to(EpisodeStatus.ERROR):
            return None
        if self.database.update_episode_status(
            episode.id, EpisodeStatus.ERROR, expected_status=expected
        ):
            return EpisodeStatus.ERROR
        return None

    def _run(self, episode_id: int) -> Optional[EpisodeStatus]:
        try:
            return self.download(episode_id)
        except Exception:
            logger.exception("Unexpected error downloading podcast episode %s", episode_id)
            return None
