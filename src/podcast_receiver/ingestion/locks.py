"""Per-channel locks shared by the download and retention jobs."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class ChannelLocks:
    """
    Lazily created re-entrant lock per channel ID.

    Downloads of different channels never contend; within one channel the
    lock serializes choosing a destination file and marking the episode
    DOWNLOADING against a retention pass deciding what to delete.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.RLock] = {}

    def get(self, channel_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(channel_id)
            if lock is None:
                lock = self._locks[channel_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, channel_id: int) -> Iterator[None]:
        with self.get(channel_id):
            yield
