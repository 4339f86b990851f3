"""
Episode lifecycle statuses and the legal transitions between them.

Pure logic, no I/O. A freshly discovered episode starts as NEW (queued for
automatic download) or SKIPPED (over the download-count cap). Only an
explicit download moves a SKIPPED episode forward. DELETED is a logical
tombstone; removing the row altogether (hard delete) is legal from any
state and is not modelled as a status.
"""

from enum import Enum
from typing import Dict, FrozenSet


class EpisodeStatus(str, Enum):
    """Episode lifecycle status."""
    NEW = "NEW"
    DOWNLOADING = "DOWNLOADING"
    DOWNLOADED = "DOWNLOADED"
    ERROR = "ERROR"
    SKIPPED = "SKIPPED"
    DELETED = "DELETED"

    def can_transition_to(self, target: "EpisodeStatus") -> bool:
        """Return True if moving from this status to ``target`` is legal."""
        return target in ALLOWED_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        """True for statuses the background jobs never move away from."""
        return self in TERMINAL_STATUSES


INITIAL_STATUSES: FrozenSet[EpisodeStatus] = frozenset(
    {EpisodeStatus.NEW, EpisodeStatus.SKIPPED}
)

TERMINAL_STATUSES: FrozenSet[EpisodeStatus] = frozenset(
    {EpisodeStatus.DOWNLOADED, EpisodeStatus.ERROR, EpisodeStatus.DELETED}
)

ALLOWED_TRANSITIONS: Dict[EpisodeStatus, FrozenSet[EpisodeStatus]] = {
    # NEW -> ERROR covers a destination that could not be created
    EpisodeStatus.NEW: frozenset({
        EpisodeStatus.DOWNLOADING,
        EpisodeStatus.SKIPPED,
        EpisodeStatus.ERROR,
        EpisodeStatus.DELETED,
    }),
    EpisodeStatus.SKIPPED: frozenset({
        EpisodeStatus.DOWNLOADING,
        EpisodeStatus.DELETED,
    }),
    EpisodeStatus.DOWNLOADING: frozenset({
        EpisodeStatus.DOWNLOADED,
        EpisodeStatus.ERROR,
        EpisodeStatus.DELETED,
    }),
    EpisodeStatus.DOWNLOADED: frozenset({EpisodeStatus.DELETED}),
    EpisodeStatus.ERROR: frozenset({EpisodeStatus.DELETED}),
    EpisodeStatus.DELETED: frozenset(),
}


class InvalidStatusTransition(ValueError):
    """Raised when an episode is asked to make an illegal status move."""

    def __init__(self, current: EpisodeStatus, target: EpisodeStatus):
        super().__init__(f"Illegal episode status transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


def check_transition(current: EpisodeStatus, target: EpisodeStatus) -> None:
    """
    Validate a status move.

    Raises:
        InvalidStatusTransition: If ``current`` may not move to ``target``
    """
    if not current.can_transition_to(target):
        raise InvalidStatusTransition(current, target)
