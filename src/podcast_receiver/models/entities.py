"""
Pydantic data models for channels and episodes.

Defines type-safe data models with validation for the records kept in
the database. Instances are plain snapshots: components re-read them from
the database before mutating.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .status import EpisodeStatus, check_transition


class Channel(BaseModel):
    """
    Podcast channel (feed subscription).

    ``title`` and ``description`` are filled in from the feed after the
    first successful refresh.
    """
    id: Optional[int] = None
    url: str
    title: Optional[str] = None
    description: Optional[str] = None

    class Config:
        """Pydantic configuration."""
        from_attributes = True

    @property
    def display_title(self) -> str:
        """Title for logs and listings, falling back to the feed URL."""
        return self.title or self.url


class Episode(BaseModel):
    """
    Episode data model.

    One downloadable enclosure discovered in a channel's feed, plus its
    local download state. ``enclosure_url`` is unique within a channel.
    """
    id: Optional[int] = None
    channel_id: int
    enclosure_url: str
    local_path: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    publish_date: Optional[datetime] = None
    duration: Optional[str] = None
    enclosure_length: Optional[int] = Field(None, ge=0)
    bytes_downloaded: int = Field(default=0, ge=0)
    status: EpisodeStatus = EpisodeStatus.NEW

    class Config:
        """Pydantic configuration."""
        from_attributes = True

    def set_status(self, target: EpisodeStatus) -> EpisodeStatus:
        """
        Move to ``target`` after checking the transition is legal.

        Args:
            target: New status

        Returns:
            The previous status, handy as a compare-and-set expectation

        Raises:
            InvalidStatusTransition: If the move is not allowed
        """
        previous = self.status
        check_transition(previous, target)
        self.status = target
        return previous
