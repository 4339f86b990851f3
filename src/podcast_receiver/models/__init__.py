"""
Data models and database management.

Provides the SQLite schema, Pydantic data models, the episode status
state machine and the database access layer for channels and episodes.
"""

from podcast_receiver.models.database import Database
from podcast_receiver.models.schema import create_all_tables, get_table_names, SCHEMA_SQL
from podcast_receiver.models.entities import Channel, Episode
from podcast_receiver.models.status import (
    ALLOWED_TRANSITIONS,
    EpisodeStatus,
    InvalidStatusTransition,
)

__all__ = [
    "Database",
    "create_all_tables",
    "get_table_names",
    "SCHEMA_SQL",
    "Channel",
    "Episode",
    "EpisodeStatus",
    "ALLOWED_TRANSITIONS",
    "InvalidStatusTransition",
]
