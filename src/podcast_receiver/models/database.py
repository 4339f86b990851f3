"""
Database management and data access layer.

Provides a Database class for managing SQLite connections and the CRUD
operations used by the refresh, download and retention jobs. Each public
method opens its own connection and commits before returning, so every
call is an atomic single-row read/modify/write and the class can be shared
between worker threads. There are no multi-row transactions.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .entities import Channel, Episode
from .schema import create_all_tables
from .status import EpisodeStatus

# Seconds a writer waits for a competing writer's lock
BUSY_TIMEOUT = 30.0

# Newest first; undated episodes after dated ones, then in creation order
EPISODE_ORDER = "ORDER BY publish_date IS NULL, publish_date DESC, id ASC"


class Database:
    """
    Database connection and query management for channels and episodes.

    Example:
        >>> db = Database(Path("data/db/podcast_receiver.db"))
        >>> db.initialize()
        >>> channel = db.create_channel(Channel(url="https://example.com/feed.xml"))
        >>> db.get_episodes_by_channel(channel.id)
        []
    """

    def __init__(self, db_path: Path):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def initialize(self) -> None:
        """
        Initialize database schema.

        Creates all tables and indexes if they don't exist.
        Safe to call multiple times (idempotent).
        """
        create_all_tables(self.db_path)

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.

        Automatically handles connection cleanup and ensures UTF-8 encoding
        and foreign key constraints are enabled.

        Yields:
            sqlite3.Connection: Database connection with row factory set
        """
        conn = sqlite3.connect(str(self.db_path), timeout=BUSY_TIMEOUT)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        conn.execute("PRAGMA encoding = 'UTF-8'")
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise e
        finally:
            conn.close()

    # ------------------------------------------------------------------
    #  Channels
    # ------------------------------------------------------------------

    def create_channel(self, channel: Channel) -> Channel:
        """
        Insert a new channel.

        Args:
            channel: Channel to insert (``id`` is ignored)

        Returns:
            Copy of the channel with its assigned ID
        """
        with self.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO channels (url, title, description) VALUES (?, ?, ?)",
                (channel.url, channel.title, channel.description),
            )
            channel_id = cursor.lastrowid
        return channel.model_copy(update={"id": channel_id})

    def get_channel(self, channel_id: int) -> Optional[Channel]:
        """Retrieve a channel by ID, or None if it does not exist."""
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM channels WHERE id = ?", (channel_id,)
            ).fetchone()
        return _row_to_channel(row) if row else None

    def get_all_channels(self) -> List[Channel]:
        """Retrieve all channels in subscription order."""
        with self.get_connection() as conn:
            rows = conn.execute("SELECT * FROM channels ORDER BY id").fetchall()
        return [_row_to_channel(row) for row in rows]

    def update_channel(self, channel: Channel) -> bool:
        """
        Persist a channel's URL, title and description.

        Returns:
            True if the channel still existed and was updated
        """
        with self.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE channels SET url = ?, title = ?, description = ? WHERE id = ?",
                (channel.url, channel.title, channel.description, channel.id),
            )
            return cursor.rowcount == 1

    def delete_channel(self, channel_id: int) -> None:
        """Delete a channel; remaining episode rows are removed by cascade."""
        with self.get_connection() as conn:
            conn.execute("DELETE FROM channels WHERE id = ?", (channel_id,))

    # ------------------------------------------------------------------
    #  Episodes
    # ------------------------------------------------------------------

    def create_episode(self, episode: Episode) -> Episode:
        """
        Insert a new episode record.

        Args:
            episode: Episode to insert (``id`` is ignored)

        Returns:
            Copy of the episode with its assigned ID

        Raises:
            sqlite3.IntegrityError: If the channel already has an episode
                with the same enclosure URL, or the channel does not exist
        """
        with self.get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO episodes (
                    channel_id, enclosure_url, local_path, title, description,
                    publish_date, duration, enclosure_length, bytes_downloaded, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    episode.channel_id,
                    episode.enclosure_url,
                    episode.local_path,
                    episode.title,
                    episode.description,
                    _dt_to_str(episode.publish_date),
                    episode.duration,
                    episode.enclosure_length,
                    episode.bytes_downloaded,
                    episode.status.value,
                ),
            )
            episode_id = cursor.lastrowid
        return episode.model_copy(update={"id": episode_id})

    def get_episode(self, episode_id: int) -> Optional[Episode]:
        """Retrieve an episode by ID regardless of status, or None if purged."""
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM episodes WHERE id = ?", (episode_id,)
            ).fetchone()
        return _row_to_episode(row) if row else None

    def get_episodes_by_channel(self, channel_id: int) -> List[Episode]:
        """
        Retrieve all episodes of a channel, including logically deleted ones.

        Returns:
            Episodes ordered newest first (undated ones last)
        """
        with self.get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM episodes WHERE channel_id = ? {EPISODE_ORDER}",
                (channel_id,),
            ).fetchall()
        return [_row_to_episode(row) for row in rows]

    def get_episodes_by_status(self, status: EpisodeStatus) -> List[Episode]:
        """Retrieve every episode currently in ``status``, across channels."""
        with self.get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM episodes WHERE status = ? {EPISODE_ORDER}",
                (status.value,),
            ).fetchall()
        return [_row_to_episode(row) for row in rows]

    def update_episode(
        self,
        episode: Episode,
        expected_status: Optional[EpisodeStatus] = None,
    ) -> bool:
        """
        Persist all mutable fields of an episode.

        When ``expected_status`` is given the write only happens if the
        stored row still has that status (compare-and-set), which lets a
        download notice that the episode was deleted underneath it.

        Args:
            episode: Episode carrying the new values
            expected_status: Status the stored row must currently have

        Returns:
            True if a row was updated
        """
        sql = """
            UPDATE episodes SET
                local_path = ?, title = ?, description = ?, publish_date = ?,
                duration = ?, enclosure_length = ?, bytes_downloaded = ?,
                status = ?, updated_at = datetime('now')
            WHERE id = ?
        """
        params = [
            episode.local_path,
            episode.title,
            episode.description,
            _dt_to_str(episode.publish_date),
            episode.duration,
            episode.enclosure_length,
            episode.bytes_downloaded,
            episode.status.value,
            episode.id,
        ]
        if expected_status is not None:
            sql += " AND status = ?"
            params.append(expected_status.value)

        with self.get_connection() as conn:
            cursor = conn.execute(sql, params)
            return cursor.rowcount == 1

    def update_episode_status(
        self,
        episode_id: int,
        status: EpisodeStatus,
        expected_status: Optional[EpisodeStatus] = None,
    ) -> bool:
        """
        Update only the status column of an episode.

        Args:
            episode_id: Episode ID
            status: New status
            expected_status: Status the stored row must currently have

        Returns:
            True if a row was updated
        """
        sql = "UPDATE episodes SET status = ?, updated_at = datetime('now') WHERE id = ?"
        params = [status.value, episode_id]
        if expected_status is not None:
            sql += " AND status = ?"
            params.append(expected_status.value)

        with self.get_connection() as conn:
            cursor = conn.execute(sql, params)
            return cursor.rowcount == 1

    def delete_episode(self, episode_id: int) -> None:
        """Remove an episode record entirely (hard delete)."""
        with self.get_connection() as conn:
            conn.execute("DELETE FROM episodes WHERE id = ?", (episode_id,))


def _dt_to_str(dt: Optional[datetime]) -> Optional[str]:
    """Normalize to UTC ISO-8601 so that text ordering matches time ordering."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _row_to_channel(row: sqlite3.Row) -> Channel:
    return Channel(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        description=row["description"],
    )


def _row_to_episode(row: sqlite3.Row) -> Episode:
    publish_date = row["publish_date"]
    return Episode(
        id=row["id"],
        channel_id=row["channel_id"],
        enclosure_url=row["enclosure_url"],
        local_path=row["local_path"],
        title=row["title"],
        description=row["description"],
        publish_date=datetime.fromisoformat(publish_date) if publish_date else None,
        duration=row["duration"],
        enclosure_length=row["enclosure_length"],
        bytes_downloaded=row["bytes_downloaded"],
        status=EpisodeStatus(row["status"]),
    )
