"""
SQLite schema and database initialization.

Defines the database schema for channels and their episodes. Episodes
reference their channel with ON DELETE CASCADE so that purging a channel
also removes any logically deleted tombstones left behind.
"""

import sqlite3
from pathlib import Path
from typing import List


SCHEMA_SQL = """
-- ============================================================
-- CHANNELS: Subscribed podcast feeds
-- ============================================================
CREATE TABLE IF NOT EXISTS channels (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    url             TEXT    NOT NULL,
    title           TEXT,
    description     TEXT,
    created_at      TEXT    DEFAULT (datetime('now'))
);

-- ============================================================
-- EPISODES: Enclosures discovered in a channel's feed
-- ============================================================
CREATE TABLE IF NOT EXISTS episodes (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    channel_id       INTEGER NOT NULL REFERENCES channels(id) ON DELETE CASCADE,
    enclosure_url    TEXT    NOT NULL,
    local_path       TEXT,              -- set when the download starts
    title            TEXT,
    description      TEXT,
    publish_date     TEXT,              -- ISO-8601, UTC
    duration         TEXT,              -- as given by itunes:duration
    enclosure_length INTEGER,
    bytes_downloaded INTEGER NOT NULL DEFAULT 0,
    status           TEXT    NOT NULL DEFAULT 'NEW' CHECK (status IN
        ('NEW', 'DOWNLOADING', 'DOWNLOADED', 'ERROR', 'SKIPPED', 'DELETED')),
    created_at       TEXT    DEFAULT (datetime('now')),
    updated_at       TEXT    DEFAULT (datetime('now')),
    UNIQUE (channel_id, enclosure_url)
);

CREATE INDEX IF NOT EXISTS idx_episodes_channel ON episodes(channel_id);
CREATE INDEX IF NOT EXISTS idx_episodes_status ON episodes(status);
"""


def create_all_tables(db_path: Path) -> None:
    """
    Create all tables and indexes.

    Safe to call multiple times (idempotent).

    Args:
        db_path: Path to SQLite database file
    """
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
    finally:
        conn.close()


def get_table_names(db_path: Path) -> List[str]:
    """
    List user tables in the database.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Sorted table names
    """
    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()
