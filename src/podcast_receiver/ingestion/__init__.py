"""
Ingestion module for feed refreshing, episode downloading and retention.

Provides discovery of new episodes from podcast feeds, a bounded pool of
download workers, and per-channel cleanup of old episodes.
"""

from podcast_receiver.ingestion.feed_fetcher import (
    FeedError,
    FeedFetchError,
    FeedFetcher,
    FeedParseError,
    RefreshReport,
)
from podcast_receiver.ingestion.downloader import DownloadPipeline
from podcast_receiver.ingestion.retention import RetentionManager

__all__ = [
    "FeedError",
    "FeedFetchError",
    "FeedFetcher",
    "FeedParseError",
    "RefreshReport",
    "DownloadPipeline",
    "RetentionManager",
]
