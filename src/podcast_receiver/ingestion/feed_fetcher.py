"""
Podcast feed fetching and episode discovery.

Fetches each channel's RSS document, refreshes the channel's title and
description, and creates records for enclosures that have not been seen
before. New episodes are stored newest first; the first
``download_count_cap`` of them are NEW (queued for automatic download) and
the rest SKIPPED. The decision is taken once, when the episode is created.

Every channel is processed independently: a network or parse failure is
logged, recorded in the cycle's report and the next channel is processed.
Nothing is recorded on the channel, so it is simply retried next cycle.

Example:
    >>> fetcher = FeedFetcher(database, config, pipeline=pipeline)
    >>> report = fetcher.refresh_channels(database.get_all_channels(), download=True)
    >>> print(report.to_json())
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

import feedparser
import requests

from podcast_receiver.models.database import Database
from podcast_receiver.models.entities import Channel, Episode
from podcast_receiver.models.status import EpisodeStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

# feedparser files elements from either URI under the ``itunes_`` key prefix
ITUNES_NAMESPACES = (
    "http://www.itunes.com/DTDs/Podcast-1.0.dtd",
    "http://www.itunes.com/dtds/podcast-1.0.dtd",
)

# pubDate layout, e.g. "Mon, 02 Jan 2024 15:04:05 +0000"; the second form
# accepts the same layout with a textual zone ("GMT", "UTC")
RSS_DATE_FORMATS = (
    "%a, %d %b %Y %H:%M:%S %z",
    "%a, %d %b %Y %H:%M:%S %Z",
)


# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class FeedError(Exception):
    """Base class for failures that abort one channel's refresh."""


class FeedFetchError(FeedError):
    """The feed document could not be retrieved."""


class FeedParseError(FeedError):
    """The retrieved document is not a usable feed."""


# ---------------------------------------------------------------------------
#  Data models
# ---------------------------------------------------------------------------

@dataclass
class ChannelRefresh:
    """
    Outcome of refreshing a single channel.

    Attributes:
        channel_id: Channel that was refreshed
        title: Channel title after the refresh
        created: Number of episodes created
        marked_new: How many of the created episodes were marked NEW
        error: Error message if the refresh of this channel failed
    """

    channel_id: int
    title: Optional[str] = None
    created: int = 0
    marked_new: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


@dataclass
class RefreshReport:
    """
    Result of one refresh cycle.

    Attributes:
        checked_at: ISO-8601 timestamp of when the cycle started
        channels: Per-channel outcomes, in processing order
        queued_downloads: Episode IDs handed to the download pipeline
        errors: Error messages of the channels that failed
    """

    checked_at: str = ""
    channels: List[ChannelRefresh] = field(default_factory=list)
    queued_downloads: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        """Total number of episodes created in this cycle."""
        return sum(c.created for c in self.channels)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "checked_at": self.checked_at,
            "channels": [c.to_dict() for c in self.channels],
            "queued_downloads": self.queued_downloads,
            "errors": self.errors,
            "created_count": self.created_count,
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


# ---------------------------------------------------------------------------
#  Entry extraction
# ---------------------------------------------------------------------------

def parse_publish_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an RSS pubDate in the fixed RFC-822 style layout.

    Args:
        value: Raw pubDate text, e.g. "Mon, 02 Jan 2024 15:04:05 +0000"

    Returns:
        Timezone-aware datetime, or None if the text does not match
    """
    if not value:
        return None
    text = value.strip()
    for fmt in RSS_DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    logger.warning("Failed to parse publish date %r", value)
    return None


def parse_length(value: Any) -> Optional[int]:
    """Parse an enclosure length attribute; missing or malformed gives None."""
    if value is None or value == "":
        return None
    try:
        length = int(str(value).strip())
    except (TypeError, ValueError):
        logger.warning("Failed to parse enclosure length %r", value)
        return None
    return length if length >= 0 else None


def _text(value: Any) -> Optional[str]:
    """Trimmed string, or None for missing/blank values."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _itunes_value(entry: Any, name: str) -> Optional[str]:
    """Value of an iTunes-namespace child element of ``entry``."""
    return _text(entry.get(f"itunes_{name}"))


def _summary_fallback(entry: Any) -> Optional[str]:
    """
    First non-blank ``<itunes:summary>`` text of an entry.

    feedparser files ``<itunes:summary>`` under ``summary`` when the entry
    has no ``<description>``, and under ``content`` otherwise.
    """
    for item in entry.get("content") or []:
        text = _text(item.get("value"))
        if text:
            return text
    return None


def _first_enclosure(entry: Any) -> Optional[Dict[str, Any]]:
    enclosures = entry.get("enclosures") or []
    for enclosure in enclosures:
        if enclosure.get("href") or enclosure.get("url"):
            return enclosure
    return None


def extract_episode(entry: Any, channel_id: int) -> Optional[Episode]:
    """
    Build an (unsaved) episode from a feedparser entry.

    Field-level problems never drop the entry: an unparseable date or
    length just leaves that field empty. Entries without an enclosure URL
    have nothing to download and are skipped.

    Args:
        entry: feedparser entry
        channel_id: Channel the entry belongs to

    Returns:
        Episode with status NEW, or None if the entry has no enclosure
    """
    title = _text(entry.get("title"))
    enclosure = _first_enclosure(entry)
    if enclosure is None:
        logger.warning("Skipping feed entry without enclosure: %r", title)
        return None

    description = _text(entry.get("description")) or _summary_fallback(entry)

    return Episode(
        channel_id=channel_id,
        enclosure_url=(enclosure.get("href") or enclosure.get("url")).strip(),
        title=title,
        description=description,
        publish_date=parse_publish_date(entry.get("published")),
        duration=_itunes_value(entry, "duration"),
        enclosure_length=parse_length(enclosure.get("length")),
    )


def sort_newest_first(episodes: Iterable[Episode]) -> List[Episode]:
    """
    Order episodes by publish date descending.

    Undated episodes come after all dated ones. Ties, and the undated
    episodes among themselves, keep their feed order.
    """
    episodes = list(episodes)
    dated = [ep for ep in episodes if ep.publish_date is not None]
    undated = [ep for ep in episodes if ep.publish_date is None]
    # list.sort is stable with reverse=True as well
    dated.sort(key=lambda ep: ep.publish_date, reverse=True)
    return dated + undated


def assign_initial_status(episodes: List[Episode], download_count_cap: Optional[int]) -> None:
    """Mark the first ``download_count_cap`` episodes NEW and the rest SKIPPED."""
    for index, episode in enumerate(episodes):
        if download_count_cap is not None and index >= download_count_cap:
            episode.status = EpisodeStatus.SKIPPED
        else:
            episode.status = EpisodeStatus.NEW


# ---------------------------------------------------------------------------
#  Fetcher
# ---------------------------------------------------------------------------

class FeedFetcher:
    """
    Refreshes channels from their feeds and discovers new episodes.

    Attributes:
        database: Store holding channels and episodes
        config: Settings; ``download_count_cap`` and ``http_timeout`` are
            read on every refresh
        pipeline: Download pipeline that receives NEW episodes after a
            cycle with ``download=True``
        session: HTTP session used to fetch feed documents
    """

    def __init__(
        self,
        database: Database,
        config: Any,
        pipeline: Optional[Any] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.database = database
        self.config = config
        self.pipeline = pipeline
        self.session = session or requests.Session()

    def fetch_document(self, url: str) -> Any:
        """
        Download and parse a feed document.

        Args:
            url: Feed URL

        Returns:
            feedparser result

        Raises:
            FeedFetchError: On connection errors, timeouts or HTTP errors
            FeedParseError: If the document is not a feed
        """
        try:
            response = self.session.get(
                url,
                timeout=self.config.http_timeout,
                headers={"User-Agent": self.config.user_agent},
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FeedFetchError(f"Failed to fetch {url}: {exc}") from exc

        feed = feedparser.parse(response.content)

        if not feed.entries and (feed.bozo or not getattr(feed, "version", "")):
            raise FeedParseError(
                f"Failed to parse RSS feed {url}: {getattr(feed, 'bozo_exception', None)}"
            )
        return feed

    def refresh_channel(self, channel: Channel) -> ChannelRefresh:
        """
        Refresh one channel and create records for its new episodes.

        Args:
            channel: Channel to refresh

        Returns:
            ChannelRefresh describing what was created

        Raises:
            FeedError: If the feed could not be fetched or parsed
        """
        feed = self.fetch_document(channel.url)

        channel.title = _text(feed.feed.get("title"))
        channel.description = _text(feed.feed.get("description"))
        self.database.update_channel(channel)

        known_urls: Set[str] = {
            ep.enclosure_url for ep in self.database.get_episodes_by_channel(channel.id)
        }
        discovered: List[Episode] = []
        for entry in feed.entries:
            episode = extract_episode(entry, channel.id)
            if episode is None or episode.enclosure_url in known_urls:
                continue
            known_urls.add(episode.enclosure_url)
            discovered.append(episode)

        ordered = sort_newest_first(discovered)
        assign_initial_status(ordered, self.config.download_count_cap)

        for episode in ordered:
            self.database.create_episode(episode)
            logger.info("Created podcast episode %s", episode.title or episode.enclosure_url)

        return ChannelRefresh(
            channel_id=channel.id,
            title=channel.title,
            created=len(ordered),
            marked_new=sum(1 for ep in ordered if ep.status == EpisodeStatus.NEW),
        )

    def refresh_channels(self, channels: Iterable[Channel], download: bool = False) -> RefreshReport:
        """
        Refresh several channels, then optionally queue NEW episodes.

        A failing channel is logged and reported; the others are still
        refreshed. With ``download`` set, every NEW episode of every
        channel (including ones left NEW by earlier cycles) is handed to the
        download pipeline afterwards.

        Args:
            channels: Channels to refresh
            download: Queue NEW episodes for download after the refresh

        Returns:
            RefreshReport for the cycle
        """
        report = RefreshReport(checked_at=datetime.now(timezone.utc).isoformat())
        for channel in channels:
            try:
                outcome = self.refresh_channel(channel)
            except FeedError as exc:
                logger.warning("Failed to get/parse RSS file for podcast channel %s: %s", channel.url, exc)
                outcome = ChannelRefresh(channel_id=channel.id, title=channel.title, error=str(exc))
            except Exception as exc:
                logger.exception("Unexpected error refreshing podcast channel %s", channel.url)
                outcome = ChannelRefresh(channel_id=channel.id, title=channel.title, error=f"Unexpected error: {exc}")

            report.channels.append(outcome)
            if outcome.error:
                report.errors.append(outcome.error)
            elif outcome.created:
                logger.info(
                    "Channel '%s': %d new episode(s), %d queued for download",
                    channel.display_title, outcome.created, outcome.marked_new,
                )

        if download and self.pipeline is not None:
            for episode in self.database.get_episodes_by_status(EpisodeStatus.NEW):
                self.pipeline.submit(episode.id)
                report.queued_downloads.append(episode.id)

        return report
