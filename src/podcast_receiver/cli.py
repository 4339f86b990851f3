"""
Command-line interface for the Podcast Receiver.

Usage:
    podcast-receiver subscribe URL          # Subscribe and download the newest episode(s)
    podcast-receiver channels               # List subscribed channels
    podcast-receiver episodes 3             # List episodes of channel 3
    podcast-receiver episodes 3 --all       # ... including deleted ones
    podcast-receiver refresh                # Refresh every channel and download NEW episodes
    podcast-receiver refresh --channel 3 --no-download
    podcast-receiver download 42            # Download episode 42 (also if SKIPPED)
    podcast-receiver delete-episode 42      # Delete file, keep record as DELETED
    podcast-receiver delete-episode 42 --purge
    podcast-receiver unsubscribe 3          # Delete channel 3 with all episodes
    podcast-receiver retention 3            # Apply the retention cap to channel 3
    podcast-receiver run                    # Refresh periodically until interrupted
    podcast-receiver channels --output-json # JSON output for automation
"""

import argparse
import json
import logging
import sys
import time

from podcast_receiver.config import get_config
from podcast_receiver.models.status import EpisodeStatus


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _open_service():
    """Build a service with an initialized database and no armed timer."""
    from podcast_receiver.service import PodcastService

    config = get_config()
    _configure_logging(config.log_level)
    service = PodcastService(config)
    service.database.initialize()
    return service


def _print_report(report, output_json: bool) -> None:
    if output_json:
        print(report.to_json())
    else:
        for outcome in report.channels:
            name = outcome.title or f"channel {outcome.channel_id}"
            if outcome.error:
                print(f"ERROR: {name}: {outcome.error}")
            else:
                print(f"{name}: {outcome.created} new episode(s), {outcome.marked_new} queued")
        if report.queued_downloads:
            print(f"Downloading {len(report.queued_downloads)} episode(s)...")
    if report.errors:
        sys.exit(1)


def cmd_subscribe(args):
    """Subscribe to a feed and populate it."""
    service = _open_service()
    try:
        channel = service.subscribe(args.url).result()
    finally:
        service.shutdown(wait=True)

    if args.output_json:
        print(json.dumps(channel.model_dump(), indent=2, ensure_ascii=False))
        return
    print(f"Subscribed to {channel.display_title} (id={channel.id})")


def cmd_channels(args):
    """List subscribed channels."""
    service = _open_service()
    channels = service.list_channels()

    if args.output_json:
        print(json.dumps([c.model_dump() for c in channels], indent=2, ensure_ascii=False))
        return

    if not channels:
        print("No channels subscribed.")
        return
    for channel in channels:
        print(f"  [{channel.id}] {channel.display_title}")


def cmd_episodes(args):
    """List the episodes of a channel."""
    service = _open_service()
    episodes = service.list_episodes(args.channel, include_deleted=args.all)

    if args.output_json:
        print(json.dumps([e.model_dump(mode="json") for e in episodes], indent=2, ensure_ascii=False))
        return

    if not episodes:
        print(f"No episodes for channel {args.channel}.")
        return
    for ep in episodes:
        date_str = ep.publish_date.strftime("%Y-%m-%d") if ep.publish_date else "undated"
        print(f"  [{ep.id}] {ep.status.value:<11} {date_str}  {ep.title or ep.enclosure_url}")


def cmd_refresh(args):
    """Refresh channels now and wait for the resulting downloads."""
    service = _open_service()
    download = not args.no_download
    try:
        if args.channel is not None:
            report = service.refresh_channel(args.channel, download=download).result()
        else:
            report = service.refresh_all(download=download).result()
    finally:
        service.shutdown(wait=True)

    if report is None:
        print(f"ERROR: Channel {args.channel} not found.")
        sys.exit(1)
    _print_report(report, args.output_json)


def cmd_download(args):
    """Download one episode."""
    service = _open_service()
    try:
        status = service.download_episode(args.episode).result()
    finally:
        service.shutdown(wait=True)

    episode = service.get_episode(args.episode, include_deleted=True)
    if episode is None:
        print(f"ERROR: Episode {args.episode} not found.")
        sys.exit(1)
    print(f"Episode {episode.id}: {episode.status.value}")
    if status is not EpisodeStatus.DOWNLOADED:
        sys.exit(1)


def cmd_delete_episode(args):
    """Delete an episode and its file."""
    service = _open_service()
    service.delete_episode(args.episode, logical=not args.purge)
    print(f"Deleted episode {args.episode}")


def cmd_unsubscribe(args):
    """Delete a channel with all its episodes."""
    service = _open_service()
    try:
        service.delete_channel(args.channel).result()
    finally:
        service.shutdown(wait=True)
    print(f"Unsubscribed channel {args.channel}")


def cmd_retention(args):
    """Apply the retention cap to a channel."""
    service = _open_service()
    deleted = service.enforce_retention(args.channel)

    if args.output_json:
        print(json.dumps({"channel_id": args.channel, "deleted": deleted}, indent=2))
        return
    print(f"Deleted {len(deleted)} old episode(s) from channel {args.channel}")


def cmd_run(args):
    """Run the periodic refresh until interrupted."""
    from podcast_receiver.service import PodcastService

    config = get_config()
    _configure_logging(config.log_level)
    if args.interval is not None:
        config.refresh_interval_hours = args.interval

    service = PodcastService(config)
    service.start()
    if args.refresh_now:
        service.refresh_all(download=True)

    print("Podcast receiver running. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        service.shutdown(wait=True)


def _add_json_flag(parser):
    parser.add_argument(
        "--output-json",
        action="store_true",
        default=False,
        help="Output result as JSON (for automation)",
    )


def main():
    parser = argparse.ArgumentParser(
        prog="podcast-receiver",
        description="Podcast Receiver -- subscribe to feeds and keep episodes downloaded",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # subscribe
    sub_subscribe = subparsers.add_parser("subscribe", help="Subscribe to a podcast feed")
    sub_subscribe.add_argument("url", help="Feed URL")
    _add_json_flag(sub_subscribe)
    sub_subscribe.set_defaults(func=cmd_subscribe)

    # channels
    sub_channels = subparsers.add_parser("channels", help="List subscribed channels")
    _add_json_flag(sub_channels)
    sub_channels.set_defaults(func=cmd_channels)

    # episodes
    sub_episodes = subparsers.add_parser("episodes", help="List episodes of a channel")
    sub_episodes.add_argument("channel", type=int, help="Channel ID")
    sub_episodes.add_argument(
        "--all",
        action="store_true",
        default=False,
        help="Include deleted episodes",
    )
    _add_json_flag(sub_episodes)
    sub_episodes.set_defaults(func=cmd_episodes)

    # refresh
    sub_refresh = subparsers.add_parser("refresh", help="Refresh feeds now")
    sub_refresh.add_argument(
        "--channel",
        type=int,
        default=None,
        help="Only refresh this channel ID",
    )
    sub_refresh.add_argument(
        "--no-download",
        action="store_true",
        default=False,
        help="Discover episodes without downloading them",
    )
    _add_json_flag(sub_refresh)
    sub_refresh.set_defaults(func=cmd_refresh)

    # download
    sub_download = subparsers.add_parser("download", help="Download an episode")
    sub_download.add_argument("episode", type=int, help="Episode ID")
    sub_download.set_defaults(func=cmd_download)

    # delete-episode
    sub_delete = subparsers.add_parser("delete-episode", help="Delete an episode and its file")
    sub_delete.add_argument("episode", type=int, help="Episode ID")
    sub_delete.add_argument(
        "--purge",
        action="store_true",
        default=False,
        help="Remove the record instead of marking it deleted",
    )
    sub_delete.set_defaults(func=cmd_delete_episode)

    # unsubscribe
    sub_unsubscribe = subparsers.add_parser("unsubscribe", help="Delete a channel and its episodes")
    sub_unsubscribe.add_argument("channel", type=int, help="Channel ID")
    sub_unsubscribe.set_defaults(func=cmd_unsubscribe)

    # retention
    sub_retention = subparsers.add_parser("retention", help="Apply the retention cap to a channel")
    sub_retention.add_argument("channel", type=int, help="Channel ID")
    _add_json_flag(sub_retention)
    sub_retention.set_defaults(func=cmd_retention)

    # run
    sub_run = subparsers.add_parser("run", help="Refresh periodically until interrupted")
    sub_run.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Hours between refreshes (default: from configuration)",
    )
    sub_run.add_argument(
        "--refresh-now",
        action="store_true",
        default=False,
        help="Queue a refresh immediately instead of waiting for the first timer",
    )
    sub_run.set_defaults(func=cmd_run)

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    args.func(args)


if __name__ == "__main__":
    main()
