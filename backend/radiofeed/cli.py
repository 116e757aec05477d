"""Command-line feed fetcher

Usage:
  python -m radiofeed.cli fetch [URL] [--no-wait-images]
  python -m radiofeed.cli stats

Without URL, ``fetch`` uses FEED_URL from the environment / .env.
"""
import argparse
import logging
import sys

from radiofeed.config import settings
from radiofeed.database import SessionLocal, init_db
from radiofeed.exceptions import RadioFeedError
from radiofeed.services.asset_cache import AssetCache
from radiofeed.services.entity_store import EntityStore
from radiofeed.services.fetch_queue import FetchQueue
from radiofeed.services.ingestion_service import IngestionService

logger = logging.getLogger(__name__)


def print_stats(store: EntityStore) -> None:
    counts = store.count_all()
    print("\n=== Database Statistics ===")
    for name in ("tracks", "albums", "artists", "composers", "ads"):
        print(f"{name.capitalize() + ':':<11}{counts[name]}")
    print("===========================\n")


def print_recent_tracks(store: EntityStore, limit: int = 5) -> None:
    print("=== Recent Tracks ===")
    for track in store.list_tracks(limit=limit):
        print(f"• {track.track_artist} - \"{track.title}\"")
        if track.album:
            print(f"  Album: {track.album.title}")
    print("=====================\n")


def cmd_fetch(args) -> int:
    url = args.url or settings.feed_url
    if not url:
        print("Usage: python -m radiofeed.cli fetch <URL>")
        print("  Or set FEED_URL in the environment or .env\n")
        return 1

    fetch_queue = FetchQueue(AssetCache())
    db = SessionLocal()
    try:
        store = EntityStore(db)
        print("Before fetch:")
        print_stats(store)

        stats = IngestionService(db, fetch_queue).ingest(url)

        print("After fetch:")
        print_stats(store)
        print(f"Tracks: {stats.tracks_new} new, {stats.tracks_existing} existing")
        print(f"Ads processed: {stats.ads_processed}\n")
        print_recent_tracks(store)
    except RadioFeedError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()

    status = fetch_queue.status()
    if not status['is_draining']:
        return 0
    if args.no_wait_images:
        # The worker is a daemon thread; exiting now stops it mid-queue
        abandoned = status['pending_count'] + 1
        print(f"Not waiting for cover downloads: {abandoned} abandoned, the next fetch queues them again")
        return 0

    print(f"Waiting for cover downloads ({status['pending_count'] + 1} remaining)...")
    fetch_queue.wait_until_idle()
    print("Cover downloads finished.\n")
    return 0


def cmd_stats(args) -> int:
    db = SessionLocal()
    try:
        print_stats(EntityStore(db))
    finally:
        db.close()
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Fetch a radio feed into the local database.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch_parser = subparsers.add_parser("fetch", help="Ingest a feed once")
    fetch_parser.add_argument("url", nargs="?", default=None, help="Feed URL (default: FEED_URL)")
    fetch_parser.add_argument(
        "--no-wait-images",
        action="store_true",
        help="Exit without waiting for queued cover art downloads"
    )
    fetch_parser.set_defaults(func=cmd_fetch)

    stats_parser = subparsers.add_parser("stats", help="Show row counts")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_db()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
