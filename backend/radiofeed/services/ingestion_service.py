"""Ingestion pipeline: fetch a feed and fold it into the entity store"""
from contextlib import contextmanager
from typing import Any, List, Optional, Tuple
from pydantic import BaseModel
from sqlalchemy.orm import Session
import threading
import logging

import requests

from radiofeed.config import settings
from radiofeed.exceptions import FetchError, IngestionInProgressError, SchemaError
from radiofeed.models import Ad, Album, Artist, Composer, Track
from radiofeed.services.entity_store import EntityKind, EntityStore
from radiofeed.services.fetch_queue import FetchQueue
from radiofeed.services.identity_resolver import IdentityResolver
from radiofeed.utils.feed_records import (
    AdRecord,
    AlbumRecord,
    ArtistRecord,
    ComposerRecord,
    TrackRecord,
    parse_record,
)

logger = logging.getLogger(__name__)

# One run at a time per process; dedup relies on runs not interleaving
_run_lock = threading.Lock()


class RunStats(BaseModel):
    """Counters accumulated over one ingestion run"""
    items_total: int = 0
    tracks_new: int = 0
    tracks_existing: int = 0
    ads_processed: int = 0
    albums_new: int = 0
    albums_existing: int = 0
    artists_new: int = 0
    artists_existing: int = 0
    composers_new: int = 0
    composers_existing: int = 0
    records_skipped: int = 0


def ingestion_running() -> bool:
    """Whether an ingestion run is active in this process"""
    return _run_lock.locked()


@contextmanager
def exclusive_run():
    """Hold the process-wide ingestion guard; raises IngestionInProgressError if taken."""
    if not _run_lock.acquire(blocking=False):
        raise IngestionInProgressError("An ingestion run is already in progress")
    try:
        yield
    finally:
        _run_lock.release()


class IngestionService:
    """Service for feed ingestion runs"""

    def __init__(self, db: Session, fetch_queue: FetchQueue = None, http: requests.Session = None, timeout: float = None):
        """
        Initialize ingestion service

        Args:
            db: Database session
            fetch_queue: Cover art queue; covers are not fetched when None
            http: HTTP session for the feed request (plain ``requests`` by default)
            timeout: Feed request timeout in seconds (defaults to settings)
        """
        self.db = db
        self.store = EntityStore(db)
        self.fetch_queue = fetch_queue
        self.resolver = IdentityResolver(self.store, fetch_queue)
        self.http = http or requests
        self.timeout = settings.feed_fetch_timeout if timeout is None else timeout

    def ingest(self, url: str) -> RunStats:
        """
        Fetch a feed and ingest every record in it

        Args:
            url: Feed URL returning a JSON array

        Returns:
            RunStats for the run

        Raises:
            FetchError: Feed unreachable or non-2xx
            SchemaError: Feed body is not a JSON array
            IngestionInProgressError: Another run is active
            StoreError: Storage failure while persisting a record
        """
        with exclusive_run():
            items = self.fetch_feed(url)
            return self._ingest_items(items)

    def ingest_records(self, items: Any) -> RunStats:
        """
        Ingest an already-decoded feed payload

        Raises:
            SchemaError: If ``items`` is not a list
            IngestionInProgressError: Another run is active
        """
        if not isinstance(items, list):
            raise SchemaError("Expected array of items")
        with exclusive_run():
            return self._ingest_items(items)

    def fetch_feed(self, url: str) -> List[Any]:
        """
        GET the feed and decode it

        Raises:
            FetchError: On connection errors, timeouts and non-2xx responses
            SchemaError: If the body is not JSON or not an array
        """
        logger.info(f"Fetching data from: {url}")
        try:
            response = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(url, f"Feed request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise FetchError(url, f"Feed returned HTTP {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise SchemaError(f"Feed body is not valid JSON: {e}") from e

        if not isinstance(data, list):
            raise SchemaError(f"Expected array of items from feed, got {type(data).__name__}")
        return data

    def _ingest_items(self, items: List[Any]) -> RunStats:
        stats = RunStats(items_total=len(items))
        logger.info(f"Found {len(items)} items to process")

        # Strictly sequential: each record must see rows created by earlier ones
        for index, item in enumerate(items, start=1):
            logger.debug(f"Processing item {index}/{len(items)}...")
            try:
                record = parse_record(item)
            except SchemaError as e:
                stats.records_skipped += 1
                logger.warning(f"Skipping item {index}: {e}")
                continue

            if isinstance(record, AdRecord):
                self._process_ad(record)
                stats.ads_processed += 1
                continue

            self._process_track_record(record, stats)

        logger.info(
            f"Import summary: tracks {stats.tracks_new} new, {stats.tracks_existing} existing; "
            f"ads processed {stats.ads_processed}; skipped {stats.records_skipped}"
        )
        return stats

    def _process_track_record(self, record: TrackRecord, stats: RunStats):
        album, album_created = self._process_album(record.album, stats)
        artist = self._process_artist(record.artist, stats)
        composer = self._process_composer(record.composer, stats)

        track, is_new = self._process_track(record, album, artist, composer)
        if is_new:
            stats.tracks_new += 1
        else:
            stats.tracks_existing += 1

        if album_created:
            self.resolver.attach_album_cover(album, record.album.cdcover)

    def _process_ad(self, record: AdRecord) -> Ad:
        ad = Ad(
            ad_type=record.ad_type.value if record.ad_type else None,
            ad_source=record.ad_source,
            fn=record.fn,
            fn_as=record.fn_as,
            fn_ar=record.fn_ar
        )
        self.store.insert(ad)
        logger.info(f"Saved ad ({ad.ad_type})")
        return ad

    def _process_album(self, record: Optional[AlbumRecord], stats: RunStats) -> Tuple[Optional[Album], bool]:
        """
        Resolve or create the album of a track record

        Returns:
            (album or None, whether it was created by this call)
        """
        if record is None or not record.original_id:
            return None, False

        if not record.title:
            logger.warning(f"Skipping album without title (id: {record.original_id})")
            return None, False

        resolution = self.resolver.resolve(EntityKind.ALBUM, record.original_id, cover_ref=record.cdcover)
        if not resolution.create_required:
            stats.albums_existing += 1
            return resolution.existing, False

        album = Album(
            original_id=record.original_id,
            asin=record.asin,
            title=record.title,
            label=record.label,
            year=record.year,
            cdcover=record.cdcover,
            local_image=None,
            buyalbum=record.buyalbum,
            itunes=record.itunes,
            itunes_id=record.itunes_id,
            created_by=record.created_by,
            approved_by=record.approved_by,
            pending_id=record.pending_id,
            job=record.job
        )
        self.store.insert(album)
        stats.albums_new += 1
        logger.info(f"Created album: {album.title}")
        return album, True

    def _process_artist(self, record: Optional[ArtistRecord], stats: RunStats) -> Optional[Artist]:
        if record is None or not record.original_id:
            return None

        resolution = self.resolver.resolve(EntityKind.ARTIST, record.original_id)
        if not resolution.create_required:
            stats.artists_existing += 1
            return resolution.existing

        if not record.artistdisplay:
            logger.warning(f"Skipping artist without display name (id: {record.original_id})")
            return None

        artist = Artist(
            original_id=record.original_id,
            artistdisplay=record.artistdisplay,
            artistcat=record.artistcat,
            created_by=record.created_by,
            approved_by=record.approved_by,
            job=record.job,
            oldid=record.oldid
        )
        self.store.insert(artist)
        stats.artists_new += 1
        logger.info(f"Created artist: {artist.artistdisplay}")
        return artist

    def _process_composer(self, record: Optional[ComposerRecord], stats: RunStats) -> Optional[Composer]:
        if record is None or not record.original_id:
            return None

        resolution = self.resolver.resolve(EntityKind.COMPOSER, record.original_id)
        if not resolution.create_required:
            stats.composers_existing += 1
            return resolution.existing

        composer = Composer(
            original_id=record.original_id,
            display=record.display,
            value=record.value,
            cat=record.cat,
            created_by=record.created_by,
            approved_by=record.approved_by,
            job=record.job,
            oldid=record.oldid
        )
        self.store.insert(composer)
        stats.composers_new += 1
        logger.info(f"Created composer: {composer.name}")
        return composer

    def _process_track(
        self,
        record: TrackRecord,
        album: Optional[Album],
        artist: Optional[Artist],
        composer: Optional[Composer]
    ) -> Tuple[Track, bool]:
        """
        Resolve or create the track itself

        Returns:
            (track, whether it was created by this call)
        """
        resolution = self.resolver.resolve(EntityKind.TRACK, record.original_id, record.fingerprint)
        if not resolution.create_required:
            suffix = " (by content)" if resolution.matched_by == "fingerprint" else ""
            logger.info(f"Track already exists{suffix}: {record.title}")
            return resolution.existing, False

        track = Track(
            original_id=record.original_id,
            track_artist=record.track_artist,
            title=record.title,
            fn=record.fn,
            primary=record.primary,
            secondary=record.secondary,
            holiday=record.holiday,
            duration=record.duration,
            unedited_duration=record.unedited_duration,
            calculated_weight=record.calculated_weight,
            listfrom=record.listfrom,
            created_by=record.created_by,
            approved_by=record.approved_by,
            job=record.job,
            oldid=record.oldid,
            album_id=album.id if album else None,
            artist_id=artist.id if artist else None,
            composer_id=composer.id if composer else None
        )
        self.store.insert(track)
        logger.info(f"Created track: {track.track_artist} - {track.title}")
        return track, True
