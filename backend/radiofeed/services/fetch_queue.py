"""Background cover art download queue

A single worker thread drains pending downloads one at a time, writes each
image to the asset cache and points the owning albums at it. Albums that
share a cover wait on the same entry, so the cover is downloaded once and
every one of them is updated. The worker is started on the first enqueue and
exits once the pending list is empty, so an idle queue holds no thread.
"""
from collections import OrderedDict
from pathlib import Path
from typing import Callable, Dict, List, Optional
from sqlalchemy.orm import Session
import threading
import time
import logging

import requests

from radiofeed.config import settings
from radiofeed.database import SessionLocal
from radiofeed.exceptions import FetchError, StoreError
from radiofeed.services.asset_cache import AssetCache
from radiofeed.services.entity_store import EntityStore

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


class FetchQueue:
    """Serialized cover art fetcher; public surface is ``enqueue`` and ``status``"""

    def __init__(
        self,
        asset_cache: AssetCache,
        session_factory: Callable[[], Session] = SessionLocal,
        http: requests.Session = None,
        timeout: float = None,
        delay: float = None
    ):
        """
        Initialize fetch queue

        Args:
            asset_cache: Cache the downloaded images are written to
            session_factory: Creates the worker's own database sessions
            http: HTTP session used for downloads (a new one by default)
            timeout: Per-download timeout in seconds (defaults to settings)
            delay: Pause between consecutive downloads in seconds (defaults to settings)
        """
        self.cache = asset_cache
        self.session_factory = session_factory
        self.http = http or requests.Session()
        self.timeout = settings.asset_fetch_timeout if timeout is None else timeout
        self.delay = settings.asset_fetch_delay if delay is None else delay
        self.headers = {
            'Accept': 'image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
            'Cache-Control': 'no-cache',
            'Referer': settings.asset_referer,
            'User-Agent': USER_AGENT,
        }

        self._lock = threading.Lock()
        self._pending: "OrderedDict[str, List[str]]" = OrderedDict()  # cover ref -> waiting album ids
        self._in_flight: Optional[str] = None
        self._in_flight_albums: List[str] = []
        self._worker: Optional[threading.Thread] = None
        self._idle = threading.Event()
        self._idle.set()
        self._closed = False

    def enqueue(self, cover_ref: str, album_id: str = None) -> bool:
        """
        Queue a cover for download unless it is cached or already queued

        Safe to call from any thread; never blocks on the download itself.
        When the cover is already pending or downloading, the album is added
        to the albums waiting on it instead.

        Args:
            cover_ref: Remote cover reference, e.g. ``/covers/g-m/album.jpg``
            album_id: Album to point at the cached file once downloaded

        Returns:
            True if a new download was queued, False otherwise
        """
        if not cover_ref or self.cache.local_path(cover_ref) is None:
            return False
        if self.cache.is_cached(cover_ref):
            return False

        finished_meanwhile = False
        with self._lock:
            if self._closed:
                logger.warning(f"Fetch queue is shut down, not queueing {cover_ref}")
                return False
            if cover_ref in self._pending:
                self._add_waiter(self._pending[cover_ref], album_id)
                return False
            if cover_ref == self._in_flight:
                self._add_waiter(self._in_flight_albums, album_id)
                return False
            # The worker may have finished this cover since the check above
            finished_meanwhile = self.cache.is_cached(cover_ref)
            if not finished_meanwhile:
                self._pending[cover_ref] = [album_id] if album_id else []
                logger.info(f"Queued image for download: {self.cache.local_filename(cover_ref)}")

                if self._worker is None:
                    self._idle.clear()
                    self._worker = threading.Thread(target=self._drain, name="cover-art-fetch", daemon=True)
                    self._worker.start()

        if finished_meanwhile:
            if album_id:
                self._set_album_image(album_id, str(self.cache.local_path(cover_ref)))
            return False
        return True

    def cached_path(self, cover_ref: str) -> Optional[Path]:
        """Local path of a cover that is already in the cache, or None"""
        if not cover_ref or not self.cache.is_cached(cover_ref):
            return None
        return self.cache.local_path(cover_ref)

    def status(self) -> Dict[str, object]:
        """Point-in-time queue status: pending count and whether the worker is draining."""
        with self._lock:
            return {
                'pending_count': len(self._pending),
                'is_draining': self._worker is not None,
            }

    def wait_until_idle(self, timeout: float = None) -> bool:
        """
        Block until the worker has drained the queue

        Returns:
            True if idle, False if the timeout expired first
        """
        return self._idle.wait(timeout)

    def shutdown(self, timeout: float = None) -> bool:
        """Stop accepting work and wait for the current drain to finish."""
        with self._lock:
            self._closed = True
            dropped = len(self._pending)
            self._pending.clear()
        if dropped:
            logger.info(f"Dropped {dropped} pending image download(s) on shutdown")
        return self.wait_until_idle(timeout)

    @staticmethod
    def _add_waiter(album_ids: List[str], album_id: Optional[str]):
        if album_id and album_id not in album_ids:
            album_ids.append(album_id)

    def _drain(self):
        """Worker loop: download pending covers oldest first until none are left."""
        logger.info(f"Starting background image download ({len(self._pending)} images queued)...")
        downloaded = 0

        while True:
            with self._lock:
                if not self._pending:
                    self._in_flight = None
                    self._worker = None
                    self._idle.set()
                    break
                cover_ref, album_ids = self._pending.popitem(last=False)
                self._in_flight = cover_ref
                self._in_flight_albums = album_ids

            path = None
            try:
                path = self._fetch(cover_ref)
            except Exception as e:
                # Keep draining whatever happens to a single item
                logger.error(f"Unexpected error fetching {cover_ref}: {e}")
            finally:
                with self._lock:
                    # Albums that joined while the download ran are included
                    album_ids = self._in_flight_albums
                    self._in_flight = None
                    self._in_flight_albums = []
                    more = bool(self._pending)

            if path is not None:
                downloaded += 1
                for album_id in album_ids:
                    self._set_album_image(album_id, str(path))

            if more and self.delay > 0:
                time.sleep(self.delay)

        logger.info(f"Background image download complete ({downloaded} downloaded).")

    def _fetch(self, cover_ref: str) -> Optional[Path]:
        """
        Download one cover and cache it

        Failures are logged and the item is discarded; a later ingestion run
        queues it again if the cover is still missing.

        Returns:
            Cached path, or None on failure
        """
        filename = self.cache.local_filename(cover_ref)

        if self.cache.is_cached(cover_ref):
            return self.cache.local_path(cover_ref)

        try:
            data = self._download(self.cache.asset_url(cover_ref))
            path = self.cache.write(cover_ref, data)
        except FetchError as e:
            logger.warning(f"Failed: {filename} - {e}")
            return None
        except ValueError as e:
            logger.warning(f"Discarding {filename}: {e}")
            return None
        except OSError as e:
            logger.error(f"Could not write {filename}: {e}")
            return None
        logger.info(f"Downloaded: {filename} ({len(data)} bytes)")
        return path

    def _download(self, url: str) -> bytes:
        """
        GET an image body

        Raises:
            FetchError: On connection errors, timeouts and non-2xx responses
        """
        logger.debug(f"Downloading: {url}")
        try:
            response = self.http.get(url, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(url, f"Request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise FetchError(url, f"HTTP {response.status_code}", status_code=response.status_code)
        return response.content

    def _set_album_image(self, album_id: str, path: str):
        db = self.session_factory()
        try:
            if not EntityStore(db).update_album_image(album_id, path):
                logger.warning(f"Album {album_id} no longer exists, cached {path} without owner")
        except StoreError as e:
            logger.error(f"Could not record cached image for album {album_id}: {e}")
        finally:
            db.close()
