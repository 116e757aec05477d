"""Identity resolution for feed entities

Lookup precedence:

1. External id. A hit is authoritative and ends the lookup.
2. Content fingerprint, tracks only: (track_artist, title, fn). Albums,
   artists and composers have no fingerprint, so a miss on step 1 means
   "create".

Matching is exact and case-sensitive.

A fingerprint match wins even when the two records carry different external
ids (or only one carries one). Two genuinely distinct tracks sharing artist,
title and filename therefore collapse into one row.
"""
from typing import Optional, Tuple
import logging

from radiofeed.services.entity_store import EntityKind, EntityStore
from radiofeed.services.fetch_queue import FetchQueue

logger = logging.getLogger(__name__)

Fingerprint = Tuple[str, str, Optional[str]]


class Resolution:
    """Outcome of a lookup: the existing row, or nothing (create required)"""

    __slots__ = ("existing", "matched_by")

    def __init__(self, existing=None, matched_by: str = None):
        self.existing = existing
        self.matched_by = matched_by  # "external_id", "fingerprint" or None

    @property
    def create_required(self) -> bool:
        return self.existing is None

    def __repr__(self):
        return f"<Resolution(existing={self.existing!r}, matched_by={self.matched_by!r})>"


class IdentityResolver:
    """Decides whether a feed record matches a stored row"""

    def __init__(self, store: EntityStore, fetch_queue: FetchQueue = None):
        """
        Initialize identity resolver

        Args:
            store: Entity store to look rows up in
            fetch_queue: Queue used to repair missing album covers on a hit
        """
        self.store = store
        self.fetch_queue = fetch_queue

    def resolve(
        self,
        kind: EntityKind,
        external_id: Optional[str],
        fingerprint: Fingerprint = None,
        cover_ref: Optional[str] = None
    ) -> Resolution:
        """
        Find the stored row for a feed record

        Args:
            kind: Entity kind (not ads, which are never deduplicated)
            external_id: Upstream id, if the record has one
            fingerprint: (artist, title, filename), tracks only
            cover_ref: Album cover reference; queued for download when a
                matched album has no cached image yet

        Returns:
            Resolution with the existing row, or one that requires creation
        """
        if kind == EntityKind.AD:
            raise ValueError("Ads are never deduplicated")

        resolution = self._lookup_by_external_id(kind, external_id)
        if resolution.create_required and kind == EntityKind.TRACK:
            resolution = self._lookup_by_fingerprint(fingerprint)

        if kind == EntityKind.ALBUM and resolution.existing is not None:
            self.attach_album_cover(resolution.existing, cover_ref)

        return resolution

    def _lookup_by_external_id(self, kind: EntityKind, external_id: Optional[str]) -> Resolution:
        if not external_id:
            return Resolution()
        existing = self.store.find_by_external_id(kind, external_id)
        return Resolution(existing, "external_id") if existing is not None else Resolution()

    def _lookup_by_fingerprint(self, fingerprint: Optional[Fingerprint]) -> Resolution:
        if not fingerprint:
            return Resolution()
        artist, title, filename = fingerprint
        existing = self.store.find_track_by_fingerprint(artist, title, filename)
        return Resolution(existing, "fingerprint") if existing is not None else Resolution()

    def attach_album_cover(self, album, cover_ref: Optional[str]):
        """
        Point an album without a cached image at its cover

        A cover already in the cache (downloaded for another album sharing
        it, or by an earlier run) is linked directly; anything else is
        queued for download.
        """
        if self.fetch_queue is None or not cover_ref or album.local_image:
            return
        path = self.fetch_queue.cached_path(cover_ref)
        if path is None:
            self.fetch_queue.enqueue(cover_ref, album.id)
        elif self.store.update_album_image(album.id, str(path)):
            logger.info(f"Linked cached cover for album: {album.title}")
