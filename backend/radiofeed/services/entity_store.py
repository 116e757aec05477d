"""Entity store: persistence and lookup for the five feed entity kinds"""
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime
import enum
import logging

from radiofeed.exceptions import StoreError
from radiofeed.models import Ad, Album, Artist, Composer, Track

logger = logging.getLogger(__name__)


class EntityKind(str, enum.Enum):
    """Entity kinds handled by the store; values double as collection names"""
    TRACK = "tracks"
    ALBUM = "albums"
    ARTIST = "artists"
    COMPOSER = "composers"
    AD = "ads"


MODELS = {
    EntityKind.TRACK: Track,
    EntityKind.ALBUM: Album,
    EntityKind.ARTIST: Artist,
    EntityKind.COMPOSER: Composer,
    EntityKind.AD: Ad,
}

# Referenced kinds first so tracks can point at them on import
INSERT_ORDER = [EntityKind.ALBUM, EntityKind.ARTIST, EntityKind.COMPOSER, EntityKind.TRACK, EntityKind.AD]


def row_to_dict(row) -> Dict[str, Any]:
    """Serialize a model row to JSON-friendly column values."""
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[column.key] = value
    return data


def _coerce_row(model, data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only known columns and parse ISO timestamps back to datetimes."""
    columns = {c.key: c for c in sa_inspect(model).columns}
    values = {}
    for key, value in data.items():
        column = columns.get(key)
        if column is None:
            continue
        if isinstance(value, str) and column.type.python_type is datetime:
            value = datetime.fromisoformat(value)
        values[key] = value
    return values


class EntityStore:
    """Storage and lookup, no ingestion logic"""

    def __init__(self, db: Session):
        """
        Initialize entity store

        Args:
            db: Database session
        """
        self.db = db

    def find_by_external_id(self, kind: EntityKind, external_id: str):
        """
        Find a row by its upstream feed id

        Args:
            kind: Entity kind (ads have no external id)
            external_id: Upstream id, matched exactly

        Returns:
            Model instance or None
        """
        if kind == EntityKind.AD:
            raise ValueError("Ads have no external id")
        model = MODELS[kind]
        return self.db.query(model).filter(model.original_id == external_id).first()

    def find_track_by_fingerprint(self, artist: str, title: str, filename: Optional[str]) -> Optional[Track]:
        """
        Find a track by its (artist, title, filename) content key

        Args:
            artist: Artist as displayed on the track
            title: Track title
            filename: Filename token; None matches only tracks without one

        Returns:
            Track instance or None
        """
        fn_clause = Track.fn.is_(None) if filename is None else Track.fn == filename
        return self.db.query(Track).filter(
            Track.track_artist == artist,
            Track.title == title,
            fn_clause
        ).first()

    def insert(self, entity):
        """
        Persist a new row and commit

        Raises:
            StoreError: On constraint violations or database failure
        """
        try:
            self.db.add(entity)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to insert {type(entity).__name__}: {e}") from e
        return entity

    def update_album_image(self, album_id: str, path: str) -> bool:
        """
        Set an album's cached image path

        Args:
            album_id: Album UUID
            path: Local path of the downloaded cover

        Returns:
            True if updated, False if the album no longer exists
        """
        try:
            album = self.db.query(Album).filter(Album.id == album_id).first()
            if not album:
                return False
            album.local_image = path
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to update album {album_id}: {e}") from e

    def count_all(self) -> Dict[str, int]:
        """Row count per collection."""
        return {kind.value: self.db.query(model).count() for kind, model in MODELS.items()}

    def delete_all(self) -> Dict[str, int]:
        """
        Remove every row from every collection

        Returns:
            Row counts from before the deletion
        """
        counts = self.count_all()
        try:
            # Tracks first; they hold the foreign keys
            for kind in reversed(INSERT_ORDER):
                self.db.query(MODELS[kind]).delete(synchronize_session=False)
            self.db.commit()
            # Deleted rows must not linger in the identity map (import re-inserts their ids)
            self.db.expunge_all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to erase collections: {e}") from e
        logger.info(f"Deleted all records: {counts}")
        return counts

    def bulk_insert(self, kind: EntityKind, rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
        """
        Insert exported rows, tolerating individual failures

        Each row is committed on its own, so a malformed row or a constraint
        violation only drops that row.

        Args:
            kind: Entity kind of every row
            rows: Column dictionaries as produced by ``dump_all``

        Returns:
            Dictionary with ``inserted`` and ``failed`` counts
        """
        model = MODELS[kind]
        results = {'inserted': 0, 'failed': 0}

        for data in rows:
            try:
                self.db.add(model(**_coerce_row(model, data)))
                self.db.commit()
                results['inserted'] += 1
            except (SQLAlchemyError, TypeError, ValueError, AttributeError) as e:
                self.db.rollback()
                results['failed'] += 1
                logger.warning(f"Skipping {kind.value} row during import: {e}")

        return results

    def dump_all(self) -> Dict[str, List[Dict[str, Any]]]:
        """Every row of every collection, serialized."""
        return {
            kind.value: [row_to_dict(row) for row in self.db.query(MODELS[kind]).all()]
            for kind in INSERT_ORDER
        }

    def get_track_details(self, track_id: str) -> Optional[Track]:
        """Track with album, artist and composer loaded."""
        return self.db.query(Track).options(
            joinedload(Track.album),
            joinedload(Track.artist),
            joinedload(Track.composer)
        ).filter(Track.id == track_id).first()

    def list_tracks(self, limit: int = None) -> List[Track]:
        """
        Tracks, newest first, with album and artist loaded

        Args:
            limit: Maximum number of tracks, or None for all
        """
        query = self.db.query(Track).options(
            joinedload(Track.album),
            joinedload(Track.artist)
        ).order_by(Track.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def albums_missing_image(self, album_ids: List[str]) -> List[Album]:
        """Albums among ``album_ids`` that have a cover reference but no cached image."""
        if not album_ids:
            return []
        return self.db.query(Album).filter(
            Album.id.in_(album_ids),
            Album.cdcover.isnot(None),
            Album.local_image.is_(None)
        ).all()
