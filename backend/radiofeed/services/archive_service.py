"""Backup archive export/import and bulk erase"""
from datetime import datetime
from pathlib import Path
from sqlalchemy.orm import Session
from typing import Any, Dict
import io
import json
import zipfile
import logging

from radiofeed.exceptions import SchemaError
from radiofeed.services.asset_cache import AssetCache
from radiofeed.services.entity_store import INSERT_ORDER, EntityKind, EntityStore
from radiofeed.services.ingestion_service import exclusive_run

logger = logging.getLogger(__name__)

MANIFEST_NAME = "database.json"
IMAGES_PREFIX = "imgs/"


class ArchiveService:
    """Service for whole-database backup, restore and erase"""

    def __init__(self, db: Session, asset_cache: AssetCache):
        """
        Initialize archive service

        Args:
            db: Database session
            asset_cache: Cover art cache bundled into archives
        """
        self.db = db
        self.store = EntityStore(db)
        self.cache = asset_cache

    def export_archive(self) -> bytes:
        """
        Bundle every entity row and every cached image into a zip archive

        The archive holds ``database.json`` (one entry per row, keyed by
        collection) and an ``imgs/`` directory.

        Returns:
            Zip file contents
        """
        manifest = {'exported_at': datetime.utcnow().isoformat()}
        manifest.update(self.store.dump_all())

        buffer = io.BytesIO()
        image_count = 0
        with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            archive.writestr(MANIFEST_NAME, json.dumps(manifest, indent=2))
            for path in self.cache.iter_files():
                archive.write(path, IMAGES_PREFIX + path.name)
                image_count += 1

        counts = {kind.value: len(manifest[kind.value]) for kind in INSERT_ORDER}
        logger.info(f"Export complete: {counts}, {image_count} images")
        return buffer.getvalue()

    def import_archive(self, data: bytes) -> Dict[str, int]:
        """
        Replace all entity rows with the contents of an archive

        Images in the archive are merged into the cache. Rows that fail to
        insert are counted and skipped; the rest of the batch continues.

        Args:
            data: Zip file contents as produced by ``export_archive``

        Returns:
            Inserted rows per collection, plus ``images`` and ``failed`` counts

        Raises:
            SchemaError: Not a zip archive, or no readable manifest
            IngestionInProgressError: An ingestion run is active
        """
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as e:
            raise SchemaError(f"Upload is not a zip archive: {e}") from e

        with archive, exclusive_run():
            manifest = self._read_manifest(archive)

            images = 0
            for info in archive.infolist():
                if info.filename.startswith(IMAGES_PREFIX) and not info.is_dir():
                    if self.cache.add_file(info.filename, archive.read(info)):
                        images += 1

            self.store.delete_all()

            results = {'images': images, 'failed': 0}
            for kind in INSERT_ORDER:
                rows = manifest.get(kind.value) or []
                if not isinstance(rows, list):
                    logger.warning(f"Ignoring {kind.value} in manifest: expected a list")
                    rows = []
                if kind == EntityKind.ALBUM:
                    rows = [self._relocate_image(row) for row in rows]
                outcome = self.store.bulk_insert(kind, rows)
                results[kind.value] = outcome['inserted']
                results['failed'] += outcome['failed']

        logger.info(f"Import complete: {results}")
        return results

    def erase_all(self) -> Dict[str, int]:
        """
        Delete every entity row

        Returns:
            Row counts per collection from before the erase
        """
        with exclusive_run():
            return self.store.delete_all()

    def _read_manifest(self, archive: zipfile.ZipFile) -> Dict[str, Any]:
        if MANIFEST_NAME not in archive.namelist():
            raise SchemaError(f"No {MANIFEST_NAME} found in archive")
        try:
            manifest = json.loads(archive.read(MANIFEST_NAME).decode('utf-8'))
        except (ValueError, UnicodeDecodeError) as e:
            raise SchemaError(f"Unreadable {MANIFEST_NAME}: {e}") from e
        if not isinstance(manifest, dict):
            raise SchemaError(f"{MANIFEST_NAME} must hold an object")
        return manifest

    def _relocate_image(self, row: Any) -> Any:
        """Point an imported album's cached image at this cache directory."""
        if not isinstance(row, dict) or not row.get('local_image'):
            return row
        local = self.cache.cache_dir / Path(str(row['local_image']).replace('\\', '/')).name
        return {**row, 'local_image': str(local) if local.is_file() else None}
