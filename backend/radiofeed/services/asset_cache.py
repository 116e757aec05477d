"""Local cache of downloaded cover art"""
from pathlib import Path
from typing import Optional
from PIL import Image, UnidentifiedImageError
import io
import logging

from radiofeed.config import settings

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
}


class AssetCache:
    """Maps remote cover references (``/covers/g-m/album.jpg``) to files in the cache directory"""

    def __init__(self, cache_dir: str = None, base_url: str = None):
        """
        Initialize asset cache

        Args:
            cache_dir: Directory holding cached images (defaults to settings)
            base_url: Asset host prefix used to build download URLs (defaults to settings)
        """
        self.cache_dir = Path(cache_dir or settings.image_cache_dir)
        self.base_url = base_url or settings.asset_base_url
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def local_filename(cover_ref: str) -> Optional[str]:
        """
        Flatten a cover reference into a single file name

        ``/covers/g-m/album.jpg`` becomes ``g-m_album.jpg``.
        """
        if not cover_ref:
            return None
        name = cover_ref.replace('/covers/', '', 1).replace('\\', '_').replace('/', '_')
        name = name.lstrip('_')
        if name in ('', '.', '..'):
            return None
        return name

    def local_path(self, cover_ref: str) -> Optional[Path]:
        filename = self.local_filename(cover_ref)
        return self.cache_dir / filename if filename else None

    def asset_url(self, cover_ref: str) -> str:
        """Remote URL of a cover reference"""
        return f"{self.base_url.rstrip('/')}/{cover_ref.lstrip('/')}"

    def is_cached(self, cover_ref: str) -> bool:
        path = self.local_path(cover_ref)
        return path is not None and path.is_file()

    def write(self, cover_ref: str, data: bytes) -> Path:
        """
        Store downloaded image bytes

        Args:
            cover_ref: Remote cover reference the bytes belong to
            data: Image body

        Returns:
            Path of the written file

        Raises:
            ValueError: If the body is empty or not a readable image
        """
        if not data:
            raise ValueError("Empty image body")
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValueError(f"Not an image: {e}") from e

        path = self.local_path(cover_ref)
        if path is None:
            raise ValueError(f"Invalid cover reference: {cover_ref!r}")

        # Write then rename so readers never see a partial file
        tmp_path = path.with_name(path.name + '.part')
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
        return path

    def resolve_file(self, filename: str) -> Optional[Path]:
        """
        Resolve a cached file name for serving, refusing paths outside the cache

        Returns:
            Path of an existing cached file, or None
        """
        cache_root = self.cache_dir.resolve()
        full_path = (cache_root / filename).resolve()
        if full_path.parent != cache_root:
            return None
        if not full_path.is_file():
            return None
        return full_path

    def add_file(self, filename: str, data: bytes) -> Optional[Path]:
        """Merge a file from a backup archive into the cache, keeping only its base name."""
        name = Path(filename).name
        if not name or name.endswith('.part'):
            return None
        path = self.cache_dir / name
        path.write_bytes(data)
        return path

    def iter_files(self):
        """Cached image files, for export"""
        for path in sorted(self.cache_dir.iterdir()):
            if path.is_file() and not path.name.endswith('.part'):
                yield path

    @staticmethod
    def media_type(path: Path) -> str:
        return MEDIA_TYPES.get(path.suffix.lower(), 'application/octet-stream')
