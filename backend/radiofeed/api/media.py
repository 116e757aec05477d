"""Media serving endpoint for cached cover art"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
import logging

from radiofeed.api.dependencies import get_asset_cache
from radiofeed.services.asset_cache import AssetCache

router = APIRouter(prefix="/api/media", tags=["media"])
logger = logging.getLogger(__name__)


@router.get("/{filename}")
def serve_cover(filename: str, asset_cache: AssetCache = Depends(get_asset_cache)):
    """
    Serve a cached cover image

    Args:
        filename: File name inside the image cache directory
    """
    full_path = asset_cache.resolve_file(filename)
    if full_path is None:
        logger.warning(f"Cover not found: {filename}")
        raise HTTPException(status_code=404, detail="Media file not found")

    return FileResponse(
        path=str(full_path),
        media_type=asset_cache.media_type(full_path),
        filename=full_path.name
    )
