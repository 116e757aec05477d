"""Backup, restore and erase endpoints"""
from datetime import date
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Dict
from pydantic import BaseModel
import logging

from radiofeed.database import get_db
from radiofeed.api.dependencies import get_asset_cache
from radiofeed.exceptions import IngestionInProgressError, SchemaError
from radiofeed.services.archive_service import ArchiveService
from radiofeed.services.asset_cache import AssetCache

router = APIRouter(prefix="/api", tags=["backup"])
logger = logging.getLogger(__name__)


class ImportResponse(BaseModel):
    success: bool
    imported: Dict[str, int]


class EraseResponse(BaseModel):
    success: bool
    deleted: Dict[str, int]


@router.get("/export")
def export_data(db: Session = Depends(get_db), asset_cache: AssetCache = Depends(get_asset_cache)):
    """Download every record and cached cover as a zip archive"""
    logger.info("Exporting data...")
    content = ArchiveService(db, asset_cache).export_archive()
    filename = f"radiofeed-backup-{date.today().isoformat()}.zip"
    return Response(
        content=content,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.post("/import", response_model=ImportResponse)
def import_data(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    asset_cache: AssetCache = Depends(get_asset_cache)
):
    """Replace all records with the contents of an exported archive"""
    logger.info(f"Importing data from {file.filename}...")
    try:
        results = ArchiveService(db, asset_cache).import_archive(file.file.read())
    except SchemaError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IngestionInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ImportResponse(success=True, imported=results)


@router.delete("/all", response_model=EraseResponse)
def delete_all(db: Session = Depends(get_db), asset_cache: AssetCache = Depends(get_asset_cache)):
    """Delete all records; returns the counts from before the erase"""
    logger.info("Deleting all records...")
    try:
        deleted = ArchiveService(db, asset_cache).erase_all()
    except IngestionInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return EraseResponse(success=True, deleted=deleted)
