"""Feed refresh, statistics and track endpoints"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Dict, List
from pydantic import BaseModel
import logging

from radiofeed.config import settings
from radiofeed.database import get_db
from radiofeed.api.dependencies import get_fetch_queue
from radiofeed.exceptions import FetchError, IngestionInProgressError, SchemaError
from radiofeed.services.entity_store import EntityStore
from radiofeed.services.fetch_queue import FetchQueue
from radiofeed.services.ingestion_service import IngestionService, RunStats

router = APIRouter(prefix="/api", tags=["feed"])
logger = logging.getLogger(__name__)


class AlbumResponse(BaseModel):
    id: str
    original_id: str | None
    title: str
    label: str | None
    year: str | None
    cdcover: str | None
    local_image: str | None

    class Config:
        from_attributes = True


class ArtistResponse(BaseModel):
    id: str
    original_id: str | None
    artistdisplay: str
    artistcat: str | None

    class Config:
        from_attributes = True


class ComposerResponse(BaseModel):
    id: str
    original_id: str | None
    display: str | None
    value: str | None
    cat: str | None

    class Config:
        from_attributes = True


class TrackResponse(BaseModel):
    id: str
    original_id: str | None
    track_artist: str
    title: str
    fn: str | None
    primary: str | None
    secondary: str | None
    holiday: bool | None
    duration: float | None
    calculated_weight: float | None
    created_at: datetime | None
    album: AlbumResponse | None
    artist: ArtistResponse | None

    class Config:
        from_attributes = True


class TrackDetailResponse(TrackResponse):
    unedited_duration: float | None
    listfrom: str | None
    composer: ComposerResponse | None


class RefreshResponse(BaseModel):
    success: bool
    before: Dict[str, int]
    after: Dict[str, int]
    new_tracks: int
    existing_tracks: int
    stats: RunStats


@router.post("/refresh", response_model=RefreshResponse)
def refresh(
    url: str | None = Query(None, description="Feed URL (defaults to the configured feed)"),
    db: Session = Depends(get_db),
    fetch_queue: FetchQueue = Depends(get_fetch_queue)
):
    """Run one ingestion pass against a feed"""
    feed_url = url or settings.feed_url
    if not feed_url:
        raise HTTPException(status_code=400, detail="No URL configured. Pass ?url=... or set FEED_URL")

    logger.info(f"Refreshing data from: {feed_url}")
    store = EntityStore(db)
    before = store.count_all()

    try:
        stats = IngestionService(db, fetch_queue).ingest(feed_url)
    except IngestionInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except SchemaError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return RefreshResponse(
        success=True,
        before=before,
        after=store.count_all(),
        new_tracks=stats.tracks_new,
        existing_tracks=stats.tracks_existing,
        stats=stats
    )


@router.get("/stats")
def get_stats(db: Session = Depends(get_db)):
    """Row count per collection"""
    return EntityStore(db).count_all()


@router.get("/tracks", response_model=List[TrackResponse])
def list_tracks(db: Session = Depends(get_db)):
    """All tracks, newest first"""
    return EntityStore(db).list_tracks()


@router.get("/tracks/recent", response_model=List[TrackResponse])
def recent_tracks(limit: int = Query(10, ge=1, le=500), db: Session = Depends(get_db)):
    """Most recently added tracks"""
    return EntityStore(db).list_tracks(limit=limit)


@router.get("/tracks/{track_id}", response_model=TrackDetailResponse)
def get_track(track_id: str, db: Session = Depends(get_db)):
    """Track details with album, artist and composer"""
    track = EntityStore(db).get_track_details(track_id)
    if not track:
        raise HTTPException(status_code=404, detail=f"Track '{track_id}' not found")
    return track
