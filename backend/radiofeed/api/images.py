"""Cover art queue endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from pydantic import BaseModel

from radiofeed.database import get_db
from radiofeed.api.dependencies import get_fetch_queue
from radiofeed.services.entity_store import EntityStore
from radiofeed.services.fetch_queue import FetchQueue

router = APIRouter(prefix="/api/images", tags=["images"])


class QueueStatusResponse(BaseModel):
    pending_count: int
    is_draining: bool


class DownloadRequest(BaseModel):
    album_ids: List[str]


class DownloadResponse(BaseModel):
    queued: int
    linked: int


@router.get("/status", response_model=QueueStatusResponse)
def queue_status(fetch_queue: FetchQueue = Depends(get_fetch_queue)):
    """Current cover download queue status"""
    return fetch_queue.status()


@router.post("/download", response_model=DownloadResponse)
def download_missing(
    body: DownloadRequest,
    db: Session = Depends(get_db),
    fetch_queue: FetchQueue = Depends(get_fetch_queue)
):
    """
    Queue cover downloads for the given albums that still lack a cached image

    Albums whose cover is already in the cache are linked to it directly.
    """
    store = EntityStore(db)
    queued = 0
    linked = 0
    for album in store.albums_missing_image(body.album_ids):
        path = fetch_queue.cached_path(album.cdcover)
        if path is not None:
            if store.update_album_image(album.id, str(path)):
                linked += 1
        elif fetch_queue.enqueue(album.cdcover, album.id):
            queued += 1
    return DownloadResponse(queued=queued, linked=linked)
