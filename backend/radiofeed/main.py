"""Main FastAPI application"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from radiofeed.config import settings
from radiofeed.database import init_db
from radiofeed.api import backup, feed, images, media
from radiofeed.exceptions import RadioFeedError
from radiofeed.services.asset_cache import AssetCache
from radiofeed.services.fetch_queue import FetchQueue
from radiofeed.services.ingestion_service import ingestion_running

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for startup and shutdown"""
    # Startup
    logger.info("Starting radiofeed API...")

    init_db()
    logger.info("Database initialized")

    app.state.asset_cache = AssetCache()
    app.state.fetch_queue = FetchQueue(app.state.asset_cache)
    logger.info(f"Cover art cache: {app.state.asset_cache.cache_dir}")

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if not app.state.fetch_queue.shutdown(timeout=5):
        logger.warning("Cover art download still running at shutdown")


# Create FastAPI app
app = FastAPI(
    title="radiofeed API",
    description="Feed ingestion, deduplication and cover art cache",
    version="0.1.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(feed.router)
app.include_router(images.router)
app.include_router(media.router)
app.include_router(backup.router)


@app.exception_handler(RadioFeedError)
async def radiofeed_error_handler(request: Request, exc: RadioFeedError):
    """Errors not translated by a router (storage failures) become a 500"""
    logger.error(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "radiofeed API",
        "version": "0.1.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "ingesting": ingestion_running()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "radiofeed.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
