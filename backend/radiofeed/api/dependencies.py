"""Shared API dependencies"""
from fastapi import Request

from radiofeed.services.asset_cache import AssetCache
from radiofeed.services.fetch_queue import FetchQueue


def get_fetch_queue(request: Request) -> FetchQueue:
    """The process-wide cover art queue created at startup"""
    return request.app.state.fetch_queue


def get_asset_cache(request: Request) -> AssetCache:
    return request.app.state.asset_cache
