"""Database models"""
from radiofeed.models.album import Album
from radiofeed.models.artist import Artist
from radiofeed.models.composer import Composer
from radiofeed.models.track import Track
from radiofeed.models.ad import Ad, AdType

__all__ = [
    "Album",
    "Artist",
    "Composer",
    "Track",
    "Ad",
    "AdType",
]
