"""Track model"""
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime
import uuid

from radiofeed.database import Base


class Track(Base):
    """Track model representing a song as it appears in the feed"""

    __tablename__ = "tracks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    original_id = Column(String, nullable=True, unique=True, index=True)
    track_artist = Column(String, nullable=False)  # Artist as displayed on the track
    title = Column(String, nullable=False)
    fn = Column(String, nullable=True)  # Filename / path token
    primary = Column(String, nullable=True)  # Primary delivery URL prefix
    secondary = Column(String, nullable=True)
    holiday = Column(Boolean, nullable=True)
    duration = Column(Float, nullable=True)  # Seconds
    unedited_duration = Column(Float, nullable=True)
    calculated_weight = Column(Float, nullable=True)
    listfrom = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    approved_by = Column(String, nullable=True)
    job = Column(String, nullable=True)
    oldid = Column(Integer, nullable=True)
    album_id = Column(String, ForeignKey("albums.id", ondelete="SET NULL"), nullable=True, index=True)
    artist_id = Column(String, ForeignKey("artists.id", ondelete="SET NULL"), nullable=True, index=True)
    composer_id = Column(String, ForeignKey("composers.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, server_default=func.now())

    # Relationships
    album = relationship("Album", back_populates="tracks")
    artist = relationship("Artist", back_populates="tracks")
    composer = relationship("Composer", back_populates="tracks")

    # Content fingerprint lookup
    __table_args__ = (
        Index("ix_tracks_fingerprint", "track_artist", "title", "fn"),
    )

    def __repr__(self):
        return f"<Track(id={self.id}, track_artist='{self.track_artist}', title='{self.title}', fn='{self.fn}')>"
