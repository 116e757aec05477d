"""Album model"""
from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime
import uuid

from radiofeed.database import Base


class Album(Base):
    """Album model representing a release referenced by feed tracks"""

    __tablename__ = "albums"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    original_id = Column(String, nullable=True, unique=True, index=True)  # Upstream feed id
    asin = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    label = Column(String, nullable=True)
    year = Column(String, nullable=True)
    cdcover = Column(String, nullable=True)  # Remote cover reference, e.g. /covers/g-m/album.jpg
    local_image = Column(String, nullable=True)  # Set by the cover art worker once downloaded
    buyalbum = Column(String, nullable=True)
    itunes = Column(String, nullable=True)
    itunes_id = Column(Integer, nullable=True)
    created_by = Column(String, nullable=True)
    approved_by = Column(String, nullable=True)
    pending_id = Column(String, nullable=True)
    job = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, server_default=func.now())

    # Relationships
    tracks = relationship("Track", back_populates="album")

    def __repr__(self):
        return f"<Album(id={self.id}, original_id='{self.original_id}', title='{self.title}')>"
