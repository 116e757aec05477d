"""Artist model"""
from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime
import uuid

from radiofeed.database import Base


class Artist(Base):
    """Artist model"""

    __tablename__ = "artists"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    original_id = Column(String, nullable=True, unique=True, index=True)
    artistdisplay = Column(String, nullable=False)
    artistcat = Column(String, nullable=True)  # Category / genre label
    created_by = Column(String, nullable=True)
    approved_by = Column(String, nullable=True)
    job = Column(String, nullable=True)
    oldid = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, server_default=func.now())

    tracks = relationship("Track", back_populates="artist")

    def __repr__(self):
        return f"<Artist(id={self.id}, original_id='{self.original_id}', artistdisplay='{self.artistdisplay}')>"
