"""Composer model"""
from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime
import uuid

from radiofeed.database import Base


class Composer(Base):
    """Composer model; the feed sends either a display name or a bare value"""

    __tablename__ = "composers"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    original_id = Column(String, nullable=True, unique=True, index=True)
    display = Column(String, nullable=True)
    value = Column(String, nullable=True)
    cat = Column(String, nullable=True)
    created_by = Column(String, nullable=True)
    approved_by = Column(String, nullable=True)
    job = Column(String, nullable=True)
    oldid = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, server_default=func.now())

    tracks = relationship("Track", back_populates="composer")

    @property
    def name(self):
        return self.display or self.value

    def __repr__(self):
        return f"<Composer(id={self.id}, original_id='{self.original_id}', name='{self.name}')>"
