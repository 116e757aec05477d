"""Ad model"""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from datetime import datetime
import uuid
import enum

from radiofeed.database import Base

AD_ARTIST = "runspot"
AD_TITLE = "sweeper"


class AdType(str, enum.Enum):
    """Ad slot kind"""
    PAID = "paid"
    UNPAID = "unpaid"


class Ad(Base):
    """Ad slot; every sighting in a feed is stored as its own row"""

    __tablename__ = "ads"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    track_artist = Column(String, nullable=False, default=AD_ARTIST)
    title = Column(String, nullable=False, default=AD_TITLE)
    ad_type = Column(String, nullable=True)  # AdType value
    ad_source = Column(String, nullable=True)
    fn = Column(String, nullable=True)
    fn_as = Column(String, nullable=True)
    fn_ar = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, server_default=func.now())

    def __repr__(self):
        return f"<Ad(id={self.id}, ad_type='{self.ad_type}', ad_source='{self.ad_source}')>"
