from sqlalchemy import Column, String, Integer, BigInteger, DateTime
from sqlalchemy import ForeignKey

from app.database import Base
from app.utils.clock import utcnow


class Photo(Base):
    __tablename__ = "photos"

    id = Column(String, primary_key=True)
    event_id = Column(String, ForeignKey("events.id"), nullable=False)
    guest_id = Column(String, ForeignKey("guests.id"), nullable=False)
    file_name = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    mime_type = Column(String, nullable=False)
    size = Column(BigInteger, nullable=False)
    cloud_path = Column(String, nullable=True)
    cloud_url = Column(String, nullable=True)
    thumbnail_path = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    upload_status = Column(String, nullable=False, default="PENDING")
    upload_progress = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
