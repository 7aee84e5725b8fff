from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, JSON, ForeignKey

from app.database import Base
from app.utils.clock import utcnow

DEFAULT_ALLOWED_FORMATS = ["image/jpeg", "image/png", "image/webp", "image/heic"]


class Event(Base):
    __tablename__ = "events"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    date = Column(DateTime, nullable=False, default=utcnow)
    venue = Column(String, nullable=True)
    organizer_name = Column(String, nullable=True)
    organizer_email = Column(String, nullable=True)
    organizer_phone = Column(String, nullable=True)
    passcode = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    max_upload_size = Column(Integer, nullable=False, default=10 * 1024 * 1024)
    allowed_formats = Column(JSON, nullable=False, default=lambda: list(DEFAULT_ALLOWED_FORMATS))
    storage_quota = Column(BigInteger, nullable=False, default=10 * 1024 * 1024 * 1024)
    storage_used = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class EventTable(Base):
    __tablename__ = "event_tables"

    id = Column(String, primary_key=True)
    event_id = Column(String, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    table_number = Column(String, nullable=False)
    table_name = Column(String, nullable=True)
    qr_code = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
