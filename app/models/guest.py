from sqlalchemy import Column, String, Integer, BigInteger, DateTime, ForeignKey

from app.database import Base
from app.utils.clock import utcnow


class Guest(Base):
    __tablename__ = "guests"

    id = Column(String, primary_key=True)
    event_id = Column(String, ForeignKey("events.id"), nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True, index=True)
    email = Column(String, nullable=True)
    table_id = Column(String, ForeignKey("event_tables.id"), nullable=True)
    authenticated_at = Column(DateTime, nullable=True)
    upload_count = Column(Integer, nullable=False, default=0)
    total_size = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
