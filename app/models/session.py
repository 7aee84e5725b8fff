from sqlalchemy import Column, String, DateTime, ForeignKey

from app.database import Base
from app.utils.clock import utcnow


class GuestSession(Base):
    __tablename__ = "sessions"

    id = Column(String, primary_key=True)
    guest_id = Column(String, ForeignKey("guests.id", ondelete="CASCADE"), nullable=False)
    token = Column(String, nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
