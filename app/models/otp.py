from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint

from app.database import Base
from app.utils.clock import utcnow


class OTPVerification(Base):
    __tablename__ = "otp_verifications"
    __table_args__ = (UniqueConstraint("phone", "event_id", name="uq_otp_phone_event"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String, nullable=False)
    event_id = Column(String, nullable=False)
    otp = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
