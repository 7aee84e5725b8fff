"""One-time passcode issuing, verification and rate limiting."""
import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.otp_store import OTPStore
from app.utils.clock import utcnow
from app.utils.exceptions import AppException

logger = logging.getLogger(__name__)


class OTPError(AppException):
    status_code = 400
    reason = "invalid"

    def __init__(self, message: str, **extra):
        super().__init__(message, reason=self.reason, **extra)


class OTPNotFoundError(OTPError):
    reason = "not_found"

    def __init__(self):
        super().__init__("OTP not found. Please request a new one.")


class OTPExpiredError(OTPError):
    reason = "expired"

    def __init__(self):
        super().__init__("OTP has expired. Please request a new one.")


class OTPAttemptsExceededError(OTPError):
    reason = "attempts_exceeded"

    def __init__(self):
        super().__init__("Maximum attempts exceeded. Please request a new OTP.")


class OTPMismatchError(OTPError):
    reason = "mismatch"

    def __init__(self, remaining: int):
        super().__init__(
            f"Invalid OTP. {remaining} attempts remaining.",
            remainingAttempts=remaining,
        )
        self.remaining = remaining


@dataclass
class IssuedOTP:
    otp: str
    expires_at: datetime


@dataclass
class RateLimitStatus:
    allowed: bool
    wait_seconds: int = 0


class OTPService:
    def __init__(
        self,
        store: OTPStore | None = None,
        length: int = 6,
        expiry_minutes: int = 5,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store or OTPStore()
        self.length = length
        self.expiry = timedelta(minutes=expiry_minutes)
        self.max_attempts = max_attempts
        self.clock = clock

    def generate(self) -> str:
        low = 10 ** (self.length - 1)
        high = 10 ** self.length - 1
        value = low + secrets.randbelow(high - low + 1)
        return f"{value:0{self.length}d}"

    async def issue(self, db: AsyncSession, phone: str, event_id: str) -> IssuedOTP:
        """Create or replace the pending OTP for this phone and event."""
        otp = self.generate()
        expires_at = self.clock() + self.expiry
        await self.store.upsert(db, phone, event_id, otp, expires_at)
        logger.info("Issued OTP for event %s, expires at %s", event_id, expires_at.isoformat())
        return IssuedOTP(otp=otp, expires_at=expires_at)

    async def verify(self, db: AsyncSession, phone: str, otp: str, event_id: str) -> None:
        """Check a submitted code; raises an OTPError subclass on failure.

        A successful check deletes the record, so a code can be used once.
        """
        record = await self.store.get(db, phone, event_id)
        if record is None:
            raise OTPNotFoundError()

        if self.clock() > record.expires_at:
            await self.store.delete(db, phone, event_id)
            raise OTPExpiredError()

        if record.attempts >= self.max_attempts:
            await self.store.delete(db, phone, event_id)
            raise OTPAttemptsExceededError()

        if not secrets.compare_digest(record.otp.encode(), otp.encode()):
            remaining = self.max_attempts - record.attempts - 1
            await self.store.increment_attempts(db, phone, event_id)
            raise OTPMismatchError(remaining)

        await self.store.delete(db, phone, event_id)

    async def can_request(self, db: AsyncSession, phone: str, event_id: str) -> RateLimitStatus:
        record = await self.store.get(db, phone, event_id)
        if record is None:
            return RateLimitStatus(allowed=True)

        now = self.clock()
        if now >= record.expires_at:
            return RateLimitStatus(allowed=True)

        wait = math.ceil((record.expires_at - now).total_seconds())
        return RateLimitStatus(allowed=False, wait_seconds=wait)

    async def cleanup_expired(self, db: AsyncSession) -> int:
        removed = await self.store.purge_expired(db, self.clock())
        if removed:
            logger.info("Removed %d expired OTP records", removed)
        return removed
