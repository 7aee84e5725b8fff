from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.otp import OTPVerification

_DIALECT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class OTPStore:
    """Persists the single pending OTP of each (phone, event) pair."""

    async def upsert(
        self, db: AsyncSession, phone: str, event_id: str, otp: str, expires_at: datetime
    ) -> None:
        dialect = db.get_bind().dialect.name
        insert = _DIALECT_INSERTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"OTP upsert is not supported on {dialect}")

        stmt = insert(OTPVerification).values(
            phone=phone,
            event_id=event_id,
            otp=otp,
            expires_at=expires_at,
            attempts=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[OTPVerification.phone, OTPVerification.event_id],
            set_={"otp": otp, "expires_at": expires_at, "attempts": 0},
        )
        await db.execute(stmt)
        await db.commit()

    async def get(self, db: AsyncSession, phone: str, event_id: str) -> OTPVerification | None:
        result = await db.execute(
            select(OTPVerification)
            .where(OTPVerification.phone == phone, OTPVerification.event_id == event_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def increment_attempts(self, db: AsyncSession, phone: str, event_id: str) -> None:
        await db.execute(
            update(OTPVerification)
            .where(OTPVerification.phone == phone, OTPVerification.event_id == event_id)
            .values(attempts=OTPVerification.attempts + 1)
        )
        await db.commit()

    async def delete(self, db: AsyncSession, phone: str, event_id: str) -> None:
        await db.execute(
            delete(OTPVerification).where(
                OTPVerification.phone == phone, OTPVerification.event_id == event_id
            )
        )
        await db.commit()

    async def purge_expired(self, db: AsyncSession, now: datetime) -> int:
        result = await db.execute(delete(OTPVerification).where(OTPVerification.expires_at < now))
        await db.commit()
        return result.rowcount or 0
