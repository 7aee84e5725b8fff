import secrets
import uuid
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.session import GuestSession
from app.utils.clock import utcnow


class SessionStore:
    def __init__(self, lifetime: timedelta = timedelta(days=3), clock: Callable[[], datetime] = utcnow):
        self.lifetime = lifetime
        self.clock = clock

    async def create(
        self,
        db: AsyncSession,
        guest_id: str,
        ip_address: str = "",
        user_agent: str = "",
    ) -> GuestSession:
        session = GuestSession(
            id=str(uuid.uuid4()),
            guest_id=guest_id,
            token=secrets.token_hex(32),
            expires_at=self.clock() + self.lifetime,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(session)
        await db.commit()
        await db.refresh(session)
        return session

    async def get(self, db: AsyncSession, token: str) -> GuestSession | None:
        result = await db.execute(select(GuestSession).where(GuestSession.token == token))
        return result.scalars().first()

    async def delete(self, db: AsyncSession, session: GuestSession) -> None:
        await db.delete(session)
        await db.commit()

    async def invalidate(self, db: AsyncSession, token: str) -> bool:
        result = await db.execute(delete(GuestSession).where(GuestSession.token == token))
        await db.commit()
        return bool(result.rowcount)

    async def purge_expired(self, db: AsyncSession) -> int:
        result = await db.execute(delete(GuestSession).where(GuestSession.expires_at < self.clock()))
        await db.commit()
        return result.rowcount or 0
