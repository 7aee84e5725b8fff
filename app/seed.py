import uuid
from datetime import datetime

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.admin import Admin
from app.models.event import Event, EventTable


SEED_EVENT_ID = settings.default_event_id

SEED_EVENT = {
    "id": SEED_EVENT_ID,
    "name": "Sarah & John Wedding",
    "description": "A beautiful celebration of love",
    "date": datetime(2025, 9, 5),
    "venue": "Grand Ballroom Hotel",
    "organizer_name": "Sarah & John",
    "organizer_email": "organizer@example.com",
    "organizer_phone": "0771234567",
    "passcode": "1234",
    "is_active": True,
}

SEED_TABLES = [
    {"id": str(uuid.uuid5(uuid.NAMESPACE_DNS, "table-1")), "table_number": "1", "table_name": "Family Table", "qr_code": "table-1-qr"},
    {"id": str(uuid.uuid5(uuid.NAMESPACE_DNS, "table-2")), "table_number": "2", "table_name": "Friends Table", "qr_code": "table-2-qr"},
]

SEED_ADMIN_ID = str(uuid.uuid5(uuid.NAMESPACE_DNS, "admin-user"))


async def seed_data(session: AsyncSession) -> None:
    result = await session.execute(select(Event).where(Event.id == SEED_EVENT_ID))
    if result.scalars().first() is not None:
        return

    session.add(Event(**SEED_EVENT))
    for t in SEED_TABLES:
        session.add(EventTable(event_id=SEED_EVENT_ID, **t))

    existing_admin = await session.execute(select(Admin).where(Admin.email == settings.admin_email))
    if existing_admin.scalars().first() is None:
        password_hash = bcrypt.hashpw(settings.admin_password.encode(), bcrypt.gensalt()).decode()
        session.add(Admin(
            id=SEED_ADMIN_ID,
            email=settings.admin_email,
            name="Admin User",
            password_hash=password_hash,
            role="SUPER_ADMIN",
        ))

    await session.commit()
