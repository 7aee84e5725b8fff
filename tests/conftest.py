import os
import tempfile
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

_TEST_DIR = tempfile.mkdtemp(prefix="wedding-photos-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'test.sqlite3')}")
os.environ.setdefault("DATA_DIR", _TEST_DIR)
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("MEDIA_SIGNING_KEY", "test-signing-key")
os.environ.setdefault("ENVIRONMENT", "test")


class FakeSMSGateway:
    """Records messages instead of calling the SMS provider."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    async def send_otp(self, phone: str, otp: str):
        from app.services.sms_gateway import SMSResult

        if self.fail:
            return SMSResult(status="error", message="gateway down")
        self.sent.append((phone, otp))
        return SMSResult(status="success")

    async def send_welcome(self, phone: str, guest_name: str, upload_url: str | None = None):
        from app.services.sms_gateway import SMSResult

        self.sent.append((phone, f"welcome {guest_name}"))
        return SMSResult(status="success")

    def last_otp(self, phone: str) -> str:
        for sent_phone, text in reversed(self.sent):
            if sent_phone == phone:
                return text
        raise AssertionError(f"No OTP sent to {phone}")


@pytest.fixture(autouse=True, scope="session")
def setup_test_db():
    import asyncio

    from app.config import settings
    settings.admin_api_key = ""
    settings.textlk_api_token = ""

    from app.database import create_tables, async_session, engine
    from app.seed import seed_data

    async def _setup():
        await create_tables()
        async with async_session() as session:
            await seed_data(session)
        await engine.dispose()

    asyncio.run(_setup())


@pytest.fixture
def fake_sms():
    from app.dependencies import get_sms_gateway
    from app.main import app

    gateway = FakeSMSGateway()
    app.dependency_overrides[get_sms_gateway] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_sms_gateway, None)


@pytest.fixture
def failing_sms():
    from app.dependencies import get_sms_gateway
    from app.main import app

    gateway = FakeSMSGateway(fail=True)
    app.dependency_overrides[get_sms_gateway] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_sms_gateway, None)


@pytest_asyncio.fixture
async def db_session():
    from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
    from app.database import Base
    import app.models  # noqa: F401

    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session
    await engine.dispose()


class FakeClock:
    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 6, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sign_in(fake_sms):
    """Run the send-otp/verify-otp flow and return the verify response body."""
    from app.seed import SEED_EVENT_ID

    async def _sign_in(client, phone, name="Guest", event_id=SEED_EVENT_ID, table_id=None, email=None):
        response = await client.post("/api/auth/send-otp", json={"phone": phone, "eventId": event_id})
        assert response.status_code == 200, response.text
        payload = {
            "phone": phone,
            "otp": fake_sms.last_otp(phone),
            "eventId": event_id,
            "name": name,
        }
        if table_id:
            payload["tableId"] = table_id
        if email:
            payload["email"] = email
        response = await client.post("/api/auth/verify-otp", json=payload)
        assert response.status_code == 200, response.text
        return response.json()

    return _sign_in


@pytest.fixture
def create_event():
    """Insert (or update) an event row in the application database."""
    from app.database import async_session
    from app.models.event import Event, EventTable

    async def _create(event_id, tables=(), **fields):
        fields.setdefault("name", f"Event {event_id}")
        async with async_session() as db:
            await db.merge(Event(id=event_id, **fields))
            for table_id, qr_code in tables:
                await db.merge(EventTable(
                    id=table_id, event_id=event_id, table_number=table_id, qr_code=qr_code,
                ))
            await db.commit()

    return _create
