import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.database import async_session
from app.main import app
from app.models.photo import Photo

JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 2044

GALLERY_EVENT = "gallery-event"
GALLERY_TABLE = ("gallery-table-1", "gallery-table-1-qr")


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _upload(client, name, content=JPEG, content_type="image/jpeg"):
    response = await client.post("/api/upload/simple", files={"file": (name, content, content_type)})
    assert response.status_code == 200, response.text
    return response.json()


@pytest_asyncio.fixture
async def gallery(create_event):
    await create_event(GALLERY_EVENT, tables=[GALLERY_TABLE])
    return GALLERY_EVENT


@pytest.mark.asyncio
async def test_list_requires_session():
    async with _client() as client:
        response = await client.get("/api/photos/list")

    assert response.status_code == 401
    assert response.json()["requiresAuth"] is True


@pytest.mark.asyncio
async def test_list_own_photos(sign_in, create_event):
    await create_event("own-event")
    async with _client() as alice, _client() as bob:
        await sign_in(alice, "0774000001", name="Alice", event_id="own-event")
        await sign_in(bob, "0774000002", name="Bob", event_id="own-event")
        await _upload(alice, "alice-1.jpg")
        await _upload(alice, "alice-2.jpg")
        await _upload(bob, "bob-1.jpg")

        response = await alice.get("/api/photos/list")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["viewingMode"] == "own"
    assert data["canViewAll"] is False
    assert data["totalCount"] == 2
    assert {p["fileName"] for p in data["photos"]} == {"alice-1.jpg", "alice-2.jpg"}
    for photo in data["photos"]:
        assert "uploadedBy" not in photo
        assert photo["size"] == len(JPEG)
        assert photo["url"]


@pytest.mark.asyncio
async def test_view_all_ignored_without_table(sign_in, create_event):
    await create_event("no-table-event")
    async with _client() as alice, _client() as bob:
        await sign_in(alice, "0774000003", name="Alice", event_id="no-table-event")
        await sign_in(bob, "0774000004", name="Bob", event_id="no-table-event")
        await _upload(bob, "bob.jpg")

        response = await alice.get("/api/photos/list", params={"viewAll": "true"})

    data = response.json()
    assert data["viewingMode"] == "own"
    assert data["canViewAll"] is False
    assert data["photos"] == []


@pytest.mark.asyncio
async def test_table_guest_can_view_all(sign_in, gallery):
    async with _client() as host, _client() as guest:
        await sign_in(host, "0774000005", name="Host", event_id=gallery, table_id=GALLERY_TABLE[1])
        await sign_in(guest, "0774000006", name="Guest", event_id=gallery)
        await _upload(host, "host.jpg")
        await _upload(guest, "guest.jpg")

        all_photos = await host.get("/api/photos/list", params={"viewAll": "true"})
        own_photos = await host.get("/api/photos/list")

    data = all_photos.json()
    assert data["viewingMode"] == "all"
    assert data["canViewAll"] is True
    assert data["totalCount"] == 2
    uploaders = {p["fileName"]: p["uploadedBy"] for p in data["photos"]}
    assert uploaders["host.jpg"] == {"name": "Host", "table": GALLERY_TABLE[0]}
    assert uploaders["guest.jpg"] == {"name": "Guest"}

    own = own_photos.json()
    assert own["viewingMode"] == "own"
    assert own["canViewAll"] is True
    assert [p["fileName"] for p in own["photos"]] == ["host.jpg"]


@pytest.mark.asyncio
async def test_photos_without_cloud_url_are_skipped(sign_in, create_event):
    await create_event("orphan-list-event")
    async with _client() as client:
        session = await sign_in(client, "0774000007", name="Oli", event_id="orphan-list-event")
        await _upload(client, "kept.jpg")

        async with async_session() as db:
            db.add(Photo(
                id=str(uuid.uuid4()),
                event_id="orphan-list-event",
                guest_id=session["guest"]["id"],
                file_name="broken.jpg",
                original_name="broken.jpg",
                mime_type="image/jpeg",
                size=10,
                cloud_url="",
                upload_status="COMPLETED",
            ))
            await db.commit()

        response = await client.get("/api/photos/list")

    data = response.json()
    assert data["totalCount"] == 1
    assert data["photos"][0]["fileName"] == "kept.jpg"


@pytest.mark.asyncio
async def test_newest_photos_first(sign_in, create_event):
    await create_event("order-event")
    async with _client() as client:
        await sign_in(client, "0774000008", name="Oli", event_id="order-event")
        for name in ("first.jpg", "second.jpg", "third.jpg"):
            await _upload(client, name)
        response = await client.get("/api/photos/list")

    assert [p["fileName"] for p in response.json()["photos"]] == ["third.jpg", "second.jpg", "first.jpg"]


@pytest.mark.asyncio
async def test_guest_signs_in_uploads_and_sees_photo(sign_in, create_event):
    """A guest verifies by SMS code, uploads one picture and finds it in their list."""
    await create_event("E1")
    photo = b"\xff\xd8\xff\xe0" + b"\x00" * (2 * 1024 * 1024 - 4)

    async with _client() as client:
        session = await sign_in(client, "0771234567", name="Dana", event_id="E1")
        assert client.cookies.get("guest-session") == session["token"]

        uploaded = await _upload(client, "first-dance.jpg", content=photo)
        assert uploaded["size"] == 2 * 1024 * 1024

        response = await client.get("/api/photos/list")

    data = response.json()
    assert data["totalCount"] == 1
    assert data["photos"][0]["fileName"] == "first-dance.jpg"
    assert data["photos"][0]["size"] == 2 * 1024 * 1024
