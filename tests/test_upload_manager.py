from io import BytesIO

import httpx
import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image
from sqlalchemy import select

from app.client.upload_manager import (
    FileTooLargeError,
    InvalidTransitionError,
    LocalFile,
    ProgressiveUploadManager,
    UploadError,
    UploadNotFoundError,
    UploadStatus,
)
from app.database import async_session
from app.main import app
from app.models.photo import Photo


def _jpeg(size=(640, 480), color=(200, 40, 40)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()


class Recorder:
    def __init__(self):
        self.progress: list[tuple[str, int]] = []
        self.statuses: list[tuple[str, UploadStatus]] = []
        self.completed: list[str] = []
        self.errors: list[tuple[str, str]] = []

    def callbacks(self) -> dict:
        return {
            "on_progress": lambda fid, pct: self.progress.append((fid, pct)),
            "on_status_change": lambda fid, status: self.statuses.append((fid, status)),
            "on_complete": lambda fid, result: self.completed.append(fid),
            "on_error": lambda fid, message: self.errors.append((fid, message)),
        }

    def statuses_of(self, file_id: str) -> list[UploadStatus]:
        return [status for fid, status in self.statuses if fid == file_id]

    def progress_of(self, file_id: str) -> list[int]:
        return [pct for fid, pct in self.progress if fid == file_id]


def _mock_client(handler) -> AsyncClient:
    return AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


def _staging_handler(upload_url=None, put_status=200, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if request.url.path == "/api/upload/thumbnail":
            return httpx.Response(200, json={
                "success": True,
                "uploadUrl": upload_url,
                "cloudPath": "e1/g1/thumbnails/x.jpg",
                "photoId": "x",
            })
        if request.method == "PUT":
            return httpx.Response(put_status)
        if request.url.path == "/api/upload/simple":
            return httpx.Response(200, json={"success": True, "fileName": "IMG.jpg", "size": 1})
        return httpx.Response(404)
    return handler


@pytest.mark.asyncio
async def test_oversized_file_rejected_before_network():
    calls = []
    async with _mock_client(_staging_handler(calls=calls)) as client:
        manager = ProgressiveUploadManager(client, token="t")
        with pytest.raises(FileTooLargeError) as exc_info:
            manager.add_file(LocalFile("huge.jpg", b"\x00" * (50 * 1024 * 1024)))

    assert exc_info.value.limit == 10 * 1024 * 1024
    assert manager.uploads == []
    assert calls == []


@pytest.mark.asyncio
async def test_staging_reaches_compressed_at_twenty_percent():
    recorder = Recorder()
    calls = []
    async with _mock_client(_staging_handler(calls=calls)) as client:
        manager = ProgressiveUploadManager(client, token="abc", **recorder.callbacks())
        file_id = manager.add_file(LocalFile("IMG.jpg", _jpeg()))
        upload = await manager.wait_for_staging(file_id)

    assert upload.status is UploadStatus.COMPRESSED
    assert upload.progress == 20
    assert upload.cloud_path == "e1/g1/thumbnails/x.jpg"
    assert upload.thumbnail is not None
    assert len(upload.thumbnail) < len(upload.file.content)
    assert recorder.statuses_of(file_id) == [UploadStatus.UPLOADING, UploadStatus.COMPRESSED]
    assert recorder.progress_of(file_id) == [20]

    request = calls[0]
    assert request.headers["authorization"] == "Bearer abc"
    assert file_id.encode() in request.content


@pytest.mark.asyncio
async def test_confirm_through_server():
    recorder = Recorder()
    calls = []
    async with _mock_client(_staging_handler(calls=calls)) as client:
        manager = ProgressiveUploadManager(client, **recorder.callbacks())
        file_id = manager.add_file(LocalFile("IMG.jpg", _jpeg()))
        result = await manager.confirm(file_id)

    upload = manager.get(file_id)
    assert upload.status is UploadStatus.COMPLETED
    assert upload.progress == 100
    assert result["cloudPath"] == "e1/g1/thumbnails/x.jpg"
    assert recorder.completed == [file_id]
    assert recorder.statuses_of(file_id) == [
        UploadStatus.UPLOADING,
        UploadStatus.COMPRESSED,
        UploadStatus.UPLOADING,
        UploadStatus.COMPLETED,
    ]
    progress = recorder.progress_of(file_id)
    assert progress[0] == 20 and progress[-1] == 100
    assert progress == sorted(progress)

    relay = calls[-1]
    assert relay.url.path == "/api/upload/simple"
    assert b'name="thumbnailPath"' in relay.content
    assert b"e1/g1/thumbnails/x.jpg" in relay.content


@pytest.mark.asyncio
async def test_confirm_direct_put():
    content = _jpeg(size=(1600, 1200))
    calls = []
    recorder = Recorder()
    handler = _staging_handler(upload_url="https://bucket.test/put/x", calls=calls)
    async with _mock_client(handler) as client:
        manager = ProgressiveUploadManager(client, **recorder.callbacks())
        file_id = manager.add_file(LocalFile("big.jpg", content))
        result = await manager.confirm(file_id)

    put = calls[-1]
    assert put.method == "PUT"
    assert str(put.url) == "https://bucket.test/put/x"
    assert put.content == content
    assert put.headers["content-type"] == "image/jpeg"
    assert result == {"cloudPath": "e1/g1/thumbnails/x.jpg", "fileName": "big.jpg", "size": len(content)}
    assert manager.get(file_id).status is UploadStatus.COMPLETED
    assert recorder.progress_of(file_id)[-1] == 100


@pytest.mark.asyncio
async def test_confirm_twice_is_rejected():
    async with _mock_client(_staging_handler()) as client:
        manager = ProgressiveUploadManager(client)
        file_id = manager.add_file(LocalFile("IMG.jpg", _jpeg()))
        await manager.confirm(file_id)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await manager.confirm(file_id)

    assert exc_info.value.current is UploadStatus.COMPLETED
    assert manager.get(file_id).status is UploadStatus.COMPLETED


@pytest.mark.asyncio
async def test_failed_thumbnail_marks_upload_failed():
    recorder = Recorder()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "Failed to upload thumbnail"})

    async with _mock_client(handler) as client:
        manager = ProgressiveUploadManager(client, **recorder.callbacks())
        file_id = manager.add_file(LocalFile("IMG.jpg", _jpeg()))
        upload = await manager.wait_for_staging(file_id)

        with pytest.raises(InvalidTransitionError):
            await manager.confirm(file_id)

    assert upload.status is UploadStatus.FAILED
    assert "HTTP 500" in upload.error
    assert recorder.errors == [(file_id, upload.error)]


@pytest.mark.asyncio
async def test_unreadable_image_fails_staging():
    calls = []
    async with _mock_client(_staging_handler(calls=calls)) as client:
        manager = ProgressiveUploadManager(client)
        file_id = manager.add_file(LocalFile("broken.jpg", b"not an image"))
        upload = await manager.wait_for_staging(file_id)

    assert upload.status is UploadStatus.FAILED
    assert calls == []


@pytest.mark.asyncio
async def test_rejected_full_upload_fails():
    recorder = Recorder()
    handler = _staging_handler(upload_url="https://bucket.test/put/x", put_status=403)
    async with _mock_client(handler) as client:
        manager = ProgressiveUploadManager(client, **recorder.callbacks())
        file_id = manager.add_file(LocalFile("IMG.jpg", _jpeg()))
        with pytest.raises(UploadError):
            await manager.confirm(file_id)

    upload = manager.get(file_id)
    assert upload.status is UploadStatus.FAILED
    assert "403" in upload.error
    assert recorder.completed == []
    assert [fid for fid, _ in recorder.errors] == [file_id]


@pytest.mark.asyncio
async def test_cancel_only_affects_one_file():
    recorder = Recorder()
    async with _mock_client(_staging_handler()) as client:
        manager = ProgressiveUploadManager(client, **recorder.callbacks())
        keep_id = manager.add_file(LocalFile("keep.jpg", _jpeg()))
        drop_id = manager.add_file(LocalFile("drop.jpg", _jpeg(color=(0, 0, 255))))
        manager.cancel(drop_id)

        await manager.confirm(keep_id)
        with pytest.raises(UploadNotFoundError):
            await manager.confirm(drop_id)

    assert manager.get(drop_id) is None
    assert manager.get(keep_id).status is UploadStatus.COMPLETED
    assert [u.id for u in manager.uploads] == [keep_id]
    assert recorder.progress_of(drop_id) == []
    assert recorder.completed == [keep_id]


@pytest.mark.asyncio
async def test_clear_completed_and_clear_all():
    async with _mock_client(_staging_handler()) as client:
        manager = ProgressiveUploadManager(client)
        done_id = manager.add_file(LocalFile("done.jpg", _jpeg()))
        waiting_id = manager.add_file(LocalFile("waiting.jpg", _jpeg()))
        await manager.confirm(done_id)
        await manager.wait_for_staging(waiting_id)

        manager.clear_completed()
        assert [u.id for u in manager.uploads] == [waiting_id]
        assert manager.get(waiting_id).preview is not None

        manager.clear_all()

    assert manager.uploads == []


@pytest.mark.asyncio
async def test_progressive_upload_against_api(sign_in):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        session = await sign_in(client, "0776000001", name="Mara")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        manager = ProgressiveUploadManager(client, token=session["token"])
        file_id = manager.add_file(LocalFile("reception.jpg", _jpeg(size=(2000, 1500))))
        staged = await manager.wait_for_staging(file_id)
        assert staged.status is UploadStatus.COMPRESSED
        assert staged.cloud_path.endswith(f"/thumbnails/{file_id}.jpg")

        result = await manager.confirm(file_id)

    assert result["fileName"] == "reception.jpg"
    assert result["url"]

    async with async_session() as db:
        rows = await db.execute(select(Photo).where(Photo.guest_id == session["guest"]["id"]))
        photo = rows.scalars().one()
    assert photo.thumbnail_path == staged.cloud_path
    assert photo.original_name == "reception.jpg"
