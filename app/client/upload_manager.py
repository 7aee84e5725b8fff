"""Client-side progressive uploads.

Each added file is compressed to a low-quality thumbnail and staged on the
server straight away; the full-resolution transfer only starts when the
caller confirms the file. Files have independent lifecycles::

    pending -> uploading -> compressed -> uploading -> completed
                                  (any non-terminal) -> failed
"""
import asyncio
import io
import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import httpx

from app.client.imaging import compress_image

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
STAGED_PROGRESS = 20
_PUT_CHUNK_SIZE = 64 * 1024


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPRESSED = "compressed"
    COMPLETED = "completed"
    FAILED = "failed"


TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.PENDING: frozenset({UploadStatus.UPLOADING, UploadStatus.FAILED}),
    UploadStatus.UPLOADING: frozenset({UploadStatus.COMPRESSED, UploadStatus.COMPLETED, UploadStatus.FAILED}),
    UploadStatus.COMPRESSED: frozenset({UploadStatus.UPLOADING, UploadStatus.FAILED}),
    UploadStatus.COMPLETED: frozenset(),
    UploadStatus.FAILED: frozenset(),
}


class UploadError(Exception):
    pass


class FileTooLargeError(UploadError):
    def __init__(self, name: str, size: int, limit: int):
        super().__init__(f"{name} is {size} bytes, larger than the {limit} byte limit")
        self.size = size
        self.limit = limit


class InvalidTransitionError(UploadError):
    def __init__(self, file_id: str, current: UploadStatus, target: UploadStatus):
        super().__init__(f"Upload {file_id} cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


class UploadNotFoundError(UploadError):
    def __init__(self, file_id: str):
        super().__init__(f"Upload not found: {file_id}")
        self.file_id = file_id


@dataclass
class LocalFile:
    name: str
    content: bytes
    content_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str, content_type: str | None = None) -> "LocalFile":
        with open(path, "rb") as f:
            content = f.read()
        guessed, _ = mimetypes.guess_type(path)
        return cls(
            name=os.path.basename(path),
            content=content,
            content_type=content_type or guessed or "application/octet-stream",
        )


@dataclass
class GuestInfo:
    name: str
    phone: str | None = None
    email: str | None = None
    event_id: str | None = None


@dataclass
class TrackedUpload:
    id: str
    file: LocalFile
    preview: memoryview | None = None
    thumbnail: bytes | None = None
    progress: int = 0
    status: UploadStatus = UploadStatus.PENDING
    error: str | None = None
    upload_url: str | None = None
    cloud_path: str | None = None
    result: dict[str, Any] = field(default_factory=dict)


class _ProgressReader(io.BytesIO):
    """BytesIO that reports how much of itself has been read, in percent."""

    def __init__(self, data: bytes, on_read: Callable[[float], None]):
        super().__init__(data)
        self._total = len(data) or 1
        self._on_read = on_read

    def read(self, size: int | None = -1) -> bytes:
        chunk = super().read(size)
        if chunk:
            self._on_read(self.tell() * 100 / self._total)
        return chunk


class ProgressiveUploadManager:
    """Tracks per-file upload state against the guest upload endpoints.

    Callbacks are plain callables: ``on_progress(file_id, percent)``,
    ``on_status_change(file_id, status)``, ``on_complete(file_id, result)`` and
    ``on_error(file_id, message)``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str | None = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        thumbnail_quality: float = 0.2,
        thumbnail_endpoint: str = "/api/upload/thumbnail",
        upload_endpoint: str = "/api/upload/simple",
        on_progress: Callable[[str, int], None] | None = None,
        on_status_change: Callable[[str, UploadStatus], None] | None = None,
        on_complete: Callable[[str, dict], None] | None = None,
        on_error: Callable[[str, str], None] | None = None,
    ):
        self.client = client
        self.token = token
        self.max_file_size = max_file_size
        self.thumbnail_quality = thumbnail_quality
        self.thumbnail_endpoint = thumbnail_endpoint
        self.upload_endpoint = upload_endpoint
        self.on_progress = on_progress
        self.on_status_change = on_status_change
        self.on_complete = on_complete
        self.on_error = on_error
        self._uploads: dict[str, TrackedUpload] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # state

    def get(self, file_id: str) -> TrackedUpload | None:
        return self._uploads.get(file_id)

    @property
    def uploads(self) -> list[TrackedUpload]:
        return list(self._uploads.values())

    def _require(self, file_id: str) -> TrackedUpload:
        upload = self._uploads.get(file_id)
        if upload is None:
            raise UploadNotFoundError(file_id)
        return upload

    def _is_tracked(self, upload: TrackedUpload) -> bool:
        return self._uploads.get(upload.id) is upload

    def _transition(self, upload: TrackedUpload, target: UploadStatus) -> None:
        if target not in TRANSITIONS[upload.status]:
            raise InvalidTransitionError(upload.id, upload.status, target)
        upload.status = target
        if self.on_status_change and self._is_tracked(upload):
            self.on_status_change(upload.id, target)

    def _set_progress(self, upload: TrackedUpload, value: int) -> None:
        if value <= upload.progress:
            return
        upload.progress = value
        if self.on_progress and self._is_tracked(upload):
            self.on_progress(upload.id, value)

    def _report_transfer(self, upload: TrackedUpload, percent: float) -> None:
        scaled = STAGED_PROGRESS + round(percent * (100 - STAGED_PROGRESS) / 100)
        self._set_progress(upload, min(scaled, 100))

    def _fail(self, upload: TrackedUpload, error: Exception) -> None:
        if not TRANSITIONS[upload.status]:
            logger.warning("Ignoring failure of finished upload %s: %s", upload.id, error)
            return
        upload.error = str(error) or "Upload failed"
        self._transition(upload, UploadStatus.FAILED)
        if self.on_error and self._is_tracked(upload):
            self.on_error(upload.id, upload.error)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    @staticmethod
    def _error_message(response: httpx.Response, fallback: str) -> str:
        try:
            detail = response.json().get("error")
        except (ValueError, AttributeError):
            detail = None
        return f"{fallback} (HTTP {response.status_code}){': ' + detail if detail else ''}"

    # lifecycle

    def add_file(self, file: LocalFile) -> str:
        """Track a file and start staging its thumbnail in the background.

        Must be called from a running event loop.
        """
        if file.size > self.max_file_size:
            raise FileTooLargeError(file.name, file.size, self.max_file_size)

        file_id = uuid.uuid4().hex
        upload = TrackedUpload(id=file_id, file=file, preview=memoryview(file.content))
        self._uploads[file_id] = upload
        self._tasks[file_id] = asyncio.get_running_loop().create_task(self._stage(upload))
        return file_id

    async def _stage(self, upload: TrackedUpload) -> None:
        try:
            self._transition(upload, UploadStatus.UPLOADING)
            thumbnail = await asyncio.to_thread(
                compress_image, upload.file.content, self.thumbnail_quality
            )
            upload.thumbnail = thumbnail
            self._set_progress(upload, STAGED_PROGRESS)
            self._transition(upload, UploadStatus.COMPRESSED)
            await self._push_thumbnail(upload)
        except Exception as e:
            logger.warning("Staging failed for %s: %s", upload.file.name, e)
            self._fail(upload, e)

    async def _push_thumbnail(self, upload: TrackedUpload) -> None:
        stem = os.path.splitext(upload.file.name)[0] or upload.id
        response = await self.client.post(
            self.thumbnail_endpoint,
            files={"thumbnail": (f"{stem}.jpg", upload.thumbnail, "image/jpeg")},
            data={
                "fileId": upload.id,
                "fileName": upload.file.name,
                "fileSize": str(upload.file.size),
            },
            headers=self._headers(),
        )
        if response.is_error:
            raise UploadError(self._error_message(response, "Failed to upload thumbnail"))

        body = response.json()
        upload.upload_url = body.get("uploadUrl")
        upload.cloud_path = body.get("cloudPath")

    async def wait_for_staging(self, file_id: str) -> TrackedUpload:
        upload = self._require(file_id)
        task = self._tasks.get(file_id)
        if task is not None and not task.done():
            await asyncio.wait([task])
        return upload

    async def confirm(self, file_id: str, guest_info: GuestInfo | None = None) -> dict[str, Any]:
        """Upload the full-resolution file. Raises on failure; there is no retry."""
        upload = await self.wait_for_staging(file_id)
        if not self._is_tracked(upload):
            raise UploadNotFoundError(file_id)
        if upload.status is not UploadStatus.COMPRESSED:
            raise InvalidTransitionError(file_id, upload.status, UploadStatus.UPLOADING)

        self._transition(upload, UploadStatus.UPLOADING)
        try:
            if upload.upload_url:
                result = await self._upload_direct(upload)
            else:
                result = await self._upload_through_server(upload, guest_info)
        except Exception as e:
            self._fail(upload, e)
            raise

        upload.result = result
        self._set_progress(upload, 100)
        self._transition(upload, UploadStatus.COMPLETED)
        if self.on_complete and self._is_tracked(upload):
            self.on_complete(file_id, result)
        return result

    async def _upload_direct(self, upload: TrackedUpload) -> dict[str, Any]:
        data = upload.file.content
        total = len(data) or 1

        async def body():
            sent = 0
            for start in range(0, len(data), _PUT_CHUNK_SIZE):
                chunk = data[start:start + _PUT_CHUNK_SIZE]
                yield chunk
                sent += len(chunk)
                self._report_transfer(upload, sent * 100 / total)

        response = await self.client.put(
            upload.upload_url,
            content=body(),
            headers={"Content-Type": upload.file.content_type, "Content-Length": str(len(data))},
        )
        if response.is_error:
            raise UploadError(f"Upload failed with status {response.status_code}")
        return {"cloudPath": upload.cloud_path, "fileName": upload.file.name, "size": upload.file.size}

    async def _upload_through_server(
        self, upload: TrackedUpload, guest_info: GuestInfo | None
    ) -> dict[str, Any]:
        reader = _ProgressReader(upload.file.content, lambda pct: self._report_transfer(upload, pct))
        data: dict[str, str] = {}
        if upload.cloud_path:
            data["thumbnailPath"] = upload.cloud_path
        if guest_info is not None:
            data["guestName"] = guest_info.name
            if guest_info.phone:
                data["guestPhone"] = guest_info.phone
            if guest_info.email:
                data["guestEmail"] = guest_info.email
            if guest_info.event_id:
                data["eventId"] = guest_info.event_id

        response = await self.client.post(
            self.upload_endpoint,
            files={"file": (upload.file.name, reader, upload.file.content_type)},
            data=data,
            headers=self._headers(),
        )
        if response.is_error:
            raise UploadError(self._error_message(response, "Upload failed"))

        body = response.json()
        return {
            "cloudPath": upload.cloud_path,
            "fileName": body.get("fileName", upload.file.name),
            "size": body.get("size", upload.file.size),
            "url": body.get("url"),
            "publicUrl": body.get("publicUrl"),
        }

    # cleanup

    def _release(self, upload: TrackedUpload) -> None:
        if upload.preview is not None:
            upload.preview.release()
            upload.preview = None
        task = self._tasks.pop(upload.id, None)
        if task is not None and not task.done():
            task.cancel()

    def cancel(self, file_id: str) -> None:
        """Forget a file locally. A thumbnail already staged on the server stays there."""
        upload = self._uploads.pop(file_id, None)
        if upload is not None:
            self._release(upload)

    def clear_completed(self) -> None:
        for file_id, upload in list(self._uploads.items()):
            if upload.status is UploadStatus.COMPLETED:
                del self._uploads[file_id]
                self._release(upload)

    def clear_all(self) -> None:
        uploads = list(self._uploads.values())
        self._uploads.clear()
        for upload in uploads:
            self._release(upload)
