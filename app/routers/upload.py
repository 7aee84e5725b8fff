import logging
import os
import re
import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_guest, get_storage
from app.models.event import Event
from app.models.guest import Guest
from app.models.photo import Photo
from app.services.auth_service import AuthContext
from app.services.storage import ObjectStorage
from app.utils.exceptions import AuthError, PayloadTooLargeError, TransportError, ValidationError
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])

PLACEHOLDER_EVENT_IDS = {"default-event-id", "test-event"}

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


async def resolve_event(db: AsyncSession, event_id: str | None) -> Event:
    """Find the upload's event, creating it when the id is unknown.

    An existing event is always used as is. Otherwise placeholder ids resolve
    to the most recent event, or a fresh default event when the database has
    none.
    """
    if event_id:
        event = await db.get(Event, event_id)
        if event is not None:
            return event

    if not event_id or event_id in PLACEHOLDER_EVENT_IDS:
        result = await db.execute(select(Event).order_by(Event.created_at.desc()).limit(1))
        latest = result.scalars().first()
        if latest is not None:
            return latest
        event = Event(id=settings.default_event_id, name="Wedding Event", is_active=True)
    else:
        event = Event(id=event_id, name=f"Event {event_id}", is_active=True)

    logger.info("Creating event %s for upload", event.id)
    db.add(event)
    await db.commit()
    await db.refresh(event)
    return event


def _check_size(event: Event, size: int) -> None:
    if event.max_upload_size and size > event.max_upload_size:
        raise PayloadTooLargeError(
            f"File exceeds the maximum upload size of {event.max_upload_size} bytes"
        )


def _check_limits(event: Event, content_type: str, size: int) -> None:
    if size == 0:
        raise ValidationError("File is empty")
    _check_size(event, size)
    if event.allowed_formats and content_type not in event.allowed_formats:
        raise ValidationError(f"Unsupported file type: {content_type}")
    if event.storage_quota and event.storage_used + size > event.storage_quota:
        raise PayloadTooLargeError("Event storage quota exceeded")


def _object_path(event_id: str, guest_id: str, filename: str) -> str:
    extension = os.path.splitext(filename)[1].lstrip(".").lower() or "bin"
    return f"{event_id}/{guest_id}/{uuid.uuid4()}.{extension}"


def _thumbnail_prefix(event_id: str, guest_id: str) -> str:
    return f"{event_id}/{guest_id}/thumbnails/"


async def _increment_aggregates(db: AsyncSession, guest_id: str, event_id: str, size: int) -> None:
    try:
        await db.execute(
            update(Guest)
            .where(Guest.id == guest_id)
            .values(upload_count=Guest.upload_count + 1, total_size=Guest.total_size + size)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to update upload stats for guest %s", guest_id)

    try:
        await db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(storage_used=Event.storage_used + size)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("Failed to update storage usage for event %s", event_id)


@router.post("/simple")
async def upload_simple(
    file: UploadFile | None = File(default=None),
    event_id: str | None = Form(default=None, alias="eventId"),
    thumbnail_path: str | None = Form(default=None, alias="thumbnailPath"),
    auth: AuthContext = Depends(get_current_guest),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    if file is None or not file.filename:
        raise ValidationError("File is required")

    guest_id = auth.guest.id if auth.guest else None
    if not guest_id:
        raise AuthError("not verified", message="Guest ID not found in session")

    event = await resolve_event(db, auth.event_id or event_id)
    # reject before reading the spooled upload into memory
    if file.size is not None:
        _check_size(event, file.size)
    content = await file.read()
    content_type = file.content_type or "application/octet-stream"
    size = len(content)
    _check_limits(event, content_type, size)

    cloud_path = _object_path(event.id, guest_id, file.filename)
    logger.info(
        "Upload request: file=%s size=%d type=%s event=%s guest=%s",
        file.filename, size, content_type, event.id, guest_id,
    )

    signed_ttl = timedelta(days=settings.signed_url_days)
    try:
        await storage.upload(
            cloud_path,
            content,
            content_type,
            metadata={"originalName": file.filename, "uploadedBy": guest_id, "eventId": event.id},
        )
        signed_url = await storage.signed_read_url(cloud_path, signed_ttl)
    except Exception as e:
        logger.exception("Object storage write failed for %s", cloud_path)
        raise TransportError("Failed to upload file", details=str(e)) from e
    public_url = storage.public_url(cloud_path)

    thumbnail_url = None
    if thumbnail_path and not thumbnail_path.startswith(_thumbnail_prefix(event.id, guest_id)):
        logger.warning("Ignoring thumbnail path outside guest prefix: %s", thumbnail_path)
        thumbnail_path = None
    if thumbnail_path:
        try:
            thumbnail_url = await storage.signed_read_url(thumbnail_path, signed_ttl)
        except Exception:
            logger.exception("Could not sign thumbnail URL for %s", thumbnail_path)
            thumbnail_path = None

    # the file counts as delivered once stored; a failed insert is only logged
    try:
        photo = Photo(
            id=str(uuid.uuid4()),
            event_id=event.id,
            guest_id=guest_id,
            file_name=file.filename,
            original_name=file.filename,
            mime_type=content_type,
            size=size,
            cloud_path=cloud_path,
            cloud_url=signed_url,
            thumbnail_path=thumbnail_path,
            thumbnail_url=thumbnail_url,
            upload_status="COMPLETED",
            upload_progress=100,
        )
        db.add(photo)
        await db.commit()
        logger.info("Photo record %s created for %s", photo.id, cloud_path)
    except Exception:
        await db.rollback()
        logger.exception(
            "Partial failure: stored %s but could not write photo record (event=%s guest=%s)",
            cloud_path, event.id, guest_id,
        )
    else:
        await _increment_aggregates(db, guest_id, event.id, size)

    return success_response(
        url=signed_url,
        publicUrl=public_url,
        fileName=file.filename,
        size=size,
    )


@router.post("/thumbnail")
async def upload_thumbnail(
    thumbnail: UploadFile = File(...),
    file_id: str = Form(..., alias="fileId"),
    file_name: str = Form(default="", alias="fileName"),
    file_size: int | None = Form(default=None, alias="fileSize"),
    auth: AuthContext = Depends(get_current_guest),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    """Stage a compressed preview; the returned path links it to the full upload later."""
    if not _SAFE_ID.match(file_id):
        file_id = uuid.uuid4().hex

    content = await thumbnail.read()
    if not content:
        raise ValidationError("Thumbnail is empty")

    event = await resolve_event(db, auth.event_id)
    cloud_path = f"{_thumbnail_prefix(event.id, auth.guest.id)}{file_id}.jpg"
    try:
        await storage.upload(cloud_path, content, "image/jpeg")
    except Exception as e:
        logger.exception("Thumbnail staging failed for %s", cloud_path)
        raise TransportError("Failed to upload thumbnail", details=str(e)) from e

    logger.info(
        "Staged thumbnail %s for %s (%s bytes original)", cloud_path, file_name or file_id, file_size
    )
    return success_response(
        uploadUrl=None,
        cloudPath=cloud_path,
        photoId=file_id,
    )
