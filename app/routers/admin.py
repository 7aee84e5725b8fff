import logging

import bcrypt
from fastapi import APIRouter, Depends
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_otp_service, get_session_store, verify_admin_key
from app.models.admin import Admin
from app.models.event import Event, EventTable
from app.models.guest import Guest
from app.models.photo import Photo
from app.schemas.auth import AdminLoginRequest, AdminLoginResponse
from app.schemas.photo import AdminGuestResponse, AdminPhotoResponse
from app.services.otp_service import OTPService
from app.services.session_store import SessionStore
from app.utils.exceptions import AppException
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

_admin_key = [Depends(verify_admin_key)]


async def _latest_active_event(db: AsyncSession) -> Event | None:
    result = await db.execute(
        select(Event).where(Event.is_active.is_(True)).order_by(Event.created_at.desc()).limit(1)
    )
    return result.scalars().first()


@router.post("/login")
async def login(request: AdminLoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Admin).where(Admin.email == request.email))
    admin = result.scalars().first()

    if admin is None or not admin.is_active:
        raise AppException("Invalid email or password", status_code=400)

    if not bcrypt.checkpw(request.password.encode(), admin.password_hash.encode()):
        raise AppException("Invalid email or password", status_code=400)

    return success_response(
        admin=AdminLoginResponse(
            admin_id=admin.id, email=admin.email, name=admin.name, role=admin.role
        ).model_dump(by_alias=True)
    )


@router.get("/stats", dependencies=_admin_key)
async def stats(db: AsyncSession = Depends(get_db)):
    event = await _latest_active_event(db)
    if event is None:
        logger.info("No event found, creating default event")
        event = Event(id=settings.default_event_id, name="Wedding Event", is_active=True)
        db.add(event)
        await db.commit()
        await db.refresh(event)

    total_guests = await db.scalar(select(func.count(Guest.id)).where(Guest.event_id == event.id))
    completed = select(Photo).where(Photo.event_id == event.id, Photo.upload_status == "COMPLETED")
    total_photos = await db.scalar(select(func.count()).select_from(completed.subquery()))
    total_size = await db.scalar(
        select(func.coalesce(func.sum(Photo.size), 0)).where(
            Photo.event_id == event.id, Photo.upload_status == "COMPLETED"
        )
    )
    tables = await db.scalar(select(func.count(EventTable.id)).where(EventTable.event_id == event.id))

    return success_response(
        totalGuests=total_guests or 0,
        totalPhotos=total_photos or 0,
        totalSize=int(total_size or 0),
        storageUsed=event.storage_used,
        storageQuota=event.storage_quota,
        tables=tables or 0,
        eventName=event.name,
        eventId=event.id,
    )


@router.get("/photos", dependencies=_admin_key)
async def photos(db: AsyncSession = Depends(get_db)):
    event = await _latest_active_event(db)
    if event is None:
        return success_response(photos=[], total=0, message="No active event found")

    result = await db.execute(
        select(Photo, Guest.name)
        .join(Guest, Photo.guest_id == Guest.id)
        .where(Photo.event_id == event.id, Photo.upload_status == "COMPLETED")
        .order_by(Photo.created_at.desc())
    )
    rows = result.all()

    data = [
        AdminPhotoResponse(
            id=photo.id,
            file_name=photo.original_name,
            thumbnail_url=photo.thumbnail_url or photo.cloud_url,
            cloud_url=photo.cloud_url or "",
            size=photo.size,
            uploaded_at=photo.created_at,
            guest_name=guest_name or "Unknown Guest",
        ).model_dump(mode="json", by_alias=True)
        for photo, guest_name in rows
    ]
    return success_response(photos=data, total=len(data), eventId=event.id, eventName=event.name)


@router.get("/guests", dependencies=_admin_key)
async def guests(db: AsyncSession = Depends(get_db)):
    event = await _latest_active_event(db)
    if event is None:
        return success_response(guests=[], total=0, message="No active event found")

    result = await db.execute(
        select(Guest).where(Guest.event_id == event.id).order_by(Guest.created_at.desc())
    )
    data = [
        AdminGuestResponse.model_validate(g).model_dump(mode="json", by_alias=True)
        for g in result.scalars().all()
    ]
    return success_response(guests=data, total=len(data), eventId=event.id)


@router.post("/cleanup", dependencies=_admin_key)
async def cleanup(
    db: AsyncSession = Depends(get_db),
    otp_service: OTPService = Depends(get_otp_service),
    sessions: SessionStore = Depends(get_session_store),
):
    result = await db.execute(
        select(Photo).where(or_(Photo.cloud_url.is_(None), Photo.cloud_url == ""))
    )
    orphans = result.scalars().all()
    report = [
        {
            "id": p.id,
            "fileName": p.file_name,
            "issues": [issue for issue in (
                "Missing cloudUrl",
                None if p.cloud_path else "Missing cloudPath",
            ) if issue],
        }
        for p in orphans
    ]

    cleaned = 0
    if orphans:
        deleted = await db.execute(delete(Photo).where(Photo.id.in_([p.id for p in orphans])))
        await db.commit()
        cleaned = deleted.rowcount or 0

    expired_otps = await otp_service.cleanup_expired(db)
    expired_sessions = await sessions.purge_expired(db)
    logger.info(
        "Cleanup removed %d orphaned photos, %d expired OTPs, %d expired sessions",
        cleaned, expired_otps, expired_sessions,
    )

    message = f"Cleaned up {cleaned} orphaned photos" if cleaned else "No photos need cleanup"
    return success_response(
        message=message,
        cleaned=cleaned,
        photos=report,
        expiredOtps=expired_otps,
        expiredSessions=expired_sessions,
    )
