import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_guest
from app.models.event import EventTable
from app.models.guest import Guest
from app.models.photo import Photo
from app.schemas.photo import PhotoResponse, UploaderResponse
from app.services.auth_service import AuthContext
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/photos", tags=["photos"])


@router.get("/list")
async def list_photos(
    view_all_requested: bool = Query(False, alias="viewAll"),
    auth: AuthContext = Depends(get_current_guest),
    db: AsyncSession = Depends(get_db),
):
    guest = auth.guest
    # guests who signed in from a table QR code may browse the whole event
    can_view_all = bool(guest.table_id)
    view_all = view_all_requested and can_view_all

    query = (
        select(Photo, Guest, EventTable)
        .join(Guest, Photo.guest_id == Guest.id)
        .outerjoin(EventTable, Guest.table_id == EventTable.id)
        .where(Photo.upload_status == "COMPLETED")
        .order_by(Photo.created_at.desc())
    )
    if view_all:
        query = query.where(Photo.event_id == guest.event_id)
    else:
        query = query.where(Photo.guest_id == guest.id)

    rows = (await db.execute(query)).all()

    photos = []
    skipped = 0
    for photo, uploader, table in rows:
        if not photo.cloud_url or not photo.cloud_url.strip():
            skipped += 1
            continue

        uploaded_by = None
        if view_all:
            uploaded_by = UploaderResponse(
                name=uploader.name,
                table=(table.table_name or table.table_number) if table else None,
            )

        photos.append(
            PhotoResponse(
                id=photo.id,
                file_name=photo.file_name,
                original_name=photo.original_name,
                url=photo.cloud_url,
                thumbnail_url=photo.thumbnail_url,
                size=photo.size,
                uploaded_at=photo.created_at,
                uploaded_by=uploaded_by,
            ).model_dump(mode="json", by_alias=True, exclude_none=True)
        )

    if skipped:
        logger.warning("Skipped %d photos without a cloud URL, consider running cleanup", skipped)

    return success_response(
        photos=photos,
        totalCount=len(photos),
        canViewAll=can_view_all,
        viewingMode="all" if view_all else "own",
    )
