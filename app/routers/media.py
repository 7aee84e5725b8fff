import os

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from app.dependencies import get_storage
from app.services.storage import LocalStorage, ObjectStorage
from app.utils.exceptions import ForbiddenError, NotFoundError

router = APIRouter(prefix="/media", tags=["media"])


@router.get("/{path:path}")
async def serve_media(
    path: str,
    expires: int = Query(...),
    signature: str = Query(...),
    storage: ObjectStorage = Depends(get_storage),
):
    if not isinstance(storage, LocalStorage):
        raise NotFoundError("Not found")

    if not storage.verify_signature(path, expires, signature):
        raise ForbiddenError("Invalid or expired link")

    try:
        full_path = storage.resolve(path)
    except ValueError:
        raise NotFoundError("Not found")
    if not os.path.isfile(full_path):
        raise NotFoundError("Not found")

    return FileResponse(full_path)
