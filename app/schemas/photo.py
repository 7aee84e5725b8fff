from datetime import datetime

from pydantic import ConfigDict

from app.schemas.auth import CamelModel


class UploaderResponse(CamelModel):
    name: str | None = None
    table: str | None = None


class PhotoResponse(CamelModel):
    id: str
    file_name: str
    original_name: str
    url: str
    thumbnail_url: str | None = None
    size: int
    uploaded_at: datetime
    uploaded_by: UploaderResponse | None = None


class AdminPhotoResponse(CamelModel):
    id: str
    file_name: str
    thumbnail_url: str | None = None
    cloud_url: str
    size: int
    uploaded_at: datetime
    guest_name: str


class AdminGuestResponse(CamelModel):
    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    table_id: str | None = None
    authenticated_at: datetime | None = None
    upload_count: int
    total_size: int

    model_config = ConfigDict(from_attributes=True)
