from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.services.auth_service import AuthContext, extract_token, verify_guest_session
from app.services.otp_service import OTPService
from app.services.session_store import SessionStore
from app.services.sms_gateway import SMSGateway
from app.services.storage import ObjectStorage, build_storage
from app.utils.exceptions import ForbiddenError


async def verify_admin_key(x_admin_key: str = Header(default="")) -> None:
    if not settings.admin_api_key:
        return
    if x_admin_key != settings.admin_api_key:
        raise ForbiddenError("Invalid or missing admin key")


@lru_cache
def get_otp_service() -> OTPService:
    return OTPService(
        length=settings.otp_length,
        expiry_minutes=settings.otp_expiry_minutes,
        max_attempts=settings.otp_max_attempts,
    )


@lru_cache
def get_sms_gateway() -> SMSGateway:
    return SMSGateway(
        api_token=settings.textlk_api_token,
        sender_id=settings.textlk_sender_id,
        endpoint=settings.textlk_api_endpoint,
        country_code=settings.sms_country_code,
        otp_expiry_minutes=settings.otp_expiry_minutes,
    )


@lru_cache
def get_session_store() -> SessionStore:
    return SessionStore(lifetime=timedelta(days=settings.session_days))


@lru_cache
def get_storage() -> ObjectStorage:
    return build_storage(settings)


async def get_current_guest(
    request: Request,
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
) -> AuthContext:
    token = extract_token(request, settings.session_cookie_name)
    return await verify_guest_session(db, token, sessions)
