import logging
import re
import uuid

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_guest, get_otp_service, get_session_store, get_sms_gateway
from app.models.event import Event, EventTable
from app.models.guest import Guest
from app.schemas.auth import GuestResponse, SendOTPRequest, SessionTokenResponse, VerifyOTPRequest
from app.services.auth_service import AuthContext
from app.services.otp_service import OTPService
from app.services.session_store import SessionStore
from app.services.sms_gateway import SMSGateway, clean_phone_number
from app.utils.clock import utcnow
from app.utils.exceptions import ForbiddenError, NotFoundError, RateLimitedError, TransportError, ValidationError
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


async def _get_active_event(db: AsyncSession, event_id: str) -> Event:
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    if not event.is_active:
        raise ForbiddenError("This event is no longer accepting guests")
    return event


async def _resolve_table(db: AsyncSession, event_id: str, table_ref: str | None) -> EventTable | None:
    """Find a table of the event by id or by its QR code."""
    if not table_ref:
        return None
    result = await db.execute(
        select(EventTable).where(
            EventTable.event_id == event_id,
            or_(EventTable.id == table_ref, EventTable.qr_code == table_ref),
        )
    )
    table = result.scalars().first()
    if table is None:
        raise ValidationError("Unknown table for this event")
    return table


async def _find_guest(db: AsyncSession, event_id: str, phone: str, email: str | None) -> Guest | None:
    """Match by the verified phone; an email match only counts for a guest with no other phone."""
    result = await db.execute(select(Guest).where(Guest.event_id == event_id, Guest.phone == phone))
    guest = result.scalars().first()
    if guest is not None or not email:
        return guest

    result = await db.execute(
        select(Guest).where(
            Guest.event_id == event_id,
            Guest.email == email,
            or_(Guest.phone.is_(None), Guest.phone == ""),
        )
    )
    return result.scalars().first()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


@router.post("/send-otp")
async def send_otp(
    payload: SendOTPRequest,
    db: AsyncSession = Depends(get_db),
    otp_service: OTPService = Depends(get_otp_service),
    sms: SMSGateway = Depends(get_sms_gateway),
):
    phone = clean_phone_number(payload.phone)
    if not re.match(settings.phone_pattern, phone):
        raise ValidationError("Invalid phone number format")

    await _get_active_event(db, payload.event_id)

    status = await otp_service.can_request(db, phone, payload.event_id)
    if not status.allowed:
        raise RateLimitedError(status.wait_seconds)

    issued = await otp_service.issue(db, phone, payload.event_id)

    sms_result = await sms.send_otp(phone, issued.otp)
    if not sms_result.ok:
        raise TransportError("Failed to send SMS. Please try again.")

    extra = {"otp": issued.otp} if settings.is_development else {}
    return success_response(
        message="OTP sent successfully",
        expiresAt=issued.expires_at.isoformat(),
        **extra,
    )


@router.post("/verify-otp")
async def verify_otp(
    payload: VerifyOTPRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    otp_service: OTPService = Depends(get_otp_service),
    sessions: SessionStore = Depends(get_session_store),
    sms: SMSGateway = Depends(get_sms_gateway),
):
    phone = clean_phone_number(payload.phone)
    await _get_active_event(db, payload.event_id)
    table = await _resolve_table(db, payload.event_id, payload.table_id)

    await otp_service.verify(db, phone, payload.otp.strip(), payload.event_id)

    guest = await _find_guest(db, payload.event_id, phone, payload.email)

    if guest is None:
        guest = Guest(
            id=str(uuid.uuid4()),
            event_id=payload.event_id,
            name=payload.name,
            phone=phone,
            email=payload.email,
            table_id=table.id if table else None,
            authenticated_at=utcnow(),
        )
        db.add(guest)
    else:
        guest.name = payload.name
        guest.phone = phone
        guest.email = payload.email or guest.email
        guest.table_id = table.id if table else guest.table_id
        guest.authenticated_at = utcnow()
    await db.commit()
    await db.refresh(guest)

    session = await sessions.create(
        db,
        guest_id=guest.id,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
    )
    logger.info("Guest %s verified for event %s", guest.id, guest.event_id)

    if settings.send_welcome_sms:
        welcome = await sms.send_welcome(phone, guest.name, settings.app_url)
        if not welcome.ok:
            logger.warning("Welcome SMS failed for guest %s: %s", guest.id, welcome.message)

    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.token,
        max_age=int(sessions.lifetime.total_seconds()),
        path="/",
        httponly=False,
        secure=settings.environment == "production",
        samesite="lax",
    )

    token_data = SessionTokenResponse.model_validate(session).model_dump(mode="json", by_alias=True)
    return success_response(
        message="Phone verified successfully!",
        guest=GuestResponse.model_validate(guest).model_dump(mode="json", by_alias=True),
        session=token_data,
        token=token_data["token"],
        expiresAt=token_data["expiresAt"],
    )


@router.get("/me")
async def current_guest(auth: AuthContext = Depends(get_current_guest)):
    return success_response(
        guest=GuestResponse.model_validate(auth.guest).model_dump(mode="json", by_alias=True),
        eventId=auth.event_id,
    )


@router.post("/logout")
async def logout(
    response: Response,
    auth: AuthContext = Depends(get_current_guest),
    db: AsyncSession = Depends(get_db),
    sessions: SessionStore = Depends(get_session_store),
):
    await sessions.invalidate(db, auth.token)
    response.delete_cookie(settings.session_cookie_name, path="/")
    return success_response(message="Signed out")
