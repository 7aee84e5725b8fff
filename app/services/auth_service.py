"""Resolves a guest session token to an authenticated guest."""
import logging
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.guest import Guest
from app.services.session_store import SessionStore
from app.utils.exceptions import AuthError

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    guest: Guest
    event_id: str
    token: str


def extract_token(request: Request, cookie_name: str = "guest-session") -> str | None:
    """Session token from the cookie, falling back to a bearer header."""
    cookie_token = request.cookies.get(cookie_name)
    if cookie_token:
        return cookie_token

    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


async def verify_guest_session(
    db: AsyncSession, token: str | None, sessions: SessionStore
) -> AuthContext:
    if not token:
        raise AuthError("no token")

    session = await sessions.get(db, token)
    if session is None:
        logger.info("Session not found for token %s...", token[:8])
        raise AuthError("not found")

    if session.expires_at < sessions.clock():
        await sessions.delete(db, session)
        raise AuthError("expired")

    guest = await db.get(Guest, session.guest_id)
    if guest is None or guest.authenticated_at is None:
        raise AuthError("not verified")

    return AuthContext(guest=guest, event_id=guest.event_id, token=session.token)
