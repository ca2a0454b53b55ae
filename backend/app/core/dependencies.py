"""
FastAPI dependencies.

JWT authentication plus wiring of the booking engine and its
post-commit side effects.
"""

from typing import Optional
from fastapi import Depends, Query, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from backend.app.core.config import settings
from backend.app.core.exceptions import AuthenticationError, InsufficientPermissionsError, TokenRevokedError
from backend.app.core.jwt import decode_access_token
from backend.app.core.token_revocation import is_token_revoked
from backend.app.db.session import get_db, get_session_factory
from backend.app.domain.booking.booking_engine import BookingEngine
from backend.app.models.user import User
from backend.app.services.meeting_provisioner import BbbMeetingProvisioner, build_meeting_provisioner
from backend.app.services.notification_service import Notifier
from backend.app.services.side_effects import SideEffectDispatcher

# HTTP Bearer security scheme
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


async def authenticate_token(token: str, db: AsyncSession) -> dict:
    """
    Resolve a bearer token to the caller's claims.

    Checks, in order:
    1. JWT signature and expiry
    2. Token not explicitly revoked (logout)
    3. User exists and is active; the role is taken from the database

    Raises:
        AuthenticationError / TokenRevokedError (401), InsufficientPermissionsError (403) if inactive
    """
    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    if await is_token_revoked(token):
        raise TokenRevokedError()

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise InsufficientPermissionsError("User account is inactive")

    payload["role"] = user.role.value
    payload["sub"] = user.username
    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """FastAPI dependency for JWT authentication from the Authorization header."""
    return await authenticate_token(credentials.credentials, db)


async def get_current_user_header_or_query(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    token: Optional[str] = Query(None, description="Bearer token, for links opened in a browser"),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    Like get_current_user, but also accepts `?token=`.

    Meeting join links are opened by the browser, which cannot set headers.
    """
    raw = credentials.credentials if credentials else token
    if not raw:
        raise AuthenticationError("Missing token")
    return await authenticate_token(raw, db)


def public_base_url(request: Request) -> str:
    """Configured public URL, else the URL this request reached us on."""
    configured = (settings.public_backend_url or "").strip().rstrip("/")
    if configured:
        return configured
    proto = request.headers.get("x-forwarded-proto", request.url.scheme)
    host = request.headers.get("x-forwarded-host", request.url.netloc)
    return f"{proto}://{host}".rstrip("/")


def get_meeting_provisioner() -> Optional[BbbMeetingProvisioner]:
    """BigBlueButton provisioner, or None when BBB is not configured."""
    return build_meeting_provisioner(settings)


def get_side_effect_dispatcher(
    request: Request,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    provisioner: Optional[BbbMeetingProvisioner] = Depends(get_meeting_provisioner)
) -> SideEffectDispatcher:
    return SideEffectDispatcher(
        session_factory=session_factory,
        provisioner=provisioner,
        notifier=Notifier(session_factory),
        public_base_url=public_base_url(request),
    )


def get_booking_engine(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    dispatcher: SideEffectDispatcher = Depends(get_side_effect_dispatcher)
) -> BookingEngine:
    return BookingEngine(session_factory, dispatcher=dispatcher)
