"""Auth dependencies — JWT validation, capability enforcement, request context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, Query, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workday.app_settings.service import SettingsService, SettingsSnapshot
from workday.auth.models import UserSession
from workday.auth.service import hash_token
from workday.common.clock import effective_now
from workday.common.constants import can
from workday.common.exceptions import ForbiddenException, UnauthorizedException
from workday.config import settings
from workday.database import get_db
from workday.users.models import User
from workday.users.service import UserService

logger = logging.getLogger(__name__)


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise UnauthorizedException("Missing or invalid Authorization header.")
    return auth_header[7:]


async def _session_is_valid(db: AsyncSession, token: str) -> bool:
    """Check the session table; a database error fails open."""
    try:
        result = await db.execute(
            select(UserSession.id).where(
                UserSession.token_hash == hash_token(token),
                UserSession.is_revoked.is_(False),
                UserSession.expires_at > datetime.now(timezone.utc),
            ),
        )
    except SQLAlchemyError:
        logger.warning("Session lookup failed; allowing request", exc_info=True)
        await db.rollback()
        return True
    return result.scalar() is not None


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate JWT, verify session, return the authenticated User."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise UnauthorizedException("Token has expired.")
    except JWTError:
        raise UnauthorizedException("Invalid token.")

    if payload.get("type") != "access":
        raise UnauthorizedException("Invalid token type.")

    if not await _session_is_valid(db, token):
        raise UnauthorizedException("Session invalid or expired.")

    user = await UserService.find_active_user(db, payload.get("sub", ""))
    if user is None:
        raise UnauthorizedException("User account is inactive or not found.")

    request.state.user = user
    return user


# ── Capability-based dependency ─────────────────────────────────────

def require_capability(capability: str) -> Callable:
    """Return a FastAPI dependency that enforces a capability from the role table."""

    async def _check(user: User = Depends(get_current_user)) -> User:
        if not can(user.role, capability):
            raise ForbiddenException(
                detail=f"Role '{user.role.value}' is not permitted to use '{capability}'.",
            )
        return user

    return _check


# ── Request context (settings snapshot + effective date) ────────────

@dataclass(frozen=True)
class RequestContext:
    settings: SettingsSnapshot
    today: date
    now: datetime


async def get_request_context(
    request: Request,
    as_of: Optional[str] = Query(None, description="Effective-date override (staging only)"),
    db: AsyncSession = Depends(get_db),
) -> RequestContext:
    """Read one settings snapshot and resolve the effective date for this request."""
    snap = await SettingsService.snapshot(db)
    request_override = None
    if settings.ALLOW_DATE_OVERRIDE:
        request_override = request.headers.get("X-Test-Date") or as_of
    today = snap.effective_date(request_override)
    return RequestContext(
        settings=snap,
        today=today,
        now=effective_now(today, snap.timezone),
    )
