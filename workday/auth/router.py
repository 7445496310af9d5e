"""Auth router — password login, logout, current user profile."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from workday.auth.dependencies import _extract_bearer, get_current_user
from workday.auth.schemas import LoginRequest, MeResponse, TokenResponse
from workday.auth.service import (
    authenticate,
    create_session,
    hash_token,
    revoke_session,
)
from workday.common.audit import create_audit_entry
from workday.common.constants import CAPABILITIES
from workday.common.exceptions import UnauthorizedException
from workday.common.rate_limit import limiter
from workday.config import settings
from workday.database import get_db
from workday.users.models import User
from workday.users.schemas import UserOut

router = APIRouter(prefix="", tags=["auth"])


# ── POST /login — Username + password ──────────────────────────────

@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await authenticate(db, body.username, body.password)
    if user is None:
        raise UnauthorizedException("Invalid username or password.")

    ip = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    access_token, expires_in = await create_session(db, user, ip, user_agent)

    await create_audit_entry(
        db,
        action="login",
        entity_type="user_session",
        entity_id=user.username,
        actor=user.username,
        ip_address=ip,
        user_agent=user_agent,
    )

    return TokenResponse(
        access_token=access_token,
        expires_in=expires_in,
        user=UserOut.model_validate(user),
    )


# ── POST /logout — Revoke current session ──────────────────────────

@router.post("/logout")
async def logout(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await revoke_session(db, hash_token(_extract_bearer(request)))

    await create_audit_entry(
        db,
        action="logout",
        entity_type="user_session",
        entity_id=user.username,
        actor=user.username,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    return {"message": "Logged out successfully"}


# ── GET /me — Current user profile ─────────────────────────────────

@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)):
    return MeResponse(
        user=UserOut.model_validate(user),
        capabilities=sorted(CAPABILITIES.get(user.role, {})),
    )
