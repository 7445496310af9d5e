"""Users router — owner/manager administration of accounts."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workday.auth.dependencies import (
    RequestContext,
    get_current_user,
    get_request_context,
    require_capability,
)
from workday.database import get_db
from workday.users.models import User
from workday.users.schemas import PasswordReset, UserCreate, UserOut
from workday.users.service import UserService

router = APIRouter(prefix="", tags=["users"])


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=list[UserOut])
async def list_users(
    user: User = Depends(require_capability("attendance:read_all")),
    db: AsyncSession = Depends(get_db),
):
    """List every account (owner and manager)."""
    return await UserService.list_users(db)


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=UserOut, status_code=201)
async def create_user(
    body: UserCreate,
    user: User = Depends(require_capability("users:manage")),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.create_user(db, body, actor=user, today=ctx.today)


# ── POST /{username}/reset-password ─────────────────────────────────

@router.post("/{username}/reset-password")
async def reset_password(
    username: str,
    body: PasswordReset,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reset another user's password; the role table decides who may."""
    target = await UserService.reset_password(
        db, username, body.new_password, actor=user,
    )
    return {"message": f"Password reset for {target.username}"}
