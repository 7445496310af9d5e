"""Settings router — read runtime settings, owner updates."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workday.auth.dependencies import (
    RequestContext,
    get_current_user,
    get_request_context,
    require_capability,
)
from workday.app_settings.schemas import SettingsOut, SettingsUpdate
from workday.app_settings.service import SettingsService
from workday.database import get_db
from workday.users.models import User

router = APIRouter(prefix="", tags=["settings"])


@router.get("", response_model=SettingsOut)
async def get_settings(
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
):
    return SettingsService.to_out(ctx.settings, ctx.today)


@router.put("", response_model=SettingsOut)
async def update_settings(
    body: SettingsUpdate,
    user: User = Depends(require_capability("settings:configure")),
    db: AsyncSession = Depends(get_db),
):
    """Apply a partial update and return the settings as now stored."""
    snap = await SettingsService.update_settings(db, body, actor=user.username)
    return SettingsService.to_out(snap, snap.effective_date())
