"""Attendance router — status, check-in, check-out, history.

Check-in and check-out act on the effective date of the request.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from workday.attendance.schemas import (
    AttendanceRecordOut,
    AttendanceStatusOut,
    MarkRequest,
    MarkResponse,
)
from workday.attendance.service import AttendanceService
from workday.attendance.storage import PhotoStorage, get_photo_storage
from workday.auth.dependencies import (
    RequestContext,
    get_current_user,
    get_request_context,
    require_capability,
)
from workday.database import get_db
from workday.users.models import User

router = APIRouter(prefix="", tags=["attendance"])


# ── GET /status ─────────────────────────────────────────────────────

@router.get("/status", response_model=AttendanceStatusOut)
async def status(
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_status(
        db, user, today=ctx.today, weekly_off_mode=ctx.settings.weekly_off_mode,
    )


# ── POST /check-in ──────────────────────────────────────────────────

@router.post("/check-in", response_model=MarkResponse, status_code=201)
async def check_in(
    body: MarkRequest,
    user: User = Depends(require_capability("attendance:mark")),
    ctx: RequestContext = Depends(get_request_context),
    storage: PhotoStorage = Depends(get_photo_storage),
    db: AsyncSession = Depends(get_db),
):
    """Check in for today. Answers 428 when a pending full-day leave needs confirming."""
    record, withdrawn = await AttendanceService.check_in(
        db,
        user,
        body,
        today=ctx.today,
        now=ctx.now,
        storage=storage,
        weekly_off_mode=ctx.settings.weekly_off_mode,
    )
    return MarkResponse(
        record=AttendanceRecordOut.model_validate(record),
        withdrawn_leave_ids=withdrawn,
    )


# ── POST /check-out ─────────────────────────────────────────────────

@router.post("/check-out", response_model=MarkResponse)
async def check_out(
    body: MarkRequest,
    user: User = Depends(require_capability("attendance:mark")),
    ctx: RequestContext = Depends(get_request_context),
    storage: PhotoStorage = Depends(get_photo_storage),
    db: AsyncSession = Depends(get_db),
):
    record = await AttendanceService.check_out(
        db,
        user,
        body,
        today=ctx.today,
        now=ctx.now,
        storage=storage,
        weekly_off_mode=ctx.settings.weekly_off_mode,
    )
    return MarkResponse(record=AttendanceRecordOut.model_validate(record))


# ── GET /my-attendance ──────────────────────────────────────────────

@router.get("/my-attendance", response_model=list[AttendanceRecordOut])
async def my_attendance(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.list_my_attendance(
        db, user.username, from_date, to_date,
    )


# ── GET /users/{username} ───────────────────────────────────────────

@router.get("/users/{username}", response_model=list[AttendanceRecordOut])
async def user_attendance(
    username: str,
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    user: User = Depends(require_capability("attendance:read_all")),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.list_user_attendance(
        db, username, from_date, to_date,
    )
