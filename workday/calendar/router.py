"""Calendar router — off-day queries, ad-hoc offs, holidays."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from workday.auth.dependencies import (
    RequestContext,
    get_current_user,
    get_request_context,
    require_capability,
)
from workday.calendar.schemas import (
    AdHocOffCreate,
    AdHocOffOut,
    HolidayCreate,
    HolidayOut,
    OffDayOut,
)
from workday.calendar.service import OffDayResolver
from workday.database import get_db
from workday.users.models import User

router = APIRouter(prefix="", tags=["calendar"])


# ── Off-day queries ─────────────────────────────────────────────────

@router.get("/off-day", response_model=OffDayOut)
async def off_day(
    date_str: Optional[str] = Query(None, alias="date", description="YYYY-MM-DD; defaults to today"),
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Classify one date. A malformed date is reported as a working day."""
    mode = ctx.settings.weekly_off_mode
    if date_str is None:
        verdict = await OffDayResolver.resolve(db, ctx.today, weekly_off_mode=mode)
    else:
        verdict = await OffDayResolver.resolve_raw(db, date_str, weekly_off_mode=mode)
    return OffDayOut.from_verdict(verdict)


@router.get("/range", response_model=list[OffDayOut])
async def off_day_range(
    start: date = Query(...),
    end: date = Query(...),
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    verdicts = await OffDayResolver.resolve_range(
        db, start, end, weekly_off_mode=ctx.settings.weekly_off_mode,
    )
    return [OffDayOut.from_verdict(v) for v in verdicts]


@router.get("/month", response_model=list[OffDayOut])
async def month(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Every day of a month (defaults to the current one)."""
    verdicts = await OffDayResolver.month_calendar(
        db,
        year or ctx.today.year,
        month or ctx.today.month,
        weekly_off_mode=ctx.settings.weekly_off_mode,
    )
    return [OffDayOut.from_verdict(v) for v in verdicts]


# ── Ad-hoc offs ─────────────────────────────────────────────────────

@router.get("/ad-hoc", response_model=list[AdHocOffOut])
async def list_ad_hoc(
    upcoming: bool = Query(False, description="Only offs from today onwards"),
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await OffDayResolver.list_ad_hoc_offs(
        db, from_date=ctx.today if upcoming else None,
    )


@router.post("/ad-hoc", response_model=AdHocOffOut, status_code=201)
async def declare_ad_hoc(
    body: AdHocOffCreate,
    user: User = Depends(require_capability("calendar:configure")),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await OffDayResolver.declare_ad_hoc_off(
        db,
        body.date,
        body.reason,
        actor=user.username,
        today=ctx.today,
        weekly_off_mode=ctx.settings.weekly_off_mode,
    )


@router.delete("/ad-hoc/{off_id}", status_code=204)
async def delete_ad_hoc(
    off_id: int,
    user: User = Depends(require_capability("calendar:configure")),
    db: AsyncSession = Depends(get_db),
):
    await OffDayResolver.delete_ad_hoc_off(db, off_id, actor=user.username)


# ── Holidays ────────────────────────────────────────────────────────

@router.get("/holidays", response_model=list[HolidayOut])
async def list_holidays(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OffDayResolver.list_holidays(db)


@router.post("/holidays", response_model=HolidayOut, status_code=201)
async def create_holiday(
    body: HolidayCreate,
    user: User = Depends(require_capability("calendar:configure")),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await OffDayResolver.create_holiday(
        db,
        body.name,
        body.date,
        recurring=body.recurring,
        actor=user.username,
        today=ctx.today,
        weekly_off_mode=ctx.settings.weekly_off_mode,
    )


@router.delete("/holidays/{holiday_id}", status_code=204)
async def delete_holiday(
    holiday_id: int,
    user: User = Depends(require_capability("calendar:configure")),
    db: AsyncSession = Depends(get_db),
):
    await OffDayResolver.delete_holiday(db, holiday_id, actor=user.username)
