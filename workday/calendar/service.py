"""Off-day resolver and calendar maintenance.

``OffDayResolver`` answers "is this date off, and why?" by looking up the
ad-hoc and holiday tables and handing the matches to ``classify``. The
maintenance methods (ad-hoc offs, holidays) are owner-only at the HTTP layer.
"""

from __future__ import annotations

import calendar as _calendar
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workday.app_settings.service import SettingsService
from workday.calendar.models import AdHocOff, Holiday
from workday.calendar.rules import (
    OffDayKind,
    OffDayVerdict,
    WeeklyOffMode,
    classify,
    describe_mode,
    is_weekly_off,
    month_day,
)
from workday.common.audit import create_audit_entry
from workday.common.clock import parse_iso_date
from workday.common.constants import MAX_REASON_LENGTH
from workday.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 366


async def _mode(
    db: AsyncSession, weekly_off_mode: Optional[WeeklyOffMode],
) -> WeeklyOffMode:
    if weekly_off_mode is not None:
        return weekly_off_mode
    snap = await SettingsService.snapshot(db)
    return snap.weekly_off_mode


class OffDayResolver:
    """Async lookups over ``ad_hoc_offs`` / ``holidays`` plus maintenance."""

    # ── Resolution ──────────────────────────────────────────────────

    @staticmethod
    async def resolve(
        db: AsyncSession,
        target_date: date,
        *,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> OffDayVerdict:
        """Classify one date. Lookups stop at the first source that matches."""
        mode = await _mode(db, weekly_off_mode)

        ad_hoc = (
            await db.execute(select(AdHocOff).where(AdHocOff.date == target_date))
        ).scalars().first()
        if ad_hoc is not None:
            return classify(
                target_date, mode, is_ad_hoc=True, ad_hoc_reason=ad_hoc.reason,
            )

        one_off = (
            await db.execute(
                select(Holiday.name).where(Holiday.date == target_date).limit(1)
            )
        ).scalar()
        if one_off is not None:
            return classify(target_date, mode, one_off_holiday=one_off)

        recurring = (
            await db.execute(
                select(Holiday.name)
                .where(Holiday.month_day == month_day(target_date))
                .limit(1)
            )
        ).scalar()
        return classify(target_date, mode, recurring_holiday=recurring)

    @staticmethod
    async def resolve_raw(
        db: AsyncSession,
        raw: object,
        *,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> OffDayVerdict:
        """Like ``resolve`` but for untrusted input; malformed dates are not off."""
        parsed = parse_iso_date(raw)
        if parsed is None:
            logger.debug("resolve_raw: unparsable date %r", raw)
            return OffDayVerdict(None, OffDayKind.not_off)
        return await OffDayResolver.resolve(
            db, parsed, weekly_off_mode=weekly_off_mode,
        )

    @staticmethod
    async def resolve_range(
        db: AsyncSession,
        start: date,
        end: date,
        *,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> list[OffDayVerdict]:
        """Classify every date in ``[start, end]``.

        The ad-hoc and holiday rows are loaded once for the whole range.
        """
        if start > end:
            raise ValidationException(
                {"dates": ["Start date must be on or before end date."]}
            )
        if (end - start).days >= MAX_RANGE_DAYS:
            raise ValidationException(
                {"dates": [f"Range may span at most {MAX_RANGE_DAYS} days."]}
            )

        mode = await _mode(db, weekly_off_mode)

        ad_hoc_rows = await db.execute(
            select(AdHocOff.date, AdHocOff.reason).where(
                AdHocOff.date >= start, AdHocOff.date <= end,
            )
        )
        ad_hoc = {d: reason for d, reason in ad_hoc_rows.all()}

        holiday_rows = (
            await db.execute(select(Holiday).order_by(Holiday.id))
        ).scalars().all()
        by_date: dict[date, str] = {}
        by_month_day: dict[str, str] = {}
        for h in holiday_rows:
            if h.date is not None:
                by_date.setdefault(h.date, h.name)
            if h.month_day is not None:
                by_month_day.setdefault(h.month_day, h.name)

        verdicts: list[OffDayVerdict] = []
        current = start
        while current <= end:
            verdicts.append(
                classify(
                    current,
                    mode,
                    is_ad_hoc=current in ad_hoc,
                    ad_hoc_reason=ad_hoc.get(current),
                    one_off_holiday=by_date.get(current),
                    recurring_holiday=by_month_day.get(month_day(current)),
                )
            )
            current += timedelta(days=1)
        return verdicts

    @staticmethod
    async def month_calendar(
        db: AsyncSession,
        year: int,
        month: int,
        *,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> list[OffDayVerdict]:
        """Every day of one month, classified."""
        if not 1 <= month <= 12 or not 1 <= year <= 9999:
            raise ValidationException({"month": ["Invalid year or month."]})
        last_day = _calendar.monthrange(year, month)[1]
        return await OffDayResolver.resolve_range(
            db,
            date(year, month, 1),
            date(year, month, last_day),
            weekly_off_mode=weekly_off_mode,
        )

    # ── Ad-hoc offs ─────────────────────────────────────────────────

    @staticmethod
    async def declare_ad_hoc_off(
        db: AsyncSession,
        off_date: date,
        reason: Optional[str],
        *,
        actor: str,
        today: date,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> AdHocOff:
        """Declare a one-time day off at least one day ahead."""
        if off_date <= today:
            raise ValidationException(
                {"date": ["An ad-hoc off must be declared at least one day in advance."]}
            )

        mode = await _mode(db, weekly_off_mode)
        if is_weekly_off(off_date, mode):
            raise ValidationException(
                {"date": [f"{off_date.isoformat()} is already a weekly off ({describe_mode(mode)})."]}
            )

        clean_reason = (reason or "").strip() or None
        if clean_reason and len(clean_reason) > MAX_REASON_LENGTH:
            raise ValidationException(
                {"reason": [f"Reason must be at most {MAX_REASON_LENGTH} characters."]}
            )

        existing = (
            await db.execute(select(AdHocOff.id).where(AdHocOff.date == off_date))
        ).scalar()
        if existing is not None:
            raise ConflictError(
                "date", f"{off_date.isoformat()} is already declared as an ad-hoc off.",
            )

        off = AdHocOff(date=off_date, reason=clean_reason, created_by=actor)
        db.add(off)
        await db.flush()

        await create_audit_entry(
            db,
            action="declare",
            entity_type="ad_hoc_off",
            entity_id=str(off.id),
            actor=actor,
            new_values={"date": off_date.isoformat(), "reason": clean_reason},
        )
        logger.info("Ad-hoc off declared for %s by %s", off_date, actor)
        return off

    @staticmethod
    async def delete_ad_hoc_off(
        db: AsyncSession, off_id: int, *, actor: str,
    ) -> None:
        off = await db.get(AdHocOff, off_id)
        if off is None:
            raise NotFoundException("AdHocOff", off_id)

        old = {"date": off.date.isoformat(), "reason": off.reason}
        await db.delete(off)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="ad_hoc_off",
            entity_id=str(off_id),
            actor=actor,
            old_values=old,
        )
        logger.info("Ad-hoc off %s (%s) deleted by %s", off_id, old["date"], actor)

    @staticmethod
    async def list_ad_hoc_offs(
        db: AsyncSession, from_date: Optional[date] = None,
    ) -> list[AdHocOff]:
        query = select(AdHocOff).order_by(AdHocOff.date)
        if from_date is not None:
            query = query.where(AdHocOff.date >= from_date)
        result = await db.execute(query)
        return list(result.scalars().all())

    # ── Holidays ────────────────────────────────────────────────────

    @staticmethod
    async def create_holiday(
        db: AsyncSession,
        name: str,
        holiday_date: date,
        *,
        recurring: bool,
        actor: str,
        today: date,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> Holiday:
        """Add a holiday; recurring ones repeat on the same month-day yearly."""
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationException({"name": ["Holiday name is required."]})

        if not recurring and holiday_date < today:
            raise ValidationException(
                {"date": ["A one-off holiday cannot be in the past."]}
            )

        mode = await _mode(db, weekly_off_mode)
        if is_weekly_off(holiday_date, mode):
            raise ValidationException(
                {"date": [f"{holiday_date.isoformat()} is already a weekly off ({describe_mode(mode)})."]}
            )

        md = month_day(holiday_date) if recurring else None
        clash = select(Holiday.id).where(Holiday.date == holiday_date)
        if md is not None:
            clash = select(Holiday.id).where(
                (Holiday.date == holiday_date) | (Holiday.month_day == md)
            )
        if (await db.execute(clash.limit(1))).scalar() is not None:
            raise ConflictError(
                "date", f"A holiday already exists on {holiday_date.isoformat()}.",
            )

        holiday = Holiday(name=clean_name, date=holiday_date, month_day=md)
        db.add(holiday)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="holiday",
            entity_id=str(holiday.id),
            actor=actor,
            new_values={
                "name": clean_name,
                "date": holiday_date.isoformat(),
                "month_day": md,
            },
        )
        logger.info(
            "Holiday %r created for %s (recurring=%s) by %s",
            clean_name, holiday_date, recurring, actor,
        )
        return holiday

    @staticmethod
    async def delete_holiday(
        db: AsyncSession, holiday_id: int, *, actor: str,
    ) -> None:
        holiday = await db.get(Holiday, holiday_id)
        if holiday is None:
            raise NotFoundException("Holiday", holiday_id)

        old = {
            "name": holiday.name,
            "date": holiday.date.isoformat() if holiday.date else None,
            "month_day": holiday.month_day,
        }
        await db.delete(holiday)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="holiday",
            entity_id=str(holiday_id),
            actor=actor,
            old_values=old,
        )
        logger.info("Holiday %s (%s) deleted by %s", holiday_id, old["name"], actor)

    @staticmethod
    async def list_holidays(db: AsyncSession) -> list[Holiday]:
        result = await db.execute(
            select(Holiday).order_by(Holiday.month_day, Holiday.date, Holiday.id)
        )
        return list(result.scalars().all())
