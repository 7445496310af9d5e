"""Attendance gate — check-in / check-out state machine per user per day.

    not_marked_in ──check-in──▶ marked_in ──check-out──▶ marked_out

Check-in is refused on off-days and on approved full-day leave. A pending
full-day leave for the day needs explicit confirmation; once confirmed it is
withdrawn in the same transaction that records the check-in.

Photos are stored before the row is written. A storage failure is logged and
the row records no photo, so a row never references a missing file and
storage trouble never blocks attendance.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workday.attendance.models import AttendanceRecord
from workday.attendance.schemas import (
    AttendanceRecordOut,
    AttendanceStatusOut,
    MarkRequest,
)
from workday.attendance.storage import (
    PhotoStorage,
    decode_photo,
    discard_photo,
    store_photo,
)
from workday.calendar.rules import WeeklyOffMode
from workday.calendar.schemas import OffDayOut
from workday.calendar.service import OffDayResolver
from workday.common.audit import create_audit_entry
from workday.common.constants import AttendanceState, LeaveStatus, can
from workday.common.exceptions import (
    ConfirmationRequired,
    ConflictError,
    ForbiddenException,
    ValidationException,
)
from workday.leave.models import LeaveRequest
from workday.leave.service import LeaveService
from workday.users.models import User
from workday.users.service import UserService

logger = logging.getLogger(__name__)

MAX_DATE_RANGE_DAYS = 366


def _utc(value: datetime) -> datetime:
    """Normalise to aware UTC; naive values read back from SQLite are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AttendanceService:
    """Async attendance operations."""

    # ── Gates ───────────────────────────────────────────────────────

    @staticmethod
    def _require_marker(user: User) -> None:
        if not can(user.role, "attendance:mark"):
            raise ForbiddenException(
                f"A {user.role.value} does not mark attendance."
            )

    @staticmethod
    async def _check_day_open(
        db: AsyncSession,
        user: User,
        today: date,
        weekly_off_mode: Optional[WeeklyOffMode],
    ) -> None:
        """Refuse when today is an off-day or covered by approved full-day leave."""
        verdict = await OffDayResolver.resolve(db, today, weekly_off_mode=weekly_off_mode)
        if verdict.is_off:
            raise ValidationException(
                {"off_day": [f"Attendance cannot be marked: {verdict.describe()}."]}
            )

        approved = await LeaveService.full_day_leaves_on(
            db, user.username, today, [LeaveStatus.approved],
        )
        if approved:
            raise ValidationException(
                {"leave": [
                    f"You are on approved full-day leave today (request #{approved[0].id})."
                ]}
            )

    @staticmethod
    async def _record_for(
        db: AsyncSession, username: str, day: date,
    ) -> Optional[AttendanceRecord]:
        result = await db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.username == username,
                AttendanceRecord.date == day,
            )
        )
        return result.scalars().first()

    # ── Check in ────────────────────────────────────────────────────

    @staticmethod
    async def check_in(
        db: AsyncSession,
        user: User,
        payload: MarkRequest,
        *,
        today: date,
        now: datetime,
        storage: PhotoStorage,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> tuple[AttendanceRecord, list[int]]:
        """Record today's check-in. Returns the record and any leave ids withdrawn."""
        AttendanceService._require_marker(user)
        await AttendanceService._check_day_open(db, user, today, weekly_off_mode)

        record = await AttendanceService._record_for(db, user.username, today)
        if record is not None and record.check_in_at is not None:
            raise ConflictError("attendance", "You have already checked in today.")

        pending = await LeaveService.full_day_leaves_on(
            db, user.username, today, [LeaveStatus.pending],
        )
        pending_ids = [leave.id for leave in pending]
        if pending_ids and not payload.confirm_withdraw:
            raise ConfirmationRequired(
                "You have a pending full-day leave for today. Checking in will "
                "withdraw it; resend with confirm_withdraw=true to proceed.",
                pending={"pending_leave_ids": pending_ids},
            )

        photo = decode_photo(payload.photo)

        # ── Writes ──────────────────────────────────────────────────
        for leave_id in pending_ids:
            await LeaveService.withdraw_leave(
                db, leave_id, user=user, now=now, automatic=True,
            )

        photo_ref = store_photo(
            storage, photo, f"attendance/{user.username}/{today.isoformat()}_in_{uuid.uuid4().hex}",
        )
        stamp = _utc(now)
        if record is None:
            record = AttendanceRecord(username=user.username, date=today)
            db.add(record)
        record.check_in_at = stamp
        record.check_in_latitude = payload.latitude
        record.check_in_longitude = payload.longitude
        record.check_in_photo = photo_ref

        try:
            await db.flush()
        except IntegrityError:
            discard_photo(storage, photo_ref)
            raise ConflictError("attendance", "You have already checked in today.")

        await create_audit_entry(
            db,
            action="check_in",
            entity_type="attendance_record",
            entity_id=str(record.id),
            actor=user.username,
            new_values={
                "date": today.isoformat(),
                "at": stamp.isoformat(),
                "photo": photo_ref,
                "withdrawn_leave_ids": pending_ids,
            },
        )
        if pending_ids:
            logger.info(
                "%s checked in on %s; auto-withdrew leave %s",
                user.username, today, pending_ids,
            )
        else:
            logger.info("%s checked in on %s", user.username, today)
        return record, pending_ids

    # ── Check out ───────────────────────────────────────────────────

    @staticmethod
    async def check_out(
        db: AsyncSession,
        user: User,
        payload: MarkRequest,
        *,
        today: date,
        now: datetime,
        storage: PhotoStorage,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> AttendanceRecord:
        """Record today's check-out against an existing check-in."""
        AttendanceService._require_marker(user)

        record = await AttendanceService._record_for(db, user.username, today)
        if record is None or record.check_in_at is None:
            raise ConflictError("attendance", "You have not checked in today.")
        if record.check_out_at is not None:
            raise ConflictError("attendance", "You have already checked out today.")

        await AttendanceService._check_day_open(db, user, today, weekly_off_mode)

        stamp = _utc(now)
        if stamp <= _utc(record.check_in_at):
            raise ValidationException(
                {"time": ["Check-out time must be after check-in time."]}
            )

        photo = decode_photo(payload.photo)
        photo_ref = store_photo(
            storage, photo, f"attendance/{user.username}/{today.isoformat()}_out_{uuid.uuid4().hex}",
        )

        record.check_out_at = stamp
        record.check_out_latitude = payload.latitude
        record.check_out_longitude = payload.longitude
        record.check_out_photo = photo_ref
        await db.flush()

        await create_audit_entry(
            db,
            action="check_out",
            entity_type="attendance_record",
            entity_id=str(record.id),
            actor=user.username,
            new_values={
                "date": today.isoformat(),
                "at": stamp.isoformat(),
                "photo": photo_ref,
            },
        )
        logger.info("%s checked out on %s", user.username, today)
        return record

    # ── Status ──────────────────────────────────────────────────────

    @staticmethod
    async def get_status(
        db: AsyncSession,
        user: User,
        *,
        today: date,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> AttendanceStatusOut:
        """Where the user stands today, plus what would block a check-in."""
        record = await AttendanceService._record_for(db, user.username, today)
        verdict = await OffDayResolver.resolve(db, today, weekly_off_mode=weekly_off_mode)
        leaves: list[LeaveRequest] = list(
            await LeaveService.full_day_leaves_on(
                db, user.username, today, [LeaveStatus.approved, LeaveStatus.pending],
            )
        )

        return AttendanceStatusOut(
            username=user.username,
            date=today,
            state=record.state if record is not None else AttendanceState.not_marked_in,
            record=AttendanceRecordOut.model_validate(record) if record is not None else None,
            off_day=OffDayOut.from_verdict(verdict),
            on_full_day_leave=any(leave.status is LeaveStatus.approved for leave in leaves),
            pending_leave_ids=[leave.id for leave in leaves if leave.status is LeaveStatus.pending],
        )

    # ── History ─────────────────────────────────────────────────────

    @staticmethod
    def _validate_date_range(
        from_date: Optional[date], to_date: Optional[date],
    ) -> None:
        if from_date is None or to_date is None:
            return
        if from_date > to_date:
            raise ValidationException(
                {"date_range": ["from_date must be before or equal to to_date."]}
            )
        if (to_date - from_date).days > MAX_DATE_RANGE_DAYS:
            raise ValidationException(
                {"date_range": [f"Date range cannot exceed {MAX_DATE_RANGE_DAYS} days."]}
            )

    @staticmethod
    async def list_my_attendance(
        db: AsyncSession,
        username: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[AttendanceRecord]:
        AttendanceService._validate_date_range(from_date, to_date)
        query = (
            select(AttendanceRecord)
            .where(AttendanceRecord.username == username)
            .order_by(AttendanceRecord.date.desc())
        )
        if from_date is not None:
            query = query.where(AttendanceRecord.date >= from_date)
        if to_date is not None:
            query = query.where(AttendanceRecord.date <= to_date)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def list_user_attendance(
        db: AsyncSession,
        username: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[AttendanceRecord]:
        """Admin view of one user's records; 404 for unknown users."""
        target = await UserService.get_user(db, username)
        return await AttendanceService.list_my_attendance(
            db, target.username, from_date, to_date,
        )
