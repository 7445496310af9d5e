"""Leave service — application validation, resolution, withdrawal, balances.

All methods take ``today`` / ``now`` from the caller; nothing here reads the
clock. Validation performs every read before the single insert, so a rejected
application writes nothing.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workday.attendance.models import AttendanceRecord
from workday.calendar.rules import WeeklyOffMode
from workday.calendar.service import OffDayResolver
from workday.common.audit import create_audit_entry
from workday.common.clock import parse_iso_date
from workday.common.constants import (
    CAPABILITIES,
    MAX_REASON_LENGTH,
    LeaveAction,
    LeaveStatus,
    LeaveType,
    can,
)
from workday.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from workday.common.pagination import PaginatedResponse, PaginationParams, paginate
from workday.leave.accrual import accrue_for_user, projected_balance
from workday.leave.models import LeaveRequest, requested_amount
from workday.leave.schemas import LeaveApply, LeaveBalanceOut, LeaveRequestOut
from workday.users.models import User

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


class LeaveService:
    """Async leave operations."""

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        user: User,
        data: LeaveApply,
        *,
        today: date,
        weekly_off_mode: Optional[WeeklyOffMode] = None,
    ) -> LeaveRequest:
        """Validate and persist a leave application as pending.

        Checks run in order and stop at the first failure; the error key
        names the rule: ``dates``, ``leave_type``, ``reason``,
        ``attendance``, ``off_day``, ``overlap``, ``balance``.
        """
        if not can(user.role, "leave:request"):
            raise ForbiddenException(f"A {user.role.value} does not request leave.")

        # ── 1. dates ────────────────────────────────────────────────
        start = parse_iso_date(data.start_date)
        end = parse_iso_date(data.end_date)
        if start is None or end is None:
            raise ValidationException(
                {"dates": ["Start and end dates are required in YYYY-MM-DD format."]}
            )
        if start > end:
            raise ValidationException(
                {"dates": ["Start date must be on or before end date."]}
            )

        # ── 2. half-day is a single date ────────────────────────────
        if data.leave_type is LeaveType.half and start != end:
            raise ValidationException(
                {"leave_type": ["A half-day leave must start and end on the same date."]}
            )

        # ── 3. reason ───────────────────────────────────────────────
        reason = (data.reason or "").strip()
        if not reason:
            raise ValidationException({"reason": ["A reason is required."]})
        if len(reason) > MAX_REASON_LENGTH:
            raise ValidationException(
                {"reason": [f"Reason must be at most {MAX_REASON_LENGTH} characters."]}
            )

        # ── 4. no attendance on a full-day leave ────────────────────
        if data.leave_type is LeaveType.full:
            attended = (
                await db.execute(
                    select(AttendanceRecord.date)
                    .where(
                        AttendanceRecord.username == user.username,
                        AttendanceRecord.date >= start,
                        AttendanceRecord.date <= end,
                        AttendanceRecord.check_in_at.is_not(None),
                    )
                    .order_by(AttendanceRecord.date)
                    .limit(1)
                )
            ).scalar()
            if attended is not None:
                raise ValidationException(
                    {"attendance": [
                        f"You already checked in on {attended.isoformat()}; "
                        "full-day leave cannot cover a day you attended."
                    ]}
                )

        # ── 5. no off-days in range ─────────────────────────────────
        verdicts = await OffDayResolver.resolve_range(
            db, start, end, weekly_off_mode=weekly_off_mode,
        )
        off = next((v for v in verdicts if v.is_off), None)
        if off is not None:
            raise ValidationException(
                {"off_day": [f"Leave cannot be requested: {off.describe()}."]}
            )

        # ── 6. no overlap with a live request ───────────────────────
        clash = (
            await db.execute(
                select(LeaveRequest)
                .where(
                    LeaveRequest.username == user.username,
                    LeaveRequest.status.in_(_ACTIVE_STATUSES),
                    LeaveRequest.withdrawn.is_(False),
                    LeaveRequest.start_date <= end,
                    LeaveRequest.end_date >= start,
                )
                .limit(1)
            )
        ).scalars().first()
        if clash is not None:
            raise ValidationException(
                {"overlap": [
                    f"Overlaps your {clash.status.value} leave request #{clash.id} "
                    f"({clash.start_date.isoformat()} to {clash.end_date.isoformat()})."
                ]}
            )

        # ── 7. balance ──────────────────────────────────────────────
        amount = requested_amount(data.leave_type, start, end)
        available = projected_balance(user, today)
        if available < amount:
            raise ValidationException(
                {"balance": [
                    f"Insufficient leave balance. Available: {available}, "
                    f"Requested: {amount}."
                ]}
            )

        # ── Persist ─────────────────────────────────────────────────
        leave = LeaveRequest(
            username=user.username,
            start_date=start,
            end_date=end,
            reason=reason[:MAX_REASON_LENGTH],
            status=LeaveStatus.pending,
            leave_type=data.leave_type,
            is_backdated=start < today,
            withdrawn=False,
        )
        db.add(leave)
        await db.flush()

        await create_audit_entry(
            db,
            action="apply",
            entity_type="leave_request",
            entity_id=str(leave.id),
            actor=user.username,
            new_values={
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
                "leave_type": data.leave_type.value,
                "amount": str(amount),
                "is_backdated": leave.is_backdated,
            },
        )
        logger.info(
            "%s applied for %s leave %s to %s (#%s)",
            user.username, data.leave_type.value, start, end, leave.id,
        )
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Resolve (approve / reject)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def resolve_leave(
        db: AsyncSession,
        leave_id: int,
        action: LeaveAction,
        *,
        actor: User,
        today: date,
        now: datetime,
    ) -> LeaveRequest:
        """Approve or reject a pending request, exactly once.

        The status change is a conditional UPDATE on ``status = 'pending'``
        and ``withdrawn = false``; zero affected rows means someone else got
        there first. Approval then deducts the balance with a guarded UPDATE.
        Both writes share the caller's transaction, which must be rolled back
        when this raises.
        """
        leave = await db.get(LeaveRequest, leave_id)
        if leave is None:
            raise NotFoundException("LeaveRequest", leave_id)

        requester = await db.get(User, leave.username)
        if requester is None:
            raise NotFoundException("User", leave.username)
        if requester.username == actor.username:
            raise ForbiddenException("You cannot resolve your own leave request.")
        if not can(actor.role, "leave:resolve", requester.role):
            raise ForbiddenException(
                f"A {actor.role.value} cannot resolve leave requested by a {requester.role.value}."
            )

        if leave.withdrawn or leave.status is LeaveStatus.withdrawn:
            raise ConflictError("status", "This leave request was withdrawn by its requester.")
        if leave.status is not LeaveStatus.pending:
            raise ConflictError(
                "status", f"This leave request is already {leave.status.value}.",
            )

        amount = leave.amount
        if action is LeaveAction.approve:
            await accrue_for_user(db, requester, today)
            if Decimal(requester.leave_balance) < amount:
                raise ValidationException(
                    {"balance": [
                        f"Insufficient leave balance for {requester.username}. "
                        f"Available: {requester.leave_balance}, Requested: {amount}."
                    ]}
                )

        new_status = (
            LeaveStatus.approved if action is LeaveAction.approve else LeaveStatus.rejected
        )
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave_id,
                LeaveRequest.status == LeaveStatus.pending,
                LeaveRequest.withdrawn.is_(False),
            )
            .values(status=new_status, approved_by=actor.username, resolved_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(
                "status", "This leave request was resolved or withdrawn concurrently.",
            )

        old_balance = Decimal(requester.leave_balance)
        if action is LeaveAction.approve:
            deducted = await db.execute(
                update(User)
                .where(User.username == requester.username, User.leave_balance >= amount)
                .values(leave_balance=User.leave_balance - amount)
                .execution_options(synchronize_session=False)
            )
            if deducted.rowcount != 1:
                raise ValidationException(
                    {"balance": [f"Insufficient leave balance for {requester.username}."]}
                )
            await db.refresh(requester)

        await db.refresh(leave)

        await create_audit_entry(
            db,
            action=new_status.value,
            entity_type="leave_request",
            entity_id=str(leave.id),
            actor=actor.username,
            old_values={"status": LeaveStatus.pending.value, "balance": str(old_balance)},
            new_values={"status": new_status.value, "balance": str(requester.leave_balance)},
        )
        logger.info(
            "%s %s leave #%s for %s (%s to %s, %s day(s))",
            actor.username, new_status.value, leave.id, requester.username,
            leave.start_date, leave.end_date, amount,
        )
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Withdraw
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def withdraw_leave(
        db: AsyncSession,
        leave_id: int,
        *,
        user: User,
        now: datetime,
        automatic: bool = False,
    ) -> LeaveRequest:
        """Withdraw one of the caller's own pending requests.

        ``automatic`` marks withdrawals made by a confirmed check-in.
        """
        leave = await db.get(LeaveRequest, leave_id)
        if leave is None:
            raise NotFoundException("LeaveRequest", leave_id)
        if leave.username != user.username:
            raise ForbiddenException("You can only withdraw your own leave requests.")
        if leave.withdrawn or leave.status is LeaveStatus.withdrawn:
            raise ConflictError("status", "This leave request is already withdrawn.")
        if leave.status is not LeaveStatus.pending:
            raise ConflictError(
                "status",
                f"Only pending requests can be withdrawn; this one is {leave.status.value}.",
            )

        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave_id,
                LeaveRequest.status == LeaveStatus.pending,
                LeaveRequest.withdrawn.is_(False),
            )
            .values(status=LeaveStatus.withdrawn, withdrawn=True, withdrawn_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(
                "status", "This leave request was resolved or withdrawn concurrently.",
            )
        await db.refresh(leave)

        action = "auto_withdraw" if automatic else "withdraw"
        await create_audit_entry(
            db,
            action=action,
            entity_type="leave_request",
            entity_id=str(leave.id),
            actor=user.username,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.withdrawn.value, "withdrawn_at": now.isoformat()},
        )
        logger.info("%s: %s leave #%s", action, user.username, leave.id)
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def full_day_leaves_on(
        db: AsyncSession,
        username: str,
        day: date,
        statuses: Iterable[LeaveStatus],
    ) -> Sequence[LeaveRequest]:
        """Live full-day requests of *username* covering *day*."""
        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.username == username,
                LeaveRequest.leave_type == LeaveType.full,
                LeaveRequest.status.in_(list(statuses)),
                LeaveRequest.withdrawn.is_(False),
                LeaveRequest.start_date <= day,
                LeaveRequest.end_date >= day,
            )
            .order_by(LeaveRequest.id)
        )
        return result.scalars().all()

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        user: User,
        *,
        today: date,
    ) -> LeaveBalanceOut:
        """Catch up accrual, then report balance and pending commitments."""
        await accrue_for_user(db, user, today)

        pending_rows = (
            await db.execute(
                select(LeaveRequest).where(
                    LeaveRequest.username == user.username,
                    LeaveRequest.status == LeaveStatus.pending,
                    LeaveRequest.withdrawn.is_(False),
                )
            )
        ).scalars().all()
        pending = sum((r.amount for r in pending_rows), Decimal("0"))
        balance = Decimal(user.leave_balance)

        return LeaveBalanceOut(
            username=user.username,
            balance=balance,
            pending=pending,
            available_after_pending=balance - pending,
            last_accrual_month=user.last_accrual_month,
        )

    @staticmethod
    async def list_my_leaves(
        db: AsyncSession,
        username: str,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> list[LeaveRequest]:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.username == username)
            .order_by(LeaveRequest.start_date.desc(), LeaveRequest.id.desc())
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def list_pending_for(db: AsyncSession, actor: User) -> list[LeaveRequest]:
        """Pending requests the actor is allowed to resolve, oldest start first."""
        targets = CAPABILITIES.get(actor.role, {}).get("leave:resolve")
        if not can(actor.role, "leave:resolve") or not targets:
            raise ForbiddenException("You cannot resolve leave requests.")

        result = await db.execute(
            select(LeaveRequest)
            .join(User, User.username == LeaveRequest.username)
            .where(
                LeaveRequest.status == LeaveStatus.pending,
                LeaveRequest.withdrawn.is_(False),
                User.role.in_(list(targets)),
                LeaveRequest.username != actor.username,
            )
            .order_by(LeaveRequest.start_date, LeaveRequest.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def leave_history(
        db: AsyncSession,
        params: PaginationParams,
        *,
        username: Optional[str] = None,
        status: Optional[LeaveStatus] = None,
    ) -> PaginatedResponse:
        """Every request, newest start first, optionally filtered."""
        query = select(LeaveRequest).order_by(
            LeaveRequest.start_date.desc(), LeaveRequest.id.desc(),
        )
        if username:
            query = query.where(LeaveRequest.username == username)
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        return await paginate(
            db, query, params, schema=LeaveRequestOut, model=LeaveRequest,
        )
