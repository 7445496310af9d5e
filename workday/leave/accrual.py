"""Monthly leave accrual.

Every non-owner earns ``ACCRUAL_PER_MONTH`` for each calendar month from their
join month up to and including the current month. ``last_accrual_month`` is
the durable checkpoint: months up to it have already been credited, so the
engine can be re-run any number of times (for instance on every restart) and
only ever credits months it has not seen.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workday.app_settings.service import SettingsService
from workday.common.audit import create_audit_entry
from workday.common.clock import month_key
from workday.common.constants import ACCRUAL_PER_MONTH, UserRole
from workday.users.models import User

logger = logging.getLogger(__name__)


def _parse_month(raw: Optional[str]) -> Optional[tuple[int, int]]:
    """``YYYY-MM`` → (year, month); None for missing or malformed values."""
    if not raw:
        return None
    try:
        year_s, month_s = raw.strip().split("-")
        year, month = int(year_s), int(month_s)
    except ValueError:
        return None
    if not 1 <= month <= 12:
        return None
    return year, month


def _next_month(ym: tuple[int, int]) -> tuple[int, int]:
    year, month = ym
    return (year + 1, 1) if month == 12 else (year, month + 1)


def months_to_accrue(
    join_date: date,
    last_accrual_month: Optional[str],
    current_month: str,
) -> int:
    """Number of months still owed to a user as of *current_month*.

    Months from the join month through *current_month* inclusive are owed;
    months up to and including the checkpoint have been paid already. A
    malformed checkpoint is treated as absent.
    """
    current = _parse_month(current_month)
    if current is None:
        raise ValueError(f"current_month must be YYYY-MM, got {current_month!r}")

    join = (join_date.year, join_date.month)
    checkpoint = _parse_month(last_accrual_month)

    cursor = join
    if checkpoint is not None:
        cursor = max(join, _next_month(checkpoint))

    count = 0
    while cursor <= current:
        count += 1
        cursor = _next_month(cursor)
    return count


def projected_balance(user: User, today: date) -> Decimal:
    """Balance the user would have after accrual catch-up, without writing."""
    balance = Decimal(user.leave_balance or 0)
    if user.role is UserRole.owner:
        return balance
    owed = months_to_accrue(user.join_date, user.last_accrual_month, month_key(today))
    return balance + owed * ACCRUAL_PER_MONTH


async def accrue_for_user(db: AsyncSession, user: User, today: date) -> Decimal:
    """Credit any owed months to *user* and advance the checkpoint.

    Balance and checkpoint are written by one conditional UPDATE keyed on the
    checkpoint value that was read, so two concurrent catch-ups credit once.
    Returns the amount credited (zero when nothing was owed).
    """
    if user.role is UserRole.owner:
        return Decimal("0")

    current = month_key(today)
    count = months_to_accrue(user.join_date, user.last_accrual_month, current)
    if count == 0:
        return Decimal("0")

    credit = count * ACCRUAL_PER_MONTH
    previous = user.last_accrual_month
    old_balance = Decimal(user.leave_balance or 0)

    guard = (
        User.last_accrual_month.is_(None)
        if previous is None
        else User.last_accrual_month == previous
    )
    result = await db.execute(
        update(User)
        .where(User.username == user.username, guard)
        .values(
            leave_balance=User.leave_balance + credit,
            last_accrual_month=current,
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(user)

    if result.rowcount != 1:
        logger.info("Accrual for %s already applied elsewhere", user.username)
        return Decimal("0")

    await create_audit_entry(
        db,
        action="accrue",
        entity_type="user",
        entity_id=user.username,
        new_values={
            "months": count,
            "credited": str(credit),
            "balance": str(user.leave_balance),
            "last_accrual_month": current,
        },
        old_values={
            "balance": str(old_balance),
            "last_accrual_month": previous,
        },
    )
    logger.info(
        "Accrued %s leave(s) for %s (%d month(s)); new balance %s",
        credit, user.username, count, user.leave_balance,
    )
    return credit


async def run_startup_accrual(
    session_factory: async_sessionmaker[AsyncSession],
    today: Optional[date] = None,
) -> dict[str, Decimal]:
    """Bring every active non-owner up to date, one transaction per user.

    A failure for one user is logged and does not stop the others.
    Returns username → amount credited for the users that were processed.
    """
    async with session_factory() as db:
        if today is None:
            snap = await SettingsService.snapshot(db)
            today = snap.effective_date()
        result = await db.execute(
            select(User.username)
            .where(User.role != UserRole.owner, User.is_active.is_(True))
            .order_by(User.username)
        )
        usernames = list(result.scalars().all())

    credited: dict[str, Decimal] = {}
    failures = 0
    for username in usernames:
        try:
            async with session_factory() as db:
                async with db.begin():
                    user = await db.get(User, username)
                    if user is None:
                        continue
                    credited[username] = await accrue_for_user(db, user, today)
        except Exception:
            failures += 1
            logger.exception("Startup accrual failed for %s", username)

    logger.info(
        "Startup accrual for %s completed: %d user(s), %d failure(s)",
        month_key(today), len(credited), failures,
    )
    return credited
