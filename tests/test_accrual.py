"""Accrual engine test suite — month counting, checkpointing, startup run."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from workday.app_settings.service import SettingsService
from workday.common.audit import AuditTrail
from workday.common.constants import UserRole
from workday.leave import accrual
from workday.leave.accrual import (
    accrue_for_user,
    months_to_accrue,
    projected_balance,
    run_startup_accrual,
)
from workday.users.models import User
from tests.conftest import TestSessionFactory, make_user


class TestMonthsToAccrue:

    def test_join_month_through_current_month(self):
        assert months_to_accrue(date(2025, 1, 1), None, "2025-04") == 4

    def test_join_mid_month_still_earns_that_month(self):
        assert months_to_accrue(date(2025, 1, 31), None, "2025-01") == 1

    def test_checkpoint_month_already_paid(self):
        assert months_to_accrue(date(2025, 1, 1), "2025-04", "2025-04") == 0
        assert months_to_accrue(date(2025, 1, 1), "2025-02", "2025-04") == 2

    def test_year_boundary(self):
        assert months_to_accrue(date(2024, 11, 15), "2024-12", "2025-02") == 2

    def test_future_join_owes_nothing(self):
        assert months_to_accrue(date(2026, 1, 1), None, "2025-12") == 0

    def test_checkpoint_before_join_is_ignored(self):
        assert months_to_accrue(date(2025, 3, 1), "2024-12", "2025-04") == 2

    def test_malformed_checkpoint_treated_as_absent(self):
        assert months_to_accrue(date(2025, 1, 1), "2025-13", "2025-03") == 3

    def test_bad_current_month_raises(self):
        with pytest.raises(ValueError):
            months_to_accrue(date(2025, 1, 1), None, "2025/03")

    @pytest.mark.parametrize("split", ["2025-01", "2025-02", "2025-03", "2025-05"])
    def test_total_independent_of_run_schedule(self, split):
        joined = date(2025, 1, 1)
        first = months_to_accrue(joined, None, split)
        second = months_to_accrue(joined, split, "2025-06")
        assert first + second == months_to_accrue(joined, None, "2025-06") == 6


class TestAccrueForUser:

    async def test_four_months_credit_eight(self, db):
        user = await make_user(db, "atul", join_date=date(2025, 1, 1))

        credited = await accrue_for_user(db, user, date(2025, 4, 15))
        assert credited == Decimal("8")
        assert user.leave_balance == Decimal("8")
        assert user.last_accrual_month == "2025-04"

    async def test_second_run_same_month_credits_nothing(self, db):
        user = await make_user(db, "atul", join_date=date(2025, 1, 1))
        await accrue_for_user(db, user, date(2025, 4, 1))

        assert await accrue_for_user(db, user, date(2025, 4, 30)) == Decimal("0")
        assert user.leave_balance == Decimal("8")

    async def test_catch_up_after_gap(self, db):
        user = await make_user(
            db, "kamini",
            join_date=date(2025, 1, 1),
            leave_balance=Decimal("3.5"),
            last_accrual_month="2025-02",
        )
        credited = await accrue_for_user(db, user, date(2025, 5, 2))
        assert credited == Decimal("6")
        assert user.leave_balance == Decimal("9.5")
        assert user.last_accrual_month == "2025-05"

    async def test_owner_never_accrues(self, db):
        owner = await make_user(db, "smita", role=UserRole.owner, join_date=date(2025, 1, 1))
        assert await accrue_for_user(db, owner, date(2025, 6, 1)) == Decimal("0")
        assert owner.leave_balance == Decimal("0")
        assert owner.last_accrual_month is None

    async def test_stale_checkpoint_loses_the_race(self, db):
        user = await make_user(db, "nazmul", join_date=date(2025, 1, 1))

        # Another worker advances the checkpoint after we read the row
        async with TestSessionFactory() as other:
            fresh = await other.get(User, "nazmul")
            await accrue_for_user(other, fresh, date(2025, 3, 1))
            await other.commit()

        credited = await accrue_for_user(db, user, date(2025, 3, 1))
        assert credited == Decimal("0")
        assert user.leave_balance == Decimal("6")

    async def test_writes_audit_entry(self, db):
        user = await make_user(db, "atul", join_date=date(2025, 1, 1))
        await accrue_for_user(db, user, date(2025, 2, 1))

        entry = (
            await db.execute(select(AuditTrail).where(AuditTrail.action == "accrue"))
        ).scalars().one()
        assert entry.entity_id == "atul"
        assert entry.actor is None
        assert entry.new_values["months"] == 2

    async def test_projection_matches_persisted_catch_up(self, db):
        user = await make_user(
            db, "manuj", join_date=date(2025, 1, 1), leave_balance=Decimal("1"),
        )
        projected = projected_balance(user, date(2025, 3, 10))
        assert user.leave_balance == Decimal("1")

        await accrue_for_user(db, user, date(2025, 3, 10))
        assert user.leave_balance == projected == Decimal("7")


class TestStartupAccrual:

    async def test_credits_every_active_non_owner(self, db):
        await make_user(db, "smita", role=UserRole.owner, join_date=date(2025, 1, 1))
        await make_user(db, "dinesh", role=UserRole.manager, join_date=date(2025, 1, 1))
        await make_user(db, "atul", join_date=date(2025, 3, 1))
        await make_user(db, "gone", join_date=date(2025, 1, 1), is_active=False)

        credited = await run_startup_accrual(TestSessionFactory, today=date(2025, 4, 5))
        assert credited == {"atul": Decimal("4"), "dinesh": Decimal("8")}

        again = await run_startup_accrual(TestSessionFactory, today=date(2025, 4, 28))
        assert again == {"atul": Decimal("0"), "dinesh": Decimal("0")}

        db.expire_all()
        dinesh = await db.get(User, "dinesh")
        assert dinesh.leave_balance == Decimal("8")
        assert dinesh.last_accrual_month == "2025-04"

    async def test_uses_test_date_override_when_no_date_given(self, db):
        await SettingsService.set_setting(db, "test_date_override", "2025-02-10")
        await make_user(db, "atul", join_date=date(2025, 1, 1))

        credited = await run_startup_accrual(TestSessionFactory)
        assert credited == {"atul": Decimal("4")}

    async def test_one_failure_does_not_stop_the_rest(self, db, monkeypatch, caplog):
        await make_user(db, "atul", join_date=date(2025, 1, 1))
        await make_user(db, "dinesh", role=UserRole.manager, join_date=date(2025, 1, 1))
        await make_user(db, "kamini", join_date=date(2025, 2, 1))

        real_accrue = accrual.accrue_for_user

        async def flaky_accrue(session, user, today):
            if user.username == "dinesh":
                raise RuntimeError("row locked")
            return await real_accrue(session, user, today)

        monkeypatch.setattr(accrual, "accrue_for_user", flaky_accrue)

        credited = await run_startup_accrual(TestSessionFactory, today=date(2025, 3, 1))
        assert credited == {"atul": Decimal("6"), "kamini": Decimal("4")}
        assert "Startup accrual failed for dinesh" in caplog.text

        db.expire_all()
        dinesh = await db.get(User, "dinesh")
        assert dinesh.leave_balance == Decimal("0")
        assert dinesh.last_accrual_month is None
