"""Calendar test suite — weekly-off modes, precedence, resolver, maintenance, API."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from workday.app_settings.service import SettingsService
from workday.calendar.models import AdHocOff, Holiday
from workday.calendar.rules import (
    OffDayKind,
    WeeklyOffMode,
    classify,
    is_weekly_off,
    month_day,
    parse_weekly_off_mode,
    week_of_month,
)
from workday.calendar.service import OffDayResolver
from workday.common.audit import AuditTrail
from workday.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)
from tests.conftest import WORKDAY, auth_headers

# November 2025 starts on a Saturday: Saturdays fall on 1, 8, 15, 22, 29.
NOV_SATURDAYS = [date(2025, 11, d) for d in (1, 8, 15, 22, 29)]
NOV_SUNDAYS = [date(2025, 11, d) for d in (2, 9, 16, 23, 30)]


# ═════════════════════════════════════════════════════════════════════
# Pure rules
# ═════════════════════════════════════════════════════════════════════


class TestWeeklyOffModes:

    def test_second_saturday_is_off_under_mode_three(self):
        verdict = classify(date(2025, 11, 8), WeeklyOffMode.second_fourth_saturdays)
        assert verdict.kind is OffDayKind.weekly
        assert verdict.is_off

    def test_third_saturday_is_working_under_mode_three(self):
        verdict = classify(date(2025, 11, 15), WeeklyOffMode.second_fourth_saturdays)
        assert verdict.kind is OffDayKind.not_off
        assert not verdict.is_off

    @pytest.mark.parametrize("mode", list(WeeklyOffMode))
    def test_sundays_always_off(self, mode):
        assert all(is_weekly_off(d, mode) for d in NOV_SUNDAYS)

    @pytest.mark.parametrize("mode", list(WeeklyOffMode))
    def test_weekdays_never_weekly_off(self, mode):
        monday = date(2025, 11, 3)
        for offset in range(5):
            assert not is_weekly_off(monday + timedelta(days=offset), mode)

    def test_mode_one_keeps_every_saturday(self):
        assert not any(is_weekly_off(d, WeeklyOffMode.sundays) for d in NOV_SATURDAYS)

    def test_mode_two_drops_every_saturday(self):
        assert all(is_weekly_off(d, WeeklyOffMode.all_weekends) for d in NOV_SATURDAYS)

    def test_mode_three_second_and_fourth(self):
        off = [d.day for d in NOV_SATURDAYS if is_weekly_off(d, WeeklyOffMode.second_fourth_saturdays)]
        assert off == [8, 22]

    def test_mode_four_first_third_fifth(self):
        off = [d.day for d in NOV_SATURDAYS if is_weekly_off(d, WeeklyOffMode.odd_saturdays)]
        assert off == [1, 15, 29]

    def test_week_of_month_boundaries(self):
        assert week_of_month(date(2025, 11, 7)) == 1
        assert week_of_month(date(2025, 11, 8)) == 2
        assert week_of_month(date(2025, 11, 29)) == 5

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1", WeeklyOffMode.sundays),
            (" 2 ", WeeklyOffMode.all_weekends),
            ("4", WeeklyOffMode.odd_saturdays),
            ("9", WeeklyOffMode.second_fourth_saturdays),
            ("abc", WeeklyOffMode.second_fourth_saturdays),
            (None, WeeklyOffMode.second_fourth_saturdays),
        ],
    )
    def test_parse_mode_falls_back_to_default(self, raw, expected):
        assert parse_weekly_off_mode(raw) is expected


class TestPrecedence:

    def test_ad_hoc_beats_holiday(self):
        verdict = classify(
            date(2025, 12, 24),
            WeeklyOffMode.second_fourth_saturdays,
            is_ad_hoc=True,
            ad_hoc_reason="Office move",
            one_off_holiday="Christmas Eve",
        )
        assert verdict.kind is OffDayKind.ad_hoc
        assert verdict.reason == "Office move"

    def test_one_off_beats_recurring(self):
        verdict = classify(
            date(2025, 12, 25),
            WeeklyOffMode.sundays,
            one_off_holiday="Company Day",
            recurring_holiday="Christmas",
        )
        assert verdict.holiday_name == "Company Day"
        assert verdict.recurring is False

    def test_holiday_beats_weekly_off(self):
        sunday = date(2025, 11, 2)
        verdict = classify(sunday, WeeklyOffMode.sundays, recurring_holiday="Festival")
        assert verdict.kind is OffDayKind.holiday
        assert verdict.recurring is True

    def test_describe_names_the_source(self):
        verdict = classify(date(2025, 11, 8), WeeklyOffMode.second_fourth_saturdays)
        assert verdict.describe() == (
            "2025-11-08 is a weekly off (All Sundays + 2nd & 4th Saturdays)"
        )

    def test_month_day_key(self):
        assert month_day(date(2025, 1, 5)) == "01-05"


# ═════════════════════════════════════════════════════════════════════
# Resolver against the database
# ═════════════════════════════════════════════════════════════════════


class TestResolver:

    async def test_ad_hoc_wins_over_holiday_on_same_date(self, db):
        day = date(2025, 12, 24)
        db.add(AdHocOff(date=day, reason="Team outing"))
        db.add(Holiday(name="Christmas Eve", date=day))
        await db.flush()

        verdict = await OffDayResolver.resolve(db, day)
        assert verdict.kind is OffDayKind.ad_hoc
        assert verdict.reason == "Team outing"

    async def test_recurring_holiday_matches_other_years(self, db):
        db.add(Holiday(name="Christmas", date=date(2024, 12, 25), month_day="12-25"))
        await db.flush()

        verdict = await OffDayResolver.resolve(db, date(2026, 12, 25))
        assert verdict.kind is OffDayKind.holiday
        assert verdict.holiday_name == "Christmas"
        assert verdict.recurring is True

    async def test_one_off_holiday_only_on_its_date(self, db):
        db.add(Holiday(name="Election Day", date=date(2025, 12, 11)))
        await db.flush()

        assert (await OffDayResolver.resolve(db, date(2025, 12, 11))).is_off
        assert not (await OffDayResolver.resolve(db, date(2026, 12, 11))).is_off

    async def test_mode_comes_from_settings_when_not_given(self, db):
        await SettingsService.set_setting(db, "weekly_off_mode", "2")
        verdict = await OffDayResolver.resolve(db, date(2025, 11, 15))
        assert verdict.kind is OffDayKind.weekly
        assert verdict.mode is WeeklyOffMode.all_weekends

    @pytest.mark.parametrize("raw", ["2025-13-01", "25-12-2025", "", "garbage", None, 20251210])
    async def test_malformed_input_is_not_off(self, db, raw):
        verdict = await OffDayResolver.resolve_raw(db, raw)
        assert verdict.kind is OffDayKind.not_off
        assert verdict.date is None

    async def test_range_agrees_with_single_lookups(self, db):
        db.add(AdHocOff(date=date(2025, 12, 3), reason="Audit"))
        db.add(Holiday(name="Christmas", date=date(2024, 12, 25), month_day="12-25"))
        db.add(Holiday(name="Founders", date=date(2025, 12, 18)))
        await db.flush()

        start, end = date(2025, 12, 1), date(2025, 12, 31)
        verdicts = await OffDayResolver.resolve_range(db, start, end)
        assert len(verdicts) == 31
        for verdict in verdicts:
            single = await OffDayResolver.resolve(db, verdict.date)
            assert single == verdict

    async def test_range_rejects_reversed_dates(self, db):
        with pytest.raises(ValidationException) as exc:
            await OffDayResolver.resolve_range(db, date(2025, 12, 2), date(2025, 12, 1))
        assert exc.value.rule == "dates"

    async def test_range_rejects_oversized_span(self, db):
        with pytest.raises(ValidationException):
            await OffDayResolver.resolve_range(db, date(2025, 1, 1), date(2026, 6, 1))

    async def test_month_calendar_counts_offs(self, db):
        verdicts = await OffDayResolver.month_calendar(db, 2025, 11)
        assert len(verdicts) == 30
        off = sorted(v.date.day for v in verdicts if v.is_off)
        assert off == [2, 8, 9, 16, 22, 23, 30]

    async def test_month_calendar_rejects_bad_month(self, db):
        with pytest.raises(ValidationException):
            await OffDayResolver.month_calendar(db, 2025, 13)


# ═════════════════════════════════════════════════════════════════════
# Maintenance
# ═════════════════════════════════════════════════════════════════════


class TestAdHocOffs:

    async def test_declare_future_off(self, db):
        off = await OffDayResolver.declare_ad_hoc_off(
            db, date(2025, 12, 12), "  Power maintenance ", actor="smita", today=WORKDAY,
        )
        assert off.id is not None
        assert off.reason == "Power maintenance"

        audit = (
            await db.execute(select(AuditTrail).where(AuditTrail.entity_type == "ad_hoc_off"))
        ).scalars().one()
        assert audit.action == "declare"
        assert audit.actor == "smita"

    @pytest.mark.parametrize("day", [WORKDAY, WORKDAY - timedelta(days=1)])
    async def test_today_or_past_rejected(self, db, day):
        with pytest.raises(ValidationException) as exc:
            await OffDayResolver.declare_ad_hoc_off(db, day, None, actor="smita", today=WORKDAY)
        assert exc.value.rule == "date"

    async def test_weekly_off_rejected(self, db):
        with pytest.raises(ValidationException):
            await OffDayResolver.declare_ad_hoc_off(
                db, date(2025, 12, 14), None, actor="smita", today=WORKDAY,
            )

    async def test_duplicate_conflicts(self, db):
        await OffDayResolver.declare_ad_hoc_off(
            db, date(2025, 12, 12), None, actor="smita", today=WORKDAY,
        )
        with pytest.raises(ConflictError):
            await OffDayResolver.declare_ad_hoc_off(
                db, date(2025, 12, 12), "again", actor="smita", today=WORKDAY,
            )

    async def test_overlong_reason_rejected(self, db):
        with pytest.raises(ValidationException) as exc:
            await OffDayResolver.declare_ad_hoc_off(
                db, date(2025, 12, 12), "x" * 251, actor="smita", today=WORKDAY,
            )
        assert exc.value.rule == "reason"

    async def test_delete_and_missing(self, db):
        off = await OffDayResolver.declare_ad_hoc_off(
            db, date(2025, 12, 12), None, actor="smita", today=WORKDAY,
        )
        await OffDayResolver.delete_ad_hoc_off(db, off.id, actor="smita")
        assert await OffDayResolver.list_ad_hoc_offs(db) == []

        with pytest.raises(NotFoundException):
            await OffDayResolver.delete_ad_hoc_off(db, off.id, actor="smita")

    async def test_list_from_date(self, db):
        db.add(AdHocOff(date=date(2025, 12, 2)))
        db.add(AdHocOff(date=date(2025, 12, 12)))
        await db.flush()

        upcoming = await OffDayResolver.list_ad_hoc_offs(db, from_date=WORKDAY)
        assert [o.date for o in upcoming] == [date(2025, 12, 12)]


class TestHolidays:

    async def test_recurring_holiday_keeps_month_day(self, db):
        holiday = await OffDayResolver.create_holiday(
            db, "Christmas", date(2025, 12, 25), recurring=True, actor="smita", today=WORKDAY,
        )
        assert holiday.month_day == "12-25"
        assert holiday.recurring is True

    async def test_recurring_may_be_declared_for_a_past_date(self, db):
        holiday = await OffDayResolver.create_holiday(
            db, "Republic Day", date(2025, 1, 27), recurring=True, actor="smita", today=WORKDAY,
        )
        assert holiday.month_day == "01-27"

    async def test_past_one_off_rejected(self, db):
        with pytest.raises(ValidationException):
            await OffDayResolver.create_holiday(
                db, "Gone", date(2025, 12, 1), recurring=False, actor="smita", today=WORKDAY,
            )

    async def test_blank_name_rejected(self, db):
        with pytest.raises(ValidationException) as exc:
            await OffDayResolver.create_holiday(
                db, "   ", date(2025, 12, 25), recurring=False, actor="smita", today=WORKDAY,
            )
        assert exc.value.rule == "name"

    async def test_clash_on_month_day(self, db):
        await OffDayResolver.create_holiday(
            db, "Christmas", date(2025, 12, 25), recurring=True, actor="smita", today=WORKDAY,
        )
        with pytest.raises(ConflictError):
            await OffDayResolver.create_holiday(
                db, "Xmas", date(2025, 12, 25), recurring=False, actor="smita", today=WORKDAY,
            )

    async def test_delete_holiday(self, db):
        holiday = await OffDayResolver.create_holiday(
            db, "Founders", date(2025, 12, 18), recurring=False, actor="smita", today=WORKDAY,
        )
        await OffDayResolver.delete_holiday(db, holiday.id, actor="smita")
        assert await OffDayResolver.list_holidays(db) == []

        with pytest.raises(NotFoundException):
            await OffDayResolver.delete_holiday(db, holiday.id, actor="smita")


# ═════════════════════════════════════════════════════════════════════
# API
# ═════════════════════════════════════════════════════════════════════


async def _pin_today(db, day: date = WORKDAY) -> None:
    await SettingsService.set_setting(db, "test_date_override", day.isoformat())
    await db.commit()


async def test_off_day_endpoint(client, db, employee):
    headers = await auth_headers(db, employee)

    resp = await client.get("/api/v1/calendar/off-day", params={"date": "2025-11-08"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["is_off"] is True
    assert body["kind"] == "weekly"
    assert body["weekly_off_mode"] == 3

    resp = await client.get("/api/v1/calendar/off-day", params={"date": "not-a-date"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["is_off"] is False
    assert resp.json()["date"] is None


async def test_off_day_defaults_to_effective_date(client, db, employee):
    await _pin_today(db, date(2025, 11, 9))
    headers = await auth_headers(db, employee)

    resp = await client.get("/api/v1/calendar/off-day", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["date"] == "2025-11-09"
    assert resp.json()["is_off"] is True


async def test_month_endpoint(client, db, employee):
    headers = await auth_headers(db, employee)
    resp = await client.get(
        "/api/v1/calendar/month", params={"year": 2025, "month": 11}, headers=headers,
    )
    assert resp.status_code == 200
    assert len(resp.json()) == 30


async def test_owner_declares_ad_hoc_off(client, db, owner):
    await _pin_today(db)
    headers = await auth_headers(db, owner)

    resp = await client.post(
        "/api/v1/calendar/ad-hoc",
        json={"date": "2025-12-12", "reason": "Diwali party"},
        headers=headers,
    )
    assert resp.status_code == 201
    assert resp.json()["created_by"] == "smita"

    resp = await client.get(
        "/api/v1/calendar/off-day", params={"date": "2025-12-12"}, headers=headers,
    )
    assert resp.json()["kind"] == "ad_hoc"

    resp = await client.post(
        "/api/v1/calendar/ad-hoc", json={"date": "2025-12-12"}, headers=headers,
    )
    assert resp.status_code == 409


async def test_employee_cannot_configure_calendar(client, db, employee):
    headers = await auth_headers(db, employee)
    resp = await client.post(
        "/api/v1/calendar/holidays",
        json={"name": "Party", "date": "2026-12-31"},
        headers=headers,
    )
    assert resp.status_code == 403
    assert resp.headers["content-type"].startswith("application/problem+json")


async def test_owner_manages_holidays(client, db, owner):
    await _pin_today(db)
    headers = await auth_headers(db, owner)

    resp = await client.post(
        "/api/v1/calendar/holidays",
        json={"name": "Christmas", "date": "2025-12-25", "recurring": True},
        headers=headers,
    )
    assert resp.status_code == 201
    holiday_id = resp.json()["id"]
    assert resp.json()["month_day"] == "12-25"

    resp = await client.get("/api/v1/calendar/holidays", headers=headers)
    assert [h["name"] for h in resp.json()] == ["Christmas"]

    resp = await client.delete(f"/api/v1/calendar/holidays/{holiday_id}", headers=headers)
    assert resp.status_code == 204
