"""Tests for shared building blocks — capabilities, clock, settings,
photo storage, and RFC 7807 error bodies.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from workday.app_settings.schemas import SettingsUpdate
from workday.app_settings.service import SettingsService, SettingsSnapshot
from workday.attendance.storage import (
    LocalPhotoStorage,
    decode_photo,
    discard_photo,
    store_photo,
)
from workday.calendar.rules import WeeklyOffMode
from workday.common.clock import (
    effective_now,
    get_zone,
    month_key,
    parse_iso_date,
    resolve_effective_date,
)
from workday.common.constants import UserRole, can
from workday.common.exceptions import ValidationException
from tests.conftest import PNG_DATA_URL, auth_headers, make_user


# ═════════════════════════════════════════════════════════════════════
# Capability table
# ═════════════════════════════════════════════════════════════════════


class TestCapabilities:

    def test_owner_resolves_managers_and_employees(self):
        assert can(UserRole.owner, "leave:resolve", UserRole.manager)
        assert can(UserRole.owner, "leave:resolve", UserRole.employee)
        assert not can(UserRole.owner, "leave:resolve", UserRole.owner)

    def test_manager_resolves_employees_only(self):
        assert can(UserRole.manager, "leave:resolve", UserRole.employee)
        assert not can(UserRole.manager, "leave:resolve", UserRole.manager)

    def test_employee_has_no_admin_capabilities(self):
        assert can(UserRole.employee, "attendance:mark")
        assert not can(UserRole.employee, "leave:resolve")
        assert not can(UserRole.employee, "users:reset_password", UserRole.employee)

    def test_owner_does_not_mark_or_request(self):
        assert not can(UserRole.owner, "attendance:mark")
        assert not can(UserRole.owner, "leave:request")

    def test_untargeted_capability_ignores_target(self):
        assert can(UserRole.owner, "calendar:configure", UserRole.employee)


# ═════════════════════════════════════════════════════════════════════
# Clock
# ═════════════════════════════════════════════════════════════════════


class TestClock:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2025-12-10", date(2025, 12, 10)),
            (" 2025-12-10 ", date(2025, 12, 10)),
            ("2025-2-1", None),
            ("2025-02-30", None),
            ("", None),
            (None, None),
            (date(2025, 1, 2), date(2025, 1, 2)),
            (datetime(2025, 1, 2, 15, 0), date(2025, 1, 2)),
        ],
    )
    def test_parse_iso_date(self, raw, expected):
        assert parse_iso_date(raw) == expected

    def test_request_override_beats_global(self):
        resolved = resolve_effective_date(
            timezone_name="Asia/Kolkata",
            global_override="2025-11-01",
            request_override="2025-12-10",
        )
        assert resolved == date(2025, 12, 10)

    def test_unparsable_override_falls_through(self):
        resolved = resolve_effective_date(
            timezone_name="Asia/Kolkata",
            global_override="2025-11-01",
            request_override="tomorrow",
        )
        assert resolved == date(2025, 11, 1)

    def test_no_override_uses_zone_date(self):
        expected = datetime.now(timezone.utc).astimezone(get_zone("Asia/Kolkata")).date()
        assert resolve_effective_date(timezone_name="Asia/Kolkata") == expected

    def test_unknown_zone_falls_back(self):
        assert get_zone("Mars/Olympus").key == "Asia/Kolkata"

    def test_effective_now_keeps_date(self):
        now = effective_now(date(2025, 12, 10), "Asia/Kolkata")
        assert now.date() == date(2025, 12, 10)
        assert now.tzinfo is not None

    def test_month_key(self):
        assert month_key(date(2025, 3, 31)) == "2025-03"


# ═════════════════════════════════════════════════════════════════════
# Runtime settings
# ═════════════════════════════════════════════════════════════════════


class TestSettings:

    async def test_defaults_without_rows(self, db):
        snap = await SettingsService.snapshot(db)
        assert snap.timezone == "Asia/Kolkata"
        assert snap.weekly_off_mode is WeeklyOffMode.second_fourth_saturdays
        assert snap.desktop_enabled is True
        assert snap.test_date_override == ""

    async def test_snapshot_is_stable_after_write(self, db):
        before = await SettingsService.snapshot(db)
        await SettingsService.set_setting(db, "weekly_off_mode", "1", actor="smita")

        after = await SettingsService.snapshot(db)
        assert before.weekly_off_mode is WeeklyOffMode.second_fourth_saturdays
        assert after.weekly_off_mode is WeeklyOffMode.sundays

    def test_garbage_mode_reads_as_default(self):
        snap = SettingsSnapshot(values={"weekly_off_mode": "seven"})
        assert snap.weekly_off_mode is WeeklyOffMode.second_fourth_saturdays

    async def test_update_validates(self, db):
        with pytest.raises(ValidationException) as exc:
            await SettingsService.update_settings(
                db,
                SettingsUpdate(timezone="Nowhere/Town", test_date_override="12/10/2025"),
                actor="smita",
            )
        assert set(exc.value.errors) == {"timezone", "test_date_override"}

    async def test_disabling_desktop_stamps_time(self, db):
        snap = await SettingsService.update_settings(
            db, SettingsUpdate(desktop_enabled=False), actor="smita",
        )
        assert snap.desktop_enabled is False
        assert snap.get("desktop_disabled_at") != ""

        snap = await SettingsService.update_settings(
            db, SettingsUpdate(desktop_enabled=True), actor="smita",
        )
        assert snap.get("desktop_disabled_at") == ""

    async def test_override_drives_effective_date(self, db):
        snap = await SettingsService.update_settings(
            db, SettingsUpdate(test_date_override="2025-12-10"), actor="smita",
        )
        assert snap.effective_date() == date(2025, 12, 10)

        snap = await SettingsService.update_settings(
            db, SettingsUpdate(test_date_override=""), actor="smita",
        )
        assert snap.test_date_override == ""


async def test_settings_api(client, db):
    owner = await make_user(db, "smita", role=UserRole.owner)
    employee = await make_user(db, "manuj")
    owner_headers = await auth_headers(db, owner)
    emp_headers = await auth_headers(db, employee)

    resp = await client.get("/api/v1/settings", headers=emp_headers)
    assert resp.status_code == 200
    assert resp.json()["weekly_off_label"] == "All Sundays + 2nd & 4th Saturdays"

    resp = await client.put(
        "/api/v1/settings", json={"weekly_off_mode": 2}, headers=emp_headers,
    )
    assert resp.status_code == 403

    resp = await client.put(
        "/api/v1/settings",
        json={"weekly_off_mode": 2, "test_date_override": "2025-12-10", "company_name": "Acme"},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["weekly_off_mode"] == 2
    assert body["effective_date"] == "2025-12-10"
    assert body["company_name"] == "Acme"

    resp = await client.put(
        "/api/v1/settings", json={"weekly_off_mode": 7}, headers=owner_headers,
    )
    assert resp.status_code == 422
    assert resp.headers["content-type"].startswith("application/problem+json")


# ═════════════════════════════════════════════════════════════════════
# Photo storage
# ═════════════════════════════════════════════════════════════════════


class _OfflineStorage:
    def store(self, data: bytes, logical_path: str) -> str:
        raise RuntimeError("offline")

    def delete(self, reference: str) -> None:
        raise RuntimeError("offline")


class TestPhotoStorage:

    def test_decode_png(self):
        data, ext = decode_photo(PNG_DATA_URL)
        assert ext == ".png"
        assert data.startswith(b"\x89PNG")

    def test_no_photo(self):
        assert decode_photo(None) is None
        assert decode_photo("") is None

    def test_store_and_delete(self, tmp_path):
        storage = LocalPhotoStorage(str(tmp_path))
        ref = store_photo(storage, (b"abc", ".jpg"), "attendance/manuj/day")
        assert ref == "attendance/manuj/day.jpg"
        assert (tmp_path / ref).read_bytes() == b"abc"

        storage.delete(ref)
        assert not (tmp_path / ref).exists()

    def test_path_escape_is_refused(self, tmp_path):
        storage = LocalPhotoStorage(str(tmp_path / "root"))
        assert store_photo(storage, (b"abc", ".jpg"), "../outside") is None
        assert not (tmp_path / "outside.jpg").exists()

    def test_backend_errors_are_contained(self):
        assert store_photo(_OfflineStorage(), (b"abc", ".jpg"), "attendance/manuj/day") is None
        discard_photo(_OfflineStorage(), "attendance/manuj/day.jpg")
        discard_photo(_OfflineStorage(), None)
