"""Settings service — runtime key/value settings and per-request snapshots.

Settings are never cached at module level. Each request (or accrual run)
reads a ``SettingsSnapshot`` once and passes it down; writes go straight to
the table and the caller re-reads a fresh snapshot afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workday.app_settings.models import AppSetting
from workday.app_settings.schemas import SettingsOut, SettingsUpdate
from workday.calendar.rules import (
    WeeklyOffMode,
    describe_mode,
    parse_weekly_off_mode,
)
from workday.common.audit import create_audit_entry
from workday.common.clock import parse_iso_date, resolve_effective_date
from workday.common.constants import TIMEZONE
from workday.common.exceptions import ValidationException

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: dict[str, str] = {
    "timezone": TIMEZONE,
    "weekly_off_mode": "3",
    "desktop_enabled": "1",
    "desktop_disabled_at": "",
    "test_date_override": "",
    "company_name": "Attendance System",
    "company_logo": "",
    "brand_color": "#0ea5a4",
}


@dataclass(frozen=True)
class SettingsSnapshot:
    """Immutable view of the settings table taken at one point in time."""

    values: dict[str, str]

    def get(self, name: str) -> str:
        return self.values.get(name, DEFAULT_SETTINGS.get(name, ""))

    @property
    def timezone(self) -> str:
        return self.get("timezone") or TIMEZONE

    @property
    def weekly_off_mode(self) -> WeeklyOffMode:
        return parse_weekly_off_mode(self.get("weekly_off_mode"))

    @property
    def test_date_override(self) -> str:
        return self.get("test_date_override")

    @property
    def desktop_enabled(self) -> bool:
        return self.get("desktop_enabled") != "0"

    def effective_date(self, request_override: Optional[str] = None) -> date:
        return resolve_effective_date(
            timezone_name=self.timezone,
            global_override=self.test_date_override,
            request_override=request_override,
        )


class SettingsService:
    """Async access to the ``app_settings`` table."""

    @staticmethod
    async def get_setting(db: AsyncSession, name: str) -> str:
        """Return a setting value, or its default (empty string if none)."""
        result = await db.execute(
            select(AppSetting.value).where(AppSetting.name == name)
        )
        value = result.scalar()
        if value is None:
            return DEFAULT_SETTINGS.get(name, "")
        return value

    @staticmethod
    async def snapshot(db: AsyncSession) -> SettingsSnapshot:
        """Read every setting once."""
        result = await db.execute(select(AppSetting.name, AppSetting.value))
        values = dict(DEFAULT_SETTINGS)
        values.update({name: value for name, value in result.all()})
        return SettingsSnapshot(values=values)

    @staticmethod
    async def set_setting(
        db: AsyncSession,
        name: str,
        value: str,
        *,
        actor: Optional[str] = None,
    ) -> None:
        """Insert or replace a single setting."""
        row = await db.get(AppSetting, name)
        old = row.value if row is not None else None
        if row is None:
            row = AppSetting(name=name, value=value, updated_by=actor)
            db.add(row)
        else:
            row.value = value
            row.updated_by = actor
            row.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="setting",
            entity_id=name,
            actor=actor,
            old_values={"value": old},
            new_values={"value": value},
        )

    @staticmethod
    def _validate_update(data: SettingsUpdate) -> dict[str, str]:
        """Turn a partial update into name → string pairs, validating each."""
        changes: dict[str, str] = {}
        errors: dict[str, list[str]] = {}

        if data.timezone is not None:
            try:
                ZoneInfo(data.timezone)
                changes["timezone"] = data.timezone
            except (ZoneInfoNotFoundError, ValueError):
                errors["timezone"] = [f"Unknown timezone '{data.timezone}'."]

        if data.weekly_off_mode is not None:
            changes["weekly_off_mode"] = str(int(WeeklyOffMode(data.weekly_off_mode)))

        if data.test_date_override is not None:
            raw = data.test_date_override.strip()
            if raw and parse_iso_date(raw) is None:
                errors["test_date_override"] = [
                    "Test date override must be YYYY-MM-DD or empty."
                ]
            else:
                changes["test_date_override"] = raw

        if data.desktop_enabled is not None:
            changes["desktop_enabled"] = "1" if data.desktop_enabled else "0"

        for name in ("company_name", "company_logo", "brand_color"):
            value = getattr(data, name)
            if value is not None:
                changes[name] = value.strip()

        if errors:
            raise ValidationException(errors)
        return changes

    @staticmethod
    async def update_settings(
        db: AsyncSession,
        data: SettingsUpdate,
        *,
        actor: str,
    ) -> SettingsSnapshot:
        """Validate and apply a partial update, then return a fresh snapshot."""
        changes = SettingsService._validate_update(data)

        if changes.get("desktop_enabled") == "0":
            current = await SettingsService.get_setting(db, "desktop_enabled")
            if current != "0":
                changes["desktop_disabled_at"] = datetime.now(timezone.utc).isoformat()
        elif changes.get("desktop_enabled") == "1":
            changes["desktop_disabled_at"] = ""

        for name, value in changes.items():
            await SettingsService.set_setting(db, name, value, actor=actor)

        if changes:
            logger.info("Settings updated by %s: %s", actor, sorted(changes))
        return await SettingsService.snapshot(db)

    @staticmethod
    def to_out(snap: SettingsSnapshot, effective: date) -> SettingsOut:
        mode = snap.weekly_off_mode
        return SettingsOut(
            timezone=snap.timezone,
            weekly_off_mode=int(mode),
            weekly_off_label=describe_mode(mode),
            desktop_enabled=snap.desktop_enabled,
            desktop_disabled_at=snap.get("desktop_disabled_at") or None,
            test_date_override=snap.test_date_override or None,
            company_name=snap.get("company_name"),
            company_logo=snap.get("company_logo") or None,
            brand_color=snap.get("brand_color"),
            effective_date=effective,
        )
