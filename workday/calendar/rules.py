"""Calendar rules — pure off-day classification.

No I/O happens here: callers hand in the date, the weekly-off mode and whatever
ad-hoc / holiday matches they already looked up, and get back a verdict.

Precedence (first match wins):
  1. ad-hoc off declared for the exact date
  2. one-off holiday bound to the exact date
  3. recurring holiday matching the date's month-day
  4. weekly-off mode

Weekly-off modes:
  1 — every Sunday
  2 — every Sunday and every Saturday
  3 — every Sunday + 2nd and 4th Saturday
  4 — every Sunday + 1st, 3rd and 5th Saturday
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from typing import Optional


class WeeklyOffMode(enum.IntEnum):
    sundays = 1
    all_weekends = 2
    second_fourth_saturdays = 3
    odd_saturdays = 4


DEFAULT_WEEKLY_OFF_MODE = WeeklyOffMode.second_fourth_saturdays

_MODE_LABELS: dict[WeeklyOffMode, str] = {
    WeeklyOffMode.sundays: "All Sundays",
    WeeklyOffMode.all_weekends: "All Saturdays and Sundays",
    WeeklyOffMode.second_fourth_saturdays: "All Sundays + 2nd & 4th Saturdays",
    WeeklyOffMode.odd_saturdays: "All Sundays + 1st, 3rd & 5th Saturdays",
}

# Python's weekday(): Monday=0 … Saturday=5, Sunday=6
_SATURDAY = 5
_SUNDAY = 6


class OffDayKind(str, enum.Enum):
    not_off = "not_off"
    ad_hoc = "ad_hoc"
    holiday = "holiday"
    weekly = "weekly"


@dataclass(frozen=True)
class OffDayVerdict:
    """Classification of one calendar date, with user-facing metadata."""

    date: Optional[date]
    kind: OffDayKind
    reason: Optional[str] = None
    holiday_name: Optional[str] = None
    recurring: bool = False
    mode: Optional[WeeklyOffMode] = None

    @property
    def is_off(self) -> bool:
        return self.kind is not OffDayKind.not_off

    def describe(self) -> str:
        """Short human description used in rejection messages."""
        when = self.date.isoformat() if self.date else "This date"
        if self.kind is OffDayKind.ad_hoc:
            suffix = f" ({self.reason})" if self.reason else ""
            return f"{when} is a declared day off{suffix}"
        if self.kind is OffDayKind.holiday:
            return f"{when} is a holiday ({self.holiday_name})"
        if self.kind is OffDayKind.weekly:
            return f"{when} is a weekly off ({describe_mode(self.mode)})"
        return f"{when} is a working day"


# ── Helpers ─────────────────────────────────────────────────────────

def week_of_month(d: date) -> int:
    """1-indexed week of month: days 1–7 → 1, 8–14 → 2, …"""
    return (d.day - 1) // 7 + 1


def month_day(d: date) -> str:
    """``MM-DD`` key used by recurring holidays."""
    return f"{d.month:02d}-{d.day:02d}"


def describe_mode(mode: Optional[WeeklyOffMode]) -> str:
    return _MODE_LABELS.get(mode, "Unknown") if mode is not None else "Unknown"


def parse_weekly_off_mode(raw: object) -> WeeklyOffMode:
    """Coerce a stored setting to a mode; anything unusable yields the default."""
    try:
        return WeeklyOffMode(int(str(raw).strip()))
    except (TypeError, ValueError):
        return DEFAULT_WEEKLY_OFF_MODE


def is_weekly_off(d: date, mode: WeeklyOffMode) -> bool:
    """Return True if *d* is off under the weekly-off *mode*."""
    weekday = d.weekday()
    if weekday == _SUNDAY:
        return True
    if weekday != _SATURDAY:
        return False

    if mode is WeeklyOffMode.all_weekends:
        return True
    if mode is WeeklyOffMode.second_fourth_saturdays:
        return week_of_month(d) in (2, 4)
    if mode is WeeklyOffMode.odd_saturdays:
        return week_of_month(d) % 2 == 1
    return False


# ── Classification ──────────────────────────────────────────────────

def classify(
    target_date: date,
    weekly_off_mode: WeeklyOffMode,
    *,
    ad_hoc_reason: Optional[str] = None,
    is_ad_hoc: bool = False,
    one_off_holiday: Optional[str] = None,
    recurring_holiday: Optional[str] = None,
) -> OffDayVerdict:
    """Classify *target_date*.

    ``ad_hoc_reason`` / ``is_ad_hoc`` describe an ad-hoc off on the exact
    date; ``one_off_holiday`` and ``recurring_holiday`` carry the matching
    holiday names (None when nothing matched).
    """
    if is_ad_hoc or ad_hoc_reason is not None:
        return OffDayVerdict(target_date, OffDayKind.ad_hoc, reason=ad_hoc_reason)

    if one_off_holiday is not None:
        return OffDayVerdict(
            target_date, OffDayKind.holiday, holiday_name=one_off_holiday,
        )

    if recurring_holiday is not None:
        return OffDayVerdict(
            target_date,
            OffDayKind.holiday,
            holiday_name=recurring_holiday,
            recurring=True,
        )

    if is_weekly_off(target_date, weekly_off_mode):
        return OffDayVerdict(target_date, OffDayKind.weekly, mode=weekly_off_mode)

    return OffDayVerdict(target_date, OffDayKind.not_off)
