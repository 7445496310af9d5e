"""Calendar Pydantic v2 schemas."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from workday.calendar.rules import OffDayKind, OffDayVerdict, describe_mode
from workday.common.constants import MAX_REASON_LENGTH


# ── Resolver output ─────────────────────────────────────────────────

class OffDayOut(BaseModel):
    date: Optional[dt.date] = None
    is_off: bool
    kind: OffDayKind
    reason: Optional[str] = None
    holiday_name: Optional[str] = None
    recurring: bool = False
    weekly_off_mode: Optional[int] = None
    weekly_off_label: Optional[str] = None
    description: str

    @classmethod
    def from_verdict(cls, verdict: OffDayVerdict) -> "OffDayOut":
        return cls(
            date=verdict.date,
            is_off=verdict.is_off,
            kind=verdict.kind,
            reason=verdict.reason,
            holiday_name=verdict.holiday_name,
            recurring=verdict.recurring,
            weekly_off_mode=int(verdict.mode) if verdict.mode is not None else None,
            weekly_off_label=describe_mode(verdict.mode) if verdict.mode is not None else None,
            description=verdict.describe(),
        )


# ── Ad-hoc offs ─────────────────────────────────────────────────────

class AdHocOffCreate(BaseModel):
    date: dt.date
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class AdHocOffOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: dt.date
    reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[dt.datetime] = None


# ── Holidays ────────────────────────────────────────────────────────

class HolidayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    date: dt.date
    recurring: bool = False


class HolidayOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    date: Optional[dt.date] = None
    month_day: Optional[str] = None
    recurring: bool
