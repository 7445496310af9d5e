"""Attendance Pydantic v2 schemas."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from workday.calendar.schemas import OffDayOut
from workday.common.constants import AttendanceState


# ── Requests ────────────────────────────────────────────────────────

class MarkRequest(BaseModel):
    """Payload for check-in and check-out."""

    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    photo: Optional[str] = Field(None, description="data:image/...;base64,... selfie")
    confirm_withdraw: bool = Field(
        False,
        description="Confirm withdrawal of a pending full-day leave for today",
    )


# ── Responses ───────────────────────────────────────────────────────

class AttendanceRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    date: dt.date
    state: AttendanceState
    check_in_at: Optional[dt.datetime] = None
    check_in_latitude: Optional[float] = None
    check_in_longitude: Optional[float] = None
    check_in_photo: Optional[str] = None
    check_out_at: Optional[dt.datetime] = None
    check_out_latitude: Optional[float] = None
    check_out_longitude: Optional[float] = None
    check_out_photo: Optional[str] = None


class AttendanceStatusOut(BaseModel):
    username: str
    date: dt.date
    state: AttendanceState
    record: Optional[AttendanceRecordOut] = None
    off_day: OffDayOut
    on_full_day_leave: bool = False
    pending_leave_ids: list[int] = []


class MarkResponse(BaseModel):
    record: AttendanceRecordOut
    withdrawn_leave_ids: list[int] = []
