"""Attendance ORM model: one AttendanceRecord per user per day."""

from __future__ import annotations

import datetime as dt
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from workday.common.constants import AttendanceState
from workday.database import Base, UTCDateTime


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        sa.UniqueConstraint("username", "date", name="uq_attendance_user_date"),
        sa.CheckConstraint(
            "check_out_at IS NULL OR check_out_at > check_in_at",
            name="ck_attendance_out_after_in",
        ),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        sa.String(64),
        sa.ForeignKey("users.username", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False)

    check_in_at: Mapped[Optional[dt.datetime]] = mapped_column(UTCDateTime())
    check_in_latitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    check_in_longitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    check_in_photo: Mapped[Optional[str]] = mapped_column(sa.String(500))

    check_out_at: Mapped[Optional[dt.datetime]] = mapped_column(UTCDateTime())
    check_out_latitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    check_out_longitude: Mapped[Optional[float]] = mapped_column(sa.Float)
    check_out_photo: Mapped[Optional[str]] = mapped_column(sa.String(500))

    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=lambda: dt.datetime.now(dt.timezone.utc)
    )

    @property
    def state(self) -> AttendanceState:
        if self.check_out_at is not None:
            return AttendanceState.marked_out
        if self.check_in_at is not None:
            return AttendanceState.marked_in
        return AttendanceState.not_marked_in

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.username} {self.date} {self.state.value}>"
