"""Leave ORM model: LeaveRequest."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from workday.common.constants import HALF_DAY_AMOUNT, LeaveStatus, LeaveType
from workday.database import Base, UTCDateTime


def requested_amount(leave_type: LeaveType, start_date: date, end_date: date) -> Decimal:
    """Balance units a request consumes: 0.5 for a half day, else inclusive days."""
    if leave_type is LeaveType.half:
        return HALF_DAY_AMOUNT
    return Decimal((end_date - start_date).days + 1)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_requests_range"),
        sa.CheckConstraint(
            "leave_type = 'full' OR start_date = end_date",
            name="ck_leave_requests_half_single",
        ),
        sa.Index("ix_leave_requests_user_dates", "username", "start_date", "end_date"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        sa.String(64),
        sa.ForeignKey("users.username", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[str] = mapped_column(sa.String(250), nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", native_enum=False, length=20),
        nullable=False,
        default=LeaveStatus.pending,
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type", native_enum=False, length=10),
        nullable=False,
        default=LeaveType.full,
    )
    is_backdated: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    approved_by: Mapped[Optional[str]] = mapped_column(sa.String(64))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    withdrawn: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    withdrawn_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=lambda: datetime.now(timezone.utc)
    )

    @property
    def amount(self) -> Decimal:
        return requested_amount(self.leave_type, self.start_date, self.end_date)

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.username} "
            f"{self.start_date}..{self.end_date} {self.status.value}>"
        )
