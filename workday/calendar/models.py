"""Calendar ORM models: AdHocOff, Holiday."""

from __future__ import annotations

import datetime as dt
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from workday.database import Base, UTCDateTime


class AdHocOff(Base):
    """A one-time day off declared by the owner."""

    __tablename__ = "ad_hoc_offs"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(sa.Date, nullable=False, unique=True)
    reason: Mapped[Optional[str]] = mapped_column(sa.String(250))
    created_by: Mapped[Optional[str]] = mapped_column(sa.String(64))
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=lambda: dt.datetime.now(dt.timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<AdHocOff {self.date.isoformat()}>"


class Holiday(Base):
    """A named holiday.

    ``date`` pins the holiday to one calendar date; ``month_day`` (``MM-DD``)
    makes it repeat every year. A recurring holiday keeps the date it was
    first declared for as well.
    """

    __tablename__ = "holidays"
    __table_args__ = (
        sa.CheckConstraint(
            "date IS NOT NULL OR month_day IS NOT NULL", name="ck_holidays_has_key"
        ),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    date: Mapped[Optional[dt.date]] = mapped_column(sa.Date, index=True)
    month_day: Mapped[Optional[str]] = mapped_column(sa.String(5), index=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=lambda: dt.datetime.now(dt.timezone.utc)
    )

    @property
    def recurring(self) -> bool:
        return self.month_day is not None

    def __repr__(self) -> str:
        return f"<Holiday {self.name} {self.date or self.month_day}>"
