"""Leave Pydantic v2 schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from workday.common.constants import LeaveAction, LeaveStatus, LeaveType


# ── Requests ────────────────────────────────────────────────────────

class LeaveApply(BaseModel):
    """Dates arrive as raw strings so the validator can report bad input itself."""

    start_date: Optional[str] = Field(None, max_length=32, examples=["2025-12-24"])
    end_date: Optional[str] = Field(None, max_length=32, examples=["2025-12-24"])
    reason: Optional[str] = Field(None, max_length=2000)
    leave_type: LeaveType = LeaveType.full


class LeaveResolve(BaseModel):
    action: LeaveAction


# ── Responses ───────────────────────────────────────────────────────

class LeaveRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    start_date: date
    end_date: date
    reason: str
    status: LeaveStatus
    leave_type: LeaveType
    amount: Decimal
    is_backdated: bool
    approved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    withdrawn: bool
    withdrawn_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LeaveBalanceOut(BaseModel):
    """Balance after any owed accrual.

    ``balance`` is what a new application is checked against; pending
    requests are not reserved. ``available_after_pending`` is what would
    remain if every pending request were approved.
    """

    username: str
    balance: Decimal
    pending: Decimal
    available_after_pending: Decimal
    last_accrual_month: Optional[str] = None
