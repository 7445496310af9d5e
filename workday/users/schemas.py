"""User Pydantic v2 schemas."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from workday.common.constants import UserRole


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    display_name: Optional[str] = None
    role: UserRole
    leave_balance: Decimal
    last_accrual_month: Optional[str] = None
    join_date: date
    is_active: bool = True


class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    display_name: Optional[str] = None
    role: UserRole


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=3, max_length=128)
    role: UserRole = UserRole.employee
    join_date: Optional[date] = None
    display_name: Optional[str] = Field(None, max_length=100)


class PasswordReset(BaseModel):
    new_password: str = Field(..., min_length=3, max_length=128)
