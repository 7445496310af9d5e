"""Enums and constants for Workday — matching the database enum values."""

from __future__ import annotations

import enum
from decimal import Decimal
from typing import Optional


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    owner = "owner"
    manager = "manager"
    employee = "employee"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    withdrawn = "withdrawn"


class LeaveType(str, enum.Enum):
    full = "full"
    half = "half"


class LeaveAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceState(str, enum.Enum):
    not_marked_in = "not_marked_in"
    marked_in = "marked_in"
    marked_out = "marked_out"


# ── Role capabilities ───────────────────────────────────────────────
#
# Each entry maps a role to the capabilities it holds. Capabilities that
# act on another user also carry the set of target roles they apply to;
# ``None`` means the capability has no target.

CAPABILITIES: dict[UserRole, dict[str, Optional[frozenset[UserRole]]]] = {
    UserRole.owner: {
        "leave:resolve": frozenset({UserRole.manager, UserRole.employee}),
        "users:reset_password": frozenset({UserRole.manager, UserRole.employee}),
        "users:manage": None,
        "calendar:configure": None,
        "settings:configure": None,
        "attendance:read_all": None,
        "leave:read_all": None,
    },
    UserRole.manager: {
        "attendance:mark": None,
        "leave:request": None,
        "leave:resolve": frozenset({UserRole.employee}),
        "users:reset_password": frozenset({UserRole.employee}),
        "attendance:read_all": None,
        "leave:read_all": None,
    },
    UserRole.employee: {
        "attendance:mark": None,
        "leave:request": None,
    },
}


def can(
    role: UserRole,
    capability: str,
    target_role: Optional[UserRole] = None,
) -> bool:
    """Return True if *role* holds *capability* (over *target_role*, if given)."""
    granted = CAPABILITIES.get(role, {})
    if capability not in granted:
        return False
    targets = granted[capability]
    if target_role is None or targets is None:
        return True
    return target_role in targets


# ── Misc constants ──────────────────────────────────────────────────

TIMEZONE = "Asia/Kolkata"
MAX_REASON_LENGTH = 250
ACCRUAL_PER_MONTH = Decimal("2")
HALF_DAY_AMOUNT = Decimal("0.5")
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
