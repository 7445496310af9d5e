"""Common module — shared utilities for Workday."""

from workday.common.audit import AuditTrail, create_audit_entry
from workday.common.constants import (
    CAPABILITIES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    TIMEZONE,
    AttendanceState,
    LeaveAction,
    LeaveStatus,
    LeaveType,
    UserRole,
    can,
)
from workday.common.exceptions import (
    AppException,
    ConfirmationRequired,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
    register_exception_handlers,
)
from workday.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "AttendanceState",
    "LeaveAction",
    "LeaveStatus",
    "LeaveType",
    "UserRole",
    "CAPABILITIES",
    "can",
    "TIMEZONE",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConfirmationRequired",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "UnauthorizedException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
