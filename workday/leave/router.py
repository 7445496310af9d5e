"""Leave router — apply, withdraw, balances, approvals, history.

All endpoints require authentication. Approval endpoints are gated by the
role capability table.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from workday.auth.dependencies import (
    RequestContext,
    get_current_user,
    get_request_context,
    require_capability,
)
from workday.common.constants import LeaveStatus
from workday.common.pagination import PaginatedResponse, PaginationParams
from workday.database import get_db
from workday.leave.schemas import (
    LeaveApply,
    LeaveBalanceOut,
    LeaveRequestOut,
    LeaveResolve,
)
from workday.leave.service import LeaveService
from workday.users.models import User

router = APIRouter(prefix="", tags=["leave"])


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveRequestOut, status_code=201)
async def apply_leave(
    body: LeaveApply,
    user: User = Depends(require_capability("leave:request")),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Validates dates, reason, attendance, off-days, overlap and balance."""
    return await LeaveService.apply_leave(
        db, user, body, today=ctx.today, weekly_off_mode=ctx.settings.weekly_off_mode,
    )


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=LeaveBalanceOut)
async def balance(
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_balance(db, user, today=ctx.today)


# ── GET /my-leaves ──────────────────────────────────────────────────

@router.get("/my-leaves", response_model=list[LeaveRequestOut])
async def my_leaves(
    status: Optional[LeaveStatus] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_my_leaves(db, user.username, status=status)


# ── POST /{leave_id}/withdraw ───────────────────────────────────────

@router.post("/{leave_id}/withdraw", response_model=LeaveRequestOut)
async def withdraw(
    leave_id: int,
    user: User = Depends(get_current_user),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw one of your own pending requests."""
    return await LeaveService.withdraw_leave(db, leave_id, user=user, now=ctx.now)


# ── GET /pending ────────────────────────────────────────────────────

@router.get("/pending", response_model=list[LeaveRequestOut])
async def pending(
    user: User = Depends(require_capability("leave:resolve")),
    db: AsyncSession = Depends(get_db),
):
    """Pending requests the caller may resolve."""
    return await LeaveService.list_pending_for(db, user)


# ── GET /history ────────────────────────────────────────────────────

@router.get("/history", response_model=PaginatedResponse[LeaveRequestOut])
async def history(
    username: Optional[str] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    params: PaginationParams = Depends(),
    user: User = Depends(require_capability("leave:read_all")),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.leave_history(
        db, params, username=username, status=status,
    )


# ── POST /{leave_id}/resolve ────────────────────────────────────────

@router.post("/{leave_id}/resolve", response_model=LeaveRequestOut)
async def resolve(
    leave_id: int,
    body: LeaveResolve,
    user: User = Depends(require_capability("leave:resolve")),
    ctx: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a pending request. A second resolution gets 409."""
    return await LeaveService.resolve_leave(
        db, leave_id, body.action, actor=user, today=ctx.today, now=ctx.now,
    )
