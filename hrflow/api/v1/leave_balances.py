"""
Leave balance endpoints: own balances and the administrator ledger operations
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_LEAVE_BALANCES_MANAGE
from hrflow.core.deps import get_current_user, get_db, require_permission
from hrflow.models.user import User
from hrflow.schemas.leave import (
    AdjustmentOut,
    AdjustRequest,
    AllocateRequest,
    BulkAllocateRequest,
    BulkResetRequest,
    BulkResult,
    LeaveBalanceOut,
    ResetOut,
    ResetRequest,
)
from hrflow.services import balance_service
from hrflow.utils.datetime_utils import now_utc

router = APIRouter()


@router.get("/me", response_model=List[LeaveBalanceOut])
async def get_my_balances(
    year: Optional[int] = Query(None, description="Defaults to the current year"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get the caller's balances for a year"""
    return balance_service.get_user_balances(db, current_user.id, year or now_utc().year)


@router.get("/users/{user_id}", response_model=List[LeaveBalanceOut])
async def get_user_balances(
    user_id: int,
    year: Optional[int] = Query(None, description="Defaults to the current year"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    return balance_service.get_user_balances(db, user_id, year or now_utc().year)


@router.post("/allocate", response_model=LeaveBalanceOut)
async def allocate_balance(
    body: AllocateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    """Add days to a user's allocation for a year"""
    balance = balance_service.allocate(
        db, body.user_id, body.leave_type_id, body.year, body.days, actor_id=current_user.id
    )
    return balance_service.balance_summary(balance)


@router.post("/adjust", response_model=LeaveBalanceOut)
async def adjust_balance(
    body: AdjustRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    """
    Credit or debit a user's allocation

    A reason is required and the adjustment is kept in the history. The
    allocation may not go below zero.
    """
    balance = balance_service.adjust(
        db, body.user_id, body.leave_type_id, body.year, body.delta, body.reason, current_user.id
    )
    return balance_service.balance_summary(balance)


@router.post("/reset")
async def reset_balance(
    body: ResetRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    """Zero a user's balances for one leave type, or all of them"""
    count = balance_service.reset(
        db, body.user_id, body.leave_type_id, body.reason, actor_id=current_user.id, year=body.year
    )
    return {"user_id": body.user_id, "balances_reset": count}


@router.post("/bulk-allocate", response_model=BulkResult)
async def bulk_allocate(
    body: BulkAllocateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    """
    Allocate days to every active user matching the filters

    Each user is applied independently; failures are reported per user and
    do not undo the others.
    """
    return balance_service.bulk_allocate(
        db, body.leave_type_id, body.year, body.days,
        actor_id=current_user.id,
        user_ids=body.user_ids,
        role_ids=body.role_ids,
        category_ids=body.category_ids,
        staff_type_ids=body.staff_type_ids,
    )


@router.post("/bulk-reset", response_model=BulkResult)
async def bulk_reset(
    body: BulkResetRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    """Reset balances of every active user matching the filters"""
    return balance_service.bulk_reset(
        db, body.leave_type_id, body.reason,
        actor_id=current_user.id,
        year=body.year,
        user_ids=body.user_ids,
        role_ids=body.role_ids,
        category_ids=body.category_ids,
        staff_type_ids=body.staff_type_ids,
    )


@router.get("/users/{user_id}/adjustments", response_model=List[AdjustmentOut])
async def get_adjustment_history(
    user_id: int,
    leave_type_id: Optional[int] = Query(None),
    year: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    return balance_service.get_adjustment_history(db, user_id, leave_type_id, year)


@router.get("/users/{user_id}/resets", response_model=List[ResetOut])
async def get_reset_history(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    return balance_service.get_reset_history(db, user_id)
