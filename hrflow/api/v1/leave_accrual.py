"""
Leave accrual endpoints: rate configuration and the monthly run
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_LEAVE_BALANCES_MANAGE
from hrflow.core.deps import get_db, require_permission
from hrflow.models.user import User
from hrflow.schemas.leave import (
    AccrualConfigCreate,
    AccrualConfigOut,
    AccrualConfigUpdate,
    AccrualRunRequest,
    AccrualRunResult,
)
from hrflow.services import accrual_service

router = APIRouter()


@router.post("/configs", response_model=AccrualConfigOut, status_code=status.HTTP_201_CREATED)
async def create_accrual_config(
    body: AccrualConfigCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    """
    Add an accrual rate for a leave type

    location_id and staff_type_id narrow the rule. For each user the most
    specific active rule applies.
    """
    return accrual_service.create_config(
        db,
        leave_type_id=body.leave_type_id,
        accrual_rate=body.accrual_rate,
        accrual_period=body.accrual_period,
        location_id=body.location_id,
        staff_type_id=body.staff_type_id,
        actor_id=current_user.id,
    )


@router.get("/configs", response_model=List[AccrualConfigOut])
async def list_accrual_configs(
    leave_type_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    return accrual_service.list_configs(db, leave_type_id)


@router.patch("/configs/{config_id}", response_model=AccrualConfigOut)
async def update_accrual_config(
    config_id: int,
    body: AccrualConfigUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    return accrual_service.update_config(
        db, config_id,
        actor_id=current_user.id,
        accrual_rate=body.accrual_rate,
        accrual_period=body.accrual_period,
        is_active=body.is_active,
    )


@router.delete("/configs/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_accrual_config(
    config_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    accrual_service.delete_config(db, config_id, actor_id=current_user.id)


@router.post("/run", response_model=AccrualRunResult)
async def run_monthly_accrual(
    body: AccrualRunRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_LEAVE_BALANCES_MANAGE))
):
    """Credit one month of accrual; months already credited are skipped"""
    return accrual_service.process_monthly_accrual(db, body.year, body.month, actor_id=current_user.id)
