"""
Delegation endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_DELEGATIONS_MANAGE
from hrflow.core.deps import get_current_user, get_db, require_permission
from hrflow.models.delegation import DelegationStatus
from hrflow.models.user import User
from hrflow.schemas.delegation import DelegationCreate, DelegationOut
from hrflow.services import delegation_service

router = APIRouter()


@router.post("", response_model=DelegationOut, status_code=status.HTTP_201_CREATED)
async def create_delegation(
    body: DelegationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Delegate one permission at one location to another user

    The delegator must hold the permission there. Administrators may pass
    delegator_id to delegate on behalf of another user.
    """
    return delegation_service.create_delegation(
        db,
        delegator_id=body.delegator_id or current_user.id,
        delegate_id=body.delegate_id,
        permission_name=body.permission,
        location_id=body.location_id,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        reason=body.reason,
        actor_id=current_user.id,
    )


@router.get("", response_model=List[DelegationOut])
async def list_my_delegations(
    delegation_status: Optional[DelegationStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List delegations where the caller is delegator or delegate"""
    return delegation_service.list_delegations(db, current_user.id, delegation_status)


@router.get("/granted", response_model=List[DelegationOut])
async def list_granted_by_me(
    delegation_status: Optional[DelegationStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delegations the caller has handed out, newest first"""
    return delegation_service.list_delegations_by(db, current_user.id, delegation_status)


@router.get("/active", response_model=List[DelegationOut])
async def list_active_for_me(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delegations the caller can exercise right now"""
    return delegation_service.list_active_delegations_for(db, current_user.id)


@router.get("/all", response_model=List[DelegationOut])
async def list_all_delegations(
    user_id: Optional[int] = Query(None),
    delegation_status: Optional[DelegationStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_DELEGATIONS_MANAGE))
):
    """List every delegation, optionally for one user"""
    return delegation_service.list_delegations(db, user_id, delegation_status)


@router.post("/expire")
async def expire_delegations(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_DELEGATIONS_MANAGE))
):
    """Mark delegations whose window has closed as expired"""
    return {"expired": delegation_service.expire_delegations(db)}


@router.post("/{delegation_id}/revoke", response_model=DelegationOut)
async def revoke_delegation(
    delegation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Revoke a delegation (delegator or system administrator)"""
    return delegation_service.revoke_delegation(db, delegation_id, current_user.id)
