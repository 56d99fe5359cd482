"""
Role, role grant and permission scope endpoints (administrators)
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_ROLES_MANAGE
from hrflow.core.deps import get_db, require_permission
from hrflow.models.user import User
from hrflow.schemas.access import (
    RoleAssignment,
    RoleCreate,
    RoleOut,
    RolePermissionGrant,
    ScopeGrant,
    ScopeOut,
)
from hrflow.services import role_service

router = APIRouter()


@router.post("", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
async def create_role_endpoint(
    role_data: RoleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    """
    Create a new role with its initial permissions.
    """
    return role_service.create_role(
        db,
        role_data.name,
        permissions=role_data.permissions,
        scope_mode=role_data.scope_mode,
        description=role_data.description,
        actor_id=current_user.id,
    )


@router.get("", response_model=List[RoleOut])
async def list_roles_endpoint(
    active_only: Optional[bool] = Query(
        True,
        description="If true, return only active roles",
    ),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    return role_service.list_roles(db, active_only=active_only)


@router.get("/{role_id}", response_model=RoleOut)
async def get_role_endpoint(
    role_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    return role_service.get_role(db, role_id)


@router.post("/{role_id}/users", status_code=status.HTTP_201_CREATED)
async def assign_role_endpoint(
    role_id: int,
    body: RoleAssignment,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    """
    Assign a role to a user.

    Each of the role's permissions is mirrored as a scope at the user's
    primary location.
    """
    user_role = role_service.assign_role(db, body.user_id, role_id, actor_id=current_user.id)
    return {"user_id": user_role.user_id, "role_id": user_role.role_id}


@router.delete("/{role_id}/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_role_endpoint(
    role_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    role_service.revoke_role(db, user_id, role_id, actor_id=current_user.id)


@router.post("/{role_id}/permissions", status_code=status.HTTP_201_CREATED)
async def grant_permission_endpoint(
    role_id: int,
    body: RolePermissionGrant,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    """Add a permission to a role; current holders receive mirrored scopes."""
    role_service.grant_role_permission(db, role_id, body.permission, actor_id=current_user.id)
    return {"role_id": role_id, "permission": body.permission}


@router.delete("/{role_id}/permissions/{permission}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_permission_endpoint(
    role_id: int,
    permission: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    role_service.revoke_role_permission(db, role_id, permission, actor_id=current_user.id)


@router.post("/scopes", response_model=ScopeOut, status_code=status.HTTP_201_CREATED)
async def grant_scope_endpoint(
    body: ScopeGrant,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    """Grant a user a permission directly at a location, optionally time-bounded."""
    return role_service.grant_scope(
        db,
        body.user_id,
        body.permission,
        location_id=body.location_id,
        include_descendants=body.include_descendants,
        is_global=body.is_global,
        valid_from=body.valid_from,
        valid_until=body.valid_until,
        actor_id=current_user.id,
    )


@router.delete("/scopes/{scope_id}", response_model=ScopeOut)
async def revoke_scope_endpoint(
    scope_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_ROLES_MANAGE)),
):
    return role_service.revoke_scope(db, scope_id, actor_id=current_user.id)
