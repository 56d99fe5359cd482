"""
Role service - roles, role grants and permission scopes

Role grants are mirrored into PermissionScope rows (source=role_sync) so that
role checks and direct-scope checks share one evaluation path. Mirrored scopes
sit at the holder's primary location, or are global when the holder has none.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from hrflow.core.errors import NotFoundError, PreconditionError
from hrflow.models.access import (
    Permission,
    PermissionScope,
    Role,
    RolePermission,
    RoleScopeMode,
    RoleStatus,
    ScopeSource,
    ScopeStatus,
    UserRole,
)
from hrflow.models.location import Location
from hrflow.models.user import User
from hrflow.services.audit_service import log_audit
from hrflow.utils.datetime_utils import ensure_utc, now_utc

logger = logging.getLogger(__name__)


def get_role(db: Session, role_id: int) -> Role:
    role = db.get(Role, role_id)
    if not role:
        raise NotFoundError(f"Role with id {role_id} not found")
    return role


def get_permission_by_name(db: Session, name: str) -> Permission:
    permission = db.query(Permission).filter(Permission.name == name).first()
    if not permission:
        raise NotFoundError(f"Permission '{name}' not found")
    return permission


def ensure_permission(db: Session, name: str, description: Optional[str] = None) -> Permission:
    """Get or create a permission; module is the part before the first dot."""
    permission = db.query(Permission).filter(Permission.name == name).first()
    if permission:
        return permission
    permission = Permission(name=name, module=name.split(".", 1)[0], description=description)
    db.add(permission)
    db.flush()
    return permission


def _get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user or user.deleted_at is not None:
        raise NotFoundError(f"User with id {user_id} not found")
    return user


def create_role(
    db: Session,
    name: str,
    permissions: Optional[List[str]] = None,
    scope_mode: RoleScopeMode = RoleScopeMode.SCOPED,
    description: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> Role:
    """
    Create a role with an initial set of permission names.

    Name is treated as case-insensitive unique.
    """
    existing = db.query(Role).filter(func.lower(Role.name) == func.lower(name)).first()
    if existing:
        raise PreconditionError(f"Role with name '{name}' already exists")

    role = Role(name=name, scope_mode=scope_mode, description=description, status=RoleStatus.ACTIVE)
    db.add(role)
    db.flush()
    for permission_name in permissions or []:
        db.add(RolePermission(role_id=role.id, permission_id=ensure_permission(db, permission_name).id))

    log_audit(
        db, actor_id, "CREATE", "role", role.id,
        {"name": name, "scope_mode": scope_mode.value, "permissions": list(permissions or [])},
    )
    db.commit()
    db.refresh(role)
    return role


def list_roles(db: Session, active_only: Optional[bool] = True) -> List[Role]:
    query = db.query(Role)
    if active_only:
        query = query.filter(Role.status == RoleStatus.ACTIVE)
    return query.order_by(Role.name.asc()).all()


def _mirror_scope(db: Session, user: User, role: Role, permission_id: int, now: datetime) -> bool:
    """Create a role_sync scope for (user, permission) unless one is already active."""
    existing = (
        db.query(PermissionScope.id)
        .filter(
            PermissionScope.user_id == user.id,
            PermissionScope.permission_id == permission_id,
            PermissionScope.source == ScopeSource.ROLE_SYNC,
            PermissionScope.status == ScopeStatus.ACTIVE,
        )
        .first()
    )
    if existing:
        return False
    db.add(
        PermissionScope(
            user_id=user.id,
            permission_id=permission_id,
            location_id=user.primary_location_id,
            is_global=user.primary_location_id is None,
            include_descendants=False,
            valid_from=now,
            valid_until=None,
            status=ScopeStatus.ACTIVE,
            source=ScopeSource.ROLE_SYNC,
            role_id=role.id,
        )
    )
    return True


def _user_has_permission_via_other_role(db: Session, user_id: int, permission_id: int, role_id: int) -> bool:
    row = (
        db.query(UserRole.id)
        .join(Role, Role.id == UserRole.role_id)
        .join(RolePermission, RolePermission.role_id == Role.id)
        .filter(
            UserRole.user_id == user_id,
            UserRole.deleted_at.is_(None),
            UserRole.role_id != role_id,
            Role.status == RoleStatus.ACTIVE,
            RolePermission.permission_id == permission_id,
        )
        .first()
    )
    return row is not None


def _retire_mirrored_scopes(db: Session, user_id: int, permission_id: int, role_id: int) -> int:
    """Deactivate role_sync scopes for (user, permission) unless another role still grants it."""
    if _user_has_permission_via_other_role(db, user_id, permission_id, role_id):
        return 0
    scopes = (
        db.query(PermissionScope)
        .filter(
            PermissionScope.user_id == user_id,
            PermissionScope.permission_id == permission_id,
            PermissionScope.source == ScopeSource.ROLE_SYNC,
            PermissionScope.status == ScopeStatus.ACTIVE,
        )
        .all()
    )
    for scope in scopes:
        scope.status = ScopeStatus.INACTIVE
    return len(scopes)


def assign_role(db: Session, user_id: int, role_id: int, actor_id: Optional[int] = None) -> UserRole:
    """Give a user a role and backfill mirrored scopes for its permissions."""
    user = _get_user(db, user_id)
    role = get_role(db, role_id)
    if role.status != RoleStatus.ACTIVE:
        raise PreconditionError(f"Role '{role.name}' is inactive")

    existing = (
        db.query(UserRole)
        .filter(UserRole.user_id == user_id, UserRole.role_id == role_id, UserRole.deleted_at.is_(None))
        .first()
    )
    if existing:
        raise PreconditionError(f"User {user_id} already holds role '{role.name}'")

    user_role = UserRole(user_id=user_id, role_id=role_id, assigned_by=actor_id)
    db.add(user_role)

    now = now_utc()
    created = sum(1 for rp in role.role_permissions if _mirror_scope(db, user, role, rp.permission_id, now))
    log_audit(db, actor_id, "ASSIGN_ROLE", "user", user_id, {"role_id": role_id, "scopes_created": created})
    db.commit()
    db.refresh(user_role)
    logger.info("Assigned role %s to user %s (%d scopes mirrored)", role.name, user_id, created)
    return user_role


def revoke_role(db: Session, user_id: int, role_id: int, actor_id: Optional[int] = None) -> UserRole:
    """Soft-delete a user's role and clean up scopes no other role still backs."""
    user_role = (
        db.query(UserRole)
        .filter(UserRole.user_id == user_id, UserRole.role_id == role_id, UserRole.deleted_at.is_(None))
        .first()
    )
    if not user_role:
        raise NotFoundError(f"User {user_id} does not hold role {role_id}")

    user_role.deleted_at = now_utc()
    db.flush()
    role = get_role(db, role_id)
    removed = sum(_retire_mirrored_scopes(db, user_id, rp.permission_id, role_id) for rp in role.role_permissions)
    log_audit(db, actor_id, "REVOKE_ROLE", "user", user_id, {"role_id": role_id, "scopes_removed": removed})
    db.commit()
    logger.info("Revoked role %s from user %s (%d scopes removed)", role.name, user_id, removed)
    return user_role


def _active_holders(db: Session, role_id: int) -> List[User]:
    return (
        db.query(User)
        .join(UserRole, UserRole.user_id == User.id)
        .filter(UserRole.role_id == role_id, UserRole.deleted_at.is_(None), User.deleted_at.is_(None))
        .all()
    )


def grant_role_permission(
    db: Session,
    role_id: int,
    permission_name: str,
    actor_id: Optional[int] = None,
) -> RolePermission:
    """Add a permission to a role and mirror it onto every current holder."""
    role = get_role(db, role_id)
    permission = ensure_permission(db, permission_name)
    existing = (
        db.query(RolePermission)
        .filter(RolePermission.role_id == role_id, RolePermission.permission_id == permission.id)
        .first()
    )
    if existing:
        raise PreconditionError(f"Role '{role.name}' already grants '{permission_name}'")

    grant = RolePermission(role_id=role_id, permission_id=permission.id)
    db.add(grant)
    now = now_utc()
    created = 0
    if role.status == RoleStatus.ACTIVE:
        created = sum(
            1 for holder in _active_holders(db, role_id) if holder.is_active
            and _mirror_scope(db, holder, role, permission.id, now)
        )
    log_audit(
        db, actor_id, "GRANT_PERMISSION", "role", role_id,
        {"permission": permission_name, "scopes_created": created},
    )
    db.commit()
    db.refresh(grant)
    return grant


def revoke_role_permission(
    db: Session,
    role_id: int,
    permission_name: str,
    actor_id: Optional[int] = None,
) -> None:
    role = get_role(db, role_id)
    permission = get_permission_by_name(db, permission_name)
    grant = (
        db.query(RolePermission)
        .filter(RolePermission.role_id == role_id, RolePermission.permission_id == permission.id)
        .first()
    )
    if not grant:
        raise NotFoundError(f"Role '{role.name}' does not grant '{permission_name}'")

    db.delete(grant)
    db.flush()
    removed = sum(
        _retire_mirrored_scopes(db, holder.id, permission.id, role_id)
        for holder in _active_holders(db, role_id)
    )
    log_audit(
        db, actor_id, "REVOKE_PERMISSION", "role", role_id,
        {"permission": permission_name, "scopes_removed": removed},
    )
    db.commit()


def grant_scope(
    db: Session,
    user_id: int,
    permission_name: str,
    location_id: Optional[int] = None,
    include_descendants: bool = False,
    is_global: bool = False,
    valid_from: Optional[datetime] = None,
    valid_until: Optional[datetime] = None,
    actor_id: Optional[int] = None,
) -> PermissionScope:
    """Grant a direct, location-qualified, time-bounded permission."""
    _get_user(db, user_id)
    permission = ensure_permission(db, permission_name)
    if not is_global:
        if location_id is None:
            raise PreconditionError("A non-global scope needs a location")
        if db.get(Location, location_id) is None:
            raise NotFoundError(f"Location {location_id} not found")
    valid_from = ensure_utc(valid_from) or now_utc()
    valid_until = ensure_utc(valid_until)
    if valid_until is not None and valid_until <= valid_from:
        raise PreconditionError("valid_until must be after valid_from")

    scope = PermissionScope(
        user_id=user_id,
        permission_id=permission.id,
        location_id=None if is_global else location_id,
        include_descendants=include_descendants,
        is_global=is_global,
        valid_from=valid_from,
        valid_until=valid_until,
        status=ScopeStatus.ACTIVE,
        source=ScopeSource.DIRECT,
    )
    db.add(scope)
    db.flush()
    log_audit(
        db, actor_id, "GRANT_SCOPE", "permission_scope", scope.id,
        {"user_id": user_id, "permission": permission_name, "location_id": location_id, "is_global": is_global},
    )
    db.commit()
    db.refresh(scope)
    return scope


def revoke_scope(db: Session, scope_id: int, actor_id: Optional[int] = None) -> PermissionScope:
    scope = db.get(PermissionScope, scope_id)
    if not scope:
        raise NotFoundError(f"Permission scope {scope_id} not found")
    if scope.status != ScopeStatus.ACTIVE:
        raise PreconditionError(f"Permission scope {scope_id} is already inactive")
    scope.status = ScopeStatus.INACTIVE
    log_audit(db, actor_id, "REVOKE_SCOPE", "permission_scope", scope_id, {"user_id": scope.user_id})
    db.commit()
    db.refresh(scope)
    return scope
