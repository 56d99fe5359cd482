"""
Authority resolution service

authorize(user, permission, location) answers whether a user holds a
permission at a location. Layers, in order:

1. the user must be active and not deleted
2. ``system.admin`` granted through an active role authorizes everything
3. role grants: a role in ``global`` scope mode authorizes anywhere; a
   ``scoped`` role needs a matching PermissionScope row, mirrored or direct
4. without a role granting the permission no scope row counts
5. active delegations at exactly this location re-run the check as the
   delegator (one hop, no chains)

Authorization failures never raise here; callers decide 401/403.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Set

from pydantic import BaseModel
from sqlalchemy.orm import Session

from hrflow.core.config import settings
from hrflow.core.errors import AuthorizationError
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
from hrflow.models.delegation import Delegation, DelegationStatus
from hrflow.models.location import Location
from hrflow.models.user import User
from hrflow.services.authority_cache import authority_cache
from hrflow.services.location_service import get_fallback_location_id, path_is_under
from hrflow.utils.datetime_utils import ensure_utc, now_utc, within_window

logger = logging.getLogger(__name__)


class AuthorityResult(BaseModel):
    authorized: bool
    reason: str
    source: Optional[str] = None  # system_admin | role | scope | delegation
    delegation_id: Optional[int] = None


def _denied(reason: str) -> AuthorityResult:
    return AuthorityResult(authorized=False, reason=reason)


def get_role_grants(db: Session, user_id: int) -> Dict[str, Set[RoleScopeMode]]:
    """Permission name -> scope modes of the user's active roles granting it."""
    rows = (
        db.query(Permission.name, Role.scope_mode)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(Role, Role.id == RolePermission.role_id)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(
            UserRole.user_id == user_id,
            UserRole.deleted_at.is_(None),
            Role.status == RoleStatus.ACTIVE,
        )
        .all()
    )
    grants: Dict[str, Set[RoleScopeMode]] = {}
    for name, mode in rows:
        grants.setdefault(name, set()).add(mode)
    return grants


def has_system_admin(db: Session, user_id: int) -> bool:
    return settings.SYSTEM_ADMIN_PERMISSION in get_role_grants(db, user_id)


def _scope_rows(db: Session, user_ids: Set[int], permission: str) -> List[PermissionScope]:
    if not user_ids:
        return []
    return (
        db.query(PermissionScope)
        .join(Permission, Permission.id == PermissionScope.permission_id)
        .filter(
            PermissionScope.user_id.in_(user_ids),
            Permission.name == permission,
            PermissionScope.status == ScopeStatus.ACTIVE,
        )
        .all()
    )


def next_grant_boundary(db: Session, user_id: int, permission: str, now: datetime) -> Optional[datetime]:
    """
    Earliest future instant at which a scope or delegation window that can
    affect (user_id, permission) opens or closes. A cached result for the
    pair is only valid until then.
    """
    delegations = (
        db.query(Delegation)
        .join(Permission, Permission.id == Delegation.permission_id)
        .filter(
            Delegation.delegate_id == user_id,
            Permission.name == permission,
            Delegation.status == DelegationStatus.ACTIVE,
            Delegation.revoked_at.is_(None),
        )
        .all()
    )
    holders = {user_id} | {d.delegator_id for d in delegations}
    edges = [d.starts_at for d in delegations] + [d.ends_at for d in delegations]
    for scope in _scope_rows(db, holders, permission):
        edges.extend((scope.valid_from, scope.valid_until))

    now = ensure_utc(now)
    future = [ensure_utc(edge) for edge in edges if edge is not None and ensure_utc(edge) > now]
    return min(future) if future else None


def get_active_scopes(db: Session, user_id: int, permission: str, now: datetime) -> List[PermissionScope]:
    scopes = _scope_rows(db, {user_id}, permission)
    return [s for s in scopes if within_window(now, s.valid_from, s.valid_until)]


def scope_matches(
    db: Session,
    scope: PermissionScope,
    target: Location,
    include_descendants: bool = False,
) -> bool:
    """
    A scope covers the target when it is global, sits at the target, or
    includes descendants and the target lies below it. With
    include_descendants requested, a scope anywhere below the target also counts.
    """
    if scope.is_global:
        return True
    if scope.location_id is None:
        return False
    if scope.location_id == target.id:
        return True
    scope_location = db.get(Location, scope.location_id)
    if scope_location is None:
        return False
    if scope.include_descendants and path_is_under(target.path, scope_location.path):
        return True
    if include_descendants and path_is_under(scope_location.path, target.path):
        return True
    return False


def get_matching_delegations(
    db: Session,
    user_id: int,
    permission: str,
    location_id: int,
    now: datetime,
) -> List[Delegation]:
    """Active delegations to user_id for permission at exactly location_id."""
    rows = (
        db.query(Delegation)
        .join(Permission, Permission.id == Delegation.permission_id)
        .filter(
            Delegation.delegate_id == user_id,
            Permission.name == permission,
            Delegation.location_id == location_id,
            Delegation.status == DelegationStatus.ACTIVE,
            Delegation.revoked_at.is_(None),
        )
        .order_by(Delegation.id)
        .all()
    )
    return [d for d in rows if within_window(now, d.starts_at, d.ends_at)]


def _resolve(
    db: Session,
    user_id: int,
    permission: str,
    target: Location,
    include_descendants: bool,
    follow_delegations: bool,
    now: datetime,
) -> AuthorityResult:
    user = db.get(User, user_id)
    if not user or not user.is_active:
        return _denied(f"User {user_id} is inactive or does not exist")

    grants = get_role_grants(db, user_id)
    if settings.SYSTEM_ADMIN_PERMISSION in grants:
        return AuthorityResult(authorized=True, reason="Granted by system administrator role", source="system_admin")

    role_modes = grants.get(permission, set())
    if RoleScopeMode.GLOBAL in role_modes:
        return AuthorityResult(authorized=True, reason=f"Role grants '{permission}' at every location", source="role")

    # A scope only narrows a role grant to locations; it never grants alone
    scopes = get_active_scopes(db, user_id, permission, now) if role_modes else []
    for scope in scopes:
        if scope_matches(db, scope, target, include_descendants):
            return AuthorityResult(
                authorized=True,
                reason=f"Scope {scope.id} covers location {target.id}",
                source="scope" if scope.source == ScopeSource.DIRECT else "role",
            )

    if follow_delegations:
        for delegation in get_matching_delegations(db, user_id, permission, target.id, now):
            # A delegation conveys the delegator's right; it must still hold
            delegator_result = _resolve(
                db, delegation.delegator_id, permission, target,
                include_descendants=False, follow_delegations=False, now=now,
            )
            if delegator_result.authorized:
                return AuthorityResult(
                    authorized=True,
                    reason=f"Delegated by user {delegation.delegator_id}",
                    source="delegation",
                    delegation_id=delegation.id,
                )
            logger.debug(
                "Delegation %s skipped: delegator %s no longer holds %s at %s",
                delegation.id, delegation.delegator_id, permission, target.id,
            )

    if role_modes:
        return _denied(f"No scope for '{permission}' covers location {target.id}")
    return _denied(f"User {user_id} does not hold '{permission}'")


def authorize(
    db: Session,
    user_id: int,
    permission: str,
    location_id: Optional[int],
    include_descendants: bool = False,
    now: Optional[datetime] = None,
) -> AuthorityResult:
    """
    Does user_id hold permission at location_id?

    Fails closed when no location is given or the location does not exist.
    Results for the current time are served from and stored in the authority
    cache, each for no longer than the next scope or delegation window
    boundary of the user and permission.
    """
    if location_id is None:
        return _denied("No location resolved for authority check")

    use_cache = now is None and authority_cache.enabled
    if use_cache:
        cached = authority_cache.get(user_id, location_id, permission, include_descendants)
        if cached is not None:
            return AuthorityResult(**cached)

    target = db.get(Location, location_id)
    if target is None:
        return _denied(f"Location {location_id} does not exist")

    at = now or now_utc()
    result = _resolve(
        db, user_id, permission, target,
        include_descendants=include_descendants,
        follow_delegations=True,
        now=at,
    )
    if use_cache:
        ttl = None
        boundary = next_grant_boundary(db, user_id, permission, at)
        if boundary is not None:
            ttl = int((boundary - at).total_seconds())
        authority_cache.put(user_id, location_id, permission, include_descendants, result.model_dump(), ttl=ttl)
    return result


def resolve_check_location(db: Session, user: User) -> Optional[int]:
    """Location used for checks that have no natural location: primary, else first active."""
    if user.primary_location_id is not None:
        return user.primary_location_id
    return get_fallback_location_id(db)


def require_permission(
    db: Session,
    user: User,
    permission: str,
    location_id: Optional[int] = None,
    include_descendants: bool = False,
) -> AuthorityResult:
    """Raise AuthorizationError unless the user holds permission at the location."""
    if location_id is None:
        location_id = resolve_check_location(db, user)
    result = authorize(db, user.id, permission, location_id, include_descendants)
    if not result.authorized:
        raise AuthorizationError(f"Forbidden - {result.reason}")
    return result


def holds_any_grant(db: Session, user_id: int, permission: str, now: Optional[datetime] = None) -> bool:
    """Location-agnostic test: a role grant or an active delegation for permission."""
    now = now or now_utc()
    grants = get_role_grants(db, user_id)
    if settings.SYSTEM_ADMIN_PERMISSION in grants or permission in grants:
        return True
    delegations = (
        db.query(Delegation)
        .join(Permission, Permission.id == Delegation.permission_id)
        .filter(
            Delegation.delegate_id == user_id,
            Permission.name == permission,
            Delegation.status == DelegationStatus.ACTIVE,
            Delegation.revoked_at.is_(None),
        )
        .all()
    )
    return any(within_window(now, d.starts_at, d.ends_at) for d in delegations)
