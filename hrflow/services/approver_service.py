"""
Approver resolution

resolve_approvers(step, resource location, owner) returns the set of user ids
allowed to act on a step. Every strategy only returns users who also pass
authorize(required_permission) at the resource location, so the resolved set
is exactly who can act: approval, the pending queues, instance detail and the
stalled listing all read the same set. The first approver to act resolves
the step. An empty set is not an error here: it is reported by the
stalled-instance listing.
"""
import logging
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from hrflow.models.access import (
    Permission,
    PermissionScope,
    Role,
    RolePermission,
    RoleStatus,
    ScopeStatus,
    UserRole,
)
from hrflow.models.delegation import Delegation, DelegationStatus
from hrflow.models.location import Location
from hrflow.models.user import User, UserStatus
from hrflow.models.workflow import LocationScope, WorkflowInstance, WorkflowStep, WorkflowTemplate
from hrflow.schemas.workflow import (
    ApproverStrategy,
    CombinedStrategy,
    ManagerStrategy,
    PermissionStrategy,
    RoleStrategy,
)
from hrflow.services.authority_service import authorize
from hrflow.services.location_service import path_is_under
from hrflow.services.template_service import parse_step_strategy

logger = logging.getLogger(__name__)


def _active_users(db: Session, user_ids: Iterable[int]) -> List[User]:
    ids = set(user_ids)
    if not ids:
        return []
    return (
        db.query(User)
        .filter(User.id.in_(ids), User.status == UserStatus.ACTIVE, User.deleted_at.is_(None))
        .order_by(User.id)
        .all()
    )


def in_location_scope(
    db: Session,
    user: User,
    resource_location: Location,
    location_scope: LocationScope,
) -> bool:
    """
    same: the user's primary location is the resource location.
    ancestors: the resource location is the user's location or lies below it.
    all: no filter.
    """
    if location_scope == LocationScope.ALL:
        return True
    if user.primary_location_id is None:
        return False
    if user.primary_location_id == resource_location.id:
        return True
    if location_scope == LocationScope.SAME:
        return False
    user_location = db.get(Location, user.primary_location_id)
    return user_location is not None and path_is_under(resource_location.path, user_location.path)


def _role_members(db: Session, role_names: List[str]) -> List[User]:
    rows = (
        db.query(UserRole.user_id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(
            Role.name.in_(role_names),
            Role.status == RoleStatus.ACTIVE,
            UserRole.deleted_at.is_(None),
        )
        .distinct()
        .all()
    )
    return _active_users(db, [r[0] for r in rows])


def _resolve_by_role(
    db: Session,
    roles: List[str],
    required_permission: str,
    location_scope: LocationScope,
    resource_location: Location,
) -> Set[int]:
    approvers = set()
    for user in _role_members(db, roles):
        if not in_location_scope(db, user, resource_location, location_scope):
            continue
        result = authorize(db, user.id, required_permission, resource_location.id)
        if not result.authorized:
            logger.info(
                "Role member %s lacks %s at location %s: %s",
                user.id, required_permission, resource_location.id, result.reason,
            )
            continue
        approvers.add(user.id)
    return approvers


def _resolve_manager(
    db: Session,
    owner_id: Optional[int],
    required_permission: str,
    resource_location: Location,
) -> Set[int]:
    """The owner's direct manager, when active and holding the permission at the location."""
    if owner_id is None:
        return set()
    owner = db.get(User, owner_id)
    if not owner or owner.manager_id is None:
        return set()
    manager = db.get(User, owner.manager_id)
    if not manager or not manager.is_active:
        return set()
    result = authorize(db, manager.id, required_permission, resource_location.id)
    if not result.authorized:
        logger.info(
            "Manager %s of user %s lacks %s at location %s: %s",
            manager.id, owner_id, required_permission, resource_location.id, result.reason,
        )
        return set()
    return {manager.id}


def _permission_candidates(db: Session, permission: str, location_id: int) -> Set[int]:
    """Everyone who could hold the permission: role grantees, scope holders, delegates here."""
    role_holders = (
        db.query(UserRole.user_id)
        .join(Role, Role.id == UserRole.role_id)
        .join(RolePermission, RolePermission.role_id == Role.id)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .filter(Permission.name == permission, Role.status == RoleStatus.ACTIVE, UserRole.deleted_at.is_(None))
    )
    scope_holders = (
        db.query(PermissionScope.user_id)
        .join(Permission, Permission.id == PermissionScope.permission_id)
        .filter(Permission.name == permission, PermissionScope.status == ScopeStatus.ACTIVE)
    )
    delegates = (
        db.query(Delegation.delegate_id)
        .join(Permission, Permission.id == Delegation.permission_id)
        .filter(
            Permission.name == permission,
            Delegation.location_id == location_id,
            Delegation.status == DelegationStatus.ACTIVE,
        )
    )
    ids: Set[int] = set()
    for query in (role_holders, scope_holders, delegates):
        ids.update(row[0] for row in query.all())
    return ids


def _resolve_by_permission(
    db: Session,
    permission: str,
    location_scope: LocationScope,
    resource_location: Location,
) -> Set[int]:
    approvers = set()
    for user in _active_users(db, _permission_candidates(db, permission, resource_location.id)):
        result = authorize(db, user.id, permission, resource_location.id)
        if not result.authorized:
            continue
        # A delegate acts at the delegated location wherever they are based
        if result.source == "delegation" or in_location_scope(db, user, resource_location, location_scope):
            approvers.add(user.id)
    return approvers


def resolve_strategy(
    db: Session,
    strategy: ApproverStrategy,
    required_permission: str,
    resource_location_id: int,
    owner_id: Optional[int] = None,
) -> Set[int]:
    resource_location = db.get(Location, resource_location_id)
    if resource_location is None:
        return set()

    if isinstance(strategy, ManagerStrategy):
        return _resolve_manager(db, owner_id, required_permission, resource_location)

    if isinstance(strategy, CombinedStrategy):
        by_role = _resolve_by_role(db, strategy.roles, required_permission, strategy.location_scope, resource_location)
        return by_role | _resolve_manager(db, owner_id, required_permission, resource_location)

    if isinstance(strategy, RoleStrategy):
        approvers = _resolve_by_role(db, strategy.roles, required_permission, strategy.location_scope, resource_location)
    elif isinstance(strategy, PermissionStrategy):
        approvers = _resolve_by_permission(db, required_permission, strategy.location_scope, resource_location)
    else:
        raise TypeError(f"Unknown approver strategy {strategy!r}")

    if strategy.include_manager:
        approvers |= _resolve_manager(db, owner_id, required_permission, resource_location)
    return approvers


def resolve_approvers(
    db: Session,
    step: WorkflowStep,
    resource_location_id: int,
    owner_id: Optional[int] = None,
) -> Set[int]:
    """User ids eligible to act on ``step`` for a resource at resource_location_id."""
    return resolve_strategy(db, parse_step_strategy(step), step.required_permission, resource_location_id, owner_id)


def get_instance_step(instance: WorkflowInstance, step_order: Optional[int]) -> Optional[WorkflowStep]:
    if step_order is None:
        return None
    for step in instance.template.steps:
        if step.step_order == step_order:
            return step
    return None


def eligible_approvers(db: Session, instance: WorkflowInstance) -> Set[int]:
    """Resolved approvers for the instance's current step; empty when nothing is actionable."""
    step = get_instance_step(instance, instance.current_step_order)
    if step is None:
        return set()
    return resolve_approvers(db, step, instance.location_id, instance.created_by)


def can_act(db: Session, instance: WorkflowInstance, step: WorkflowStep, actor_id: int) -> tuple:
    """
    (allowed, reason). Acting needs both authority for the step's permission
    at the instance location and membership in the resolved approver set.
    """
    result = authorize(db, actor_id, step.required_permission, instance.location_id)
    if not result.authorized:
        return False, result.reason
    if actor_id not in resolve_approvers(db, step, instance.location_id, instance.created_by):
        return False, f"User {actor_id} is not an eligible approver for step {step.step_order}"
    return True, result.reason


def preview_approvers(
    db: Session,
    template: WorkflowTemplate,
    location_id: int,
    owner_id: Optional[int] = None,
) -> List[dict]:
    """Who each step of a template would resolve to for a resource at location_id."""
    return [
        {
            "step_order": step.step_order,
            "approver_strategy": step.approver_strategy,
            "approver_ids": sorted(resolve_approvers(db, step, location_id, owner_id)),
        }
        for step in template.steps
    ]
