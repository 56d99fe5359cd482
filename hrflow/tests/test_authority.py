"""
Tests for authority resolution: roles, scopes, system admin and fail-closed cases
"""
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_LEAVE_APPROVE, PERM_SYSTEM_ADMIN
from hrflow.core.errors import AuthorizationError, PreconditionError
from hrflow.models.access import PermissionScope, RoleScopeMode, ScopeSource, ScopeStatus
from hrflow.models.user import User, UserStatus
from hrflow.services import location_service, role_service
from hrflow.services.authority_service import authorize, holds_any_grant, require_permission
from hrflow.utils.datetime_utils import now_utc


@pytest.fixture
def locations(db: Session):
    hq = location_service.create_location(db, "HQ")
    region = location_service.create_location(db, "Region", hq.id)
    branch = location_service.create_location(db, "Branch", region.id)
    other = location_service.create_location(db, "Other Region", hq.id)
    return {"hq": hq, "region": region, "branch": branch, "other": other}


@pytest.fixture
def manager(db: Session, locations):
    user = User(email="mgr@company.com", name="Manager", primary_location_id=locations["region"].id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _grant_line_role(db: Session, user: User) -> None:
    """Scoped role granting leave approval; mirrors a scope at the user's primary location"""
    role = role_service.create_role(db, "Line Manager", [PERM_LEAVE_APPROVE])
    role_service.assign_role(db, user.id, role.id)


def test_global_role_authorizes_everywhere(db, locations, manager):
    role = role_service.create_role(db, "HR Manager", [PERM_LEAVE_APPROVE], scope_mode=RoleScopeMode.GLOBAL)
    role_service.assign_role(db, manager.id, role.id)

    for location in locations.values():
        result = authorize(db, manager.id, PERM_LEAVE_APPROVE, location.id)
        assert result.authorized
        assert result.source == "role"


def test_scoped_role_mirrors_scope_at_primary_location(db, locations, manager):
    role = role_service.create_role(db, "Regional Approver", [PERM_LEAVE_APPROVE])
    role_service.assign_role(db, manager.id, role.id)

    scope = db.query(PermissionScope).filter(PermissionScope.user_id == manager.id).one()
    assert scope.source == ScopeSource.ROLE_SYNC
    assert scope.location_id == locations["region"].id
    assert scope.role_id == role.id

    assert authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["region"].id).authorized
    # mirrored scopes do not reach descendants
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["branch"].id).authorized
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["other"].id).authorized


def test_scoped_role_for_user_without_location_is_global(db, locations):
    user = User(email="floater@company.com", name="Floater")
    db.add(user)
    db.commit()
    role = role_service.create_role(db, "Floating Approver", [PERM_LEAVE_APPROVE])
    role_service.assign_role(db, user.id, role.id)

    scope = db.query(PermissionScope).filter(PermissionScope.user_id == user.id).one()
    assert scope.is_global
    assert authorize(db, user.id, PERM_LEAVE_APPROVE, locations["other"].id).authorized


def test_direct_scope_with_descendants(db, locations, manager):
    _grant_line_role(db, manager)
    role_service.grant_scope(
        db, manager.id, PERM_LEAVE_APPROVE,
        location_id=locations["region"].id, include_descendants=True,
    )

    result = authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["branch"].id)
    assert result.authorized
    assert result.source == "scope"
    assert authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["region"].id).authorized
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["hq"].id).authorized
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["other"].id).authorized


def test_include_descendants_request_matches_scope_below_target(db, locations):
    # Based in the other region so the mirrored scope stays out of the way
    manager = User(email="far@company.com", name="Far Manager", primary_location_id=locations["other"].id)
    db.add(manager)
    db.commit()
    _grant_line_role(db, manager)
    role_service.grant_scope(db, manager.id, PERM_LEAVE_APPROVE, location_id=locations["branch"].id)

    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["region"].id).authorized
    assert authorize(
        db, manager.id, PERM_LEAVE_APPROVE, locations["region"].id, include_descendants=True
    ).authorized


def test_system_admin_bypasses_location(db, locations, manager):
    admin_role = role_service.create_role(db, "Admin", [PERM_SYSTEM_ADMIN])
    role_service.assign_role(db, manager.id, admin_role.id)

    result = authorize(db, manager.id, "anything.at.all", locations["other"].id)
    assert result.authorized
    assert result.source == "system_admin"


def test_inactive_user_denied(db, locations, manager):
    role = role_service.create_role(db, "HR", [PERM_LEAVE_APPROVE], scope_mode=RoleScopeMode.GLOBAL)
    role_service.assign_role(db, manager.id, role.id)
    assert authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["hq"].id).authorized

    manager.status = UserStatus.INACTIVE
    db.commit()

    result = authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["hq"].id)
    assert not result.authorized
    assert "inactive" in result.reason


def test_missing_location_fails_closed(db, locations, manager):
    role = role_service.create_role(db, "HR", [PERM_LEAVE_APPROVE], scope_mode=RoleScopeMode.GLOBAL)
    role_service.assign_role(db, manager.id, role.id)

    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, None).authorized
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, 9999).authorized


def test_mirrored_scope_ignored_once_role_revoked(db, locations, manager):
    role = role_service.create_role(db, "Regional Approver", [PERM_LEAVE_APPROVE])
    role_service.assign_role(db, manager.id, role.id)
    assert authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["region"].id).authorized

    role_service.revoke_role(db, manager.id, role.id)

    scope = db.query(PermissionScope).filter(PermissionScope.user_id == manager.id).one()
    assert scope.status == ScopeStatus.INACTIVE
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["region"].id).authorized


def test_mirrored_scope_kept_while_another_role_grants(db, locations, manager):
    first = role_service.create_role(db, "Approver A", [PERM_LEAVE_APPROVE])
    second = role_service.create_role(db, "Approver B", [PERM_LEAVE_APPROVE])
    role_service.assign_role(db, manager.id, first.id)
    role_service.assign_role(db, manager.id, second.id)

    role_service.revoke_role(db, manager.id, first.id)

    assert authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["region"].id).authorized


def test_scope_time_window(db, locations, manager):
    _grant_line_role(db, manager)
    start = now_utc()
    role_service.grant_scope(
        db, manager.id, PERM_LEAVE_APPROVE,
        location_id=locations["branch"].id,
        valid_from=start, valid_until=start + timedelta(days=1),
    )
    branch_id = locations["branch"].id

    assert authorize(db, manager.id, PERM_LEAVE_APPROVE, branch_id, now=start + timedelta(hours=1)).authorized
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, branch_id, now=start - timedelta(hours=1)).authorized
    # valid_until is exclusive
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, branch_id, now=start + timedelta(days=1)).authorized


def test_revoked_scope_denied(db, locations, manager):
    _grant_line_role(db, manager)
    scope = role_service.grant_scope(db, manager.id, PERM_LEAVE_APPROVE, location_id=locations["branch"].id)
    assert authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["branch"].id).authorized

    role_service.revoke_scope(db, scope.id)

    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["branch"].id).authorized


def test_direct_scope_without_role_grant_denied(db, locations, manager):
    role_service.grant_scope(
        db, manager.id, PERM_LEAVE_APPROVE,
        location_id=locations["region"].id, include_descendants=True,
    )

    result = authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["branch"].id)
    assert not result.authorized
    assert "does not hold" in result.reason
    assert not authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["region"].id).authorized

    _grant_line_role(db, manager)

    assert authorize(db, manager.id, PERM_LEAVE_APPROVE, locations["branch"].id).authorized


def test_require_permission_uses_primary_location(db, locations, manager):
    _grant_line_role(db, manager)

    assert require_permission(db, manager, PERM_LEAVE_APPROVE).authorized
    with pytest.raises(AuthorizationError):
        require_permission(db, manager, PERM_LEAVE_APPROVE, locations["other"].id)


def test_holds_any_grant(db, locations, manager):
    role_service.grant_scope(db, manager.id, PERM_LEAVE_APPROVE, location_id=locations["branch"].id)
    assert not holds_any_grant(db, manager.id, PERM_LEAVE_APPROVE)
    _grant_line_role(db, manager)
    assert holds_any_grant(db, manager.id, PERM_LEAVE_APPROVE)


def test_grant_scope_rejects_inverted_window(db, locations, manager):
    start = now_utc()
    with pytest.raises(PreconditionError):
        role_service.grant_scope(
            db, manager.id, PERM_LEAVE_APPROVE,
            location_id=locations["region"].id,
            valid_from=start, valid_until=start - timedelta(minutes=1),
        )
