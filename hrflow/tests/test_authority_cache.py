"""
Tests for the authority cache: entry lifetime and transaction-bound invalidation
"""
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_LEAVE_APPROVE
from hrflow.models.access import PermissionScope, ScopeStatus
from hrflow.models.user import User
from hrflow.services import authority_cache as authority_cache_module
from hrflow.services import authority_service, delegation_service, location_service, role_service
from hrflow.services.authority_cache import authority_cache
from hrflow.services.authority_service import authorize
from hrflow.utils.datetime_utils import now_utc


class FakeClock:
    def __init__(self):
        self.now = now_utc()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(authority_service, "now_utc", fake)
    monkeypatch.setattr(authority_cache_module, "now_utc", fake)
    return fake


@pytest.fixture
def locations(db: Session):
    hq = location_service.create_location(db, "HQ")
    region = location_service.create_location(db, "Region", hq.id)
    branch = location_service.create_location(db, "Branch", region.id)
    return {"hq": hq, "region": region, "branch": branch}


@pytest.fixture
def approver(db: Session, locations):
    user = User(email="approver@company.com", name="Approver", primary_location_id=locations["region"].id)
    db.add(user)
    db.commit()
    role = role_service.create_role(db, "Line Manager", [PERM_LEAVE_APPROVE])
    role_service.assign_role(db, user.id, role.id)
    db.refresh(user)
    return user


def _cached(user_id, location_id):
    return authority_cache.get(user_id, location_id, PERM_LEAVE_APPROVE, False)


def test_cached_grant_not_served_after_scope_expires(db, locations, approver, clock):
    branch_id = locations["branch"].id
    clock.now = now_utc()
    role_service.grant_scope(
        db, approver.id, PERM_LEAVE_APPROVE, location_id=branch_id,
        valid_from=clock.now - timedelta(minutes=1), valid_until=clock.now + timedelta(seconds=30),
    )

    assert authorize(db, approver.id, PERM_LEAVE_APPROVE, branch_id).authorized
    assert _cached(approver.id, branch_id)["authorized"]

    clock.advance(seconds=31)

    assert _cached(approver.id, branch_id) is None
    assert not authorize(db, approver.id, PERM_LEAVE_APPROVE, branch_id).authorized


def test_result_not_cached_when_window_closes_within_a_second(db, locations, approver, clock):
    branch_id = locations["branch"].id
    clock.now = now_utc()
    role_service.grant_scope(
        db, approver.id, PERM_LEAVE_APPROVE, location_id=branch_id,
        valid_from=clock.now - timedelta(minutes=1), valid_until=clock.now + timedelta(milliseconds=500),
    )

    assert authorize(db, approver.id, PERM_LEAVE_APPROVE, branch_id).authorized
    assert _cached(approver.id, branch_id) is None

    clock.advance(seconds=1)

    assert not authorize(db, approver.id, PERM_LEAVE_APPROVE, branch_id).authorized


def test_denial_cached_only_until_scope_starts(db, locations, approver, clock):
    branch_id = locations["branch"].id
    clock.now = now_utc()
    role_service.grant_scope(
        db, approver.id, PERM_LEAVE_APPROVE, location_id=branch_id,
        valid_from=clock.now + timedelta(seconds=10),
    )

    assert not authorize(db, approver.id, PERM_LEAVE_APPROVE, branch_id).authorized

    clock.advance(seconds=10)

    assert authorize(db, approver.id, PERM_LEAVE_APPROVE, branch_id).authorized


def test_delegated_grant_not_served_after_delegation_ends(db, locations, approver, clock):
    region_id = locations["region"].id
    deputy = User(email="deputy@company.com", name="Deputy", primary_location_id=locations["branch"].id)
    db.add(deputy)
    db.commit()
    clock.now = now_utc()
    delegation_service.create_delegation(
        db, approver.id, deputy.id, PERM_LEAVE_APPROVE, region_id,
        starts_at=clock.now - timedelta(minutes=1), ends_at=clock.now + timedelta(minutes=1),
    )

    result = authorize(db, deputy.id, PERM_LEAVE_APPROVE, region_id)
    assert result.authorized
    assert result.source == "delegation"

    clock.advance(minutes=1)

    assert not authorize(db, deputy.id, PERM_LEAVE_APPROVE, region_id).authorized


def test_commit_clears_results_cached_after_flush(db, locations, approver):
    region_id = locations["region"].id
    scope = db.query(PermissionScope).filter(PermissionScope.user_id == approver.id).one()
    scope.status = ScopeStatus.INACTIVE
    db.flush()

    # Computed by another session from the grant that is still committed
    authority_cache.put(
        approver.id, region_id, PERM_LEAVE_APPROVE, False,
        {"authorized": True, "reason": "Scope covers location", "source": "role"},
    )
    db.commit()

    assert _cached(approver.id, region_id) is None
    assert not authorize(db, approver.id, PERM_LEAVE_APPROVE, region_id).authorized


def test_rollback_clears_results_computed_from_discarded_rows(db, locations, approver):
    region_id = locations["region"].id
    scope = db.query(PermissionScope).filter(PermissionScope.user_id == approver.id).one()
    scope.status = ScopeStatus.INACTIVE
    db.flush()

    assert not authorize(db, approver.id, PERM_LEAVE_APPROVE, region_id).authorized
    assert _cached(approver.id, region_id) is not None

    db.rollback()

    assert _cached(approver.id, region_id) is None
    assert authorize(db, approver.id, PERM_LEAVE_APPROVE, region_id).authorized


def test_zero_ttl_disables_caching(db, locations, approver, monkeypatch):
    monkeypatch.setattr(authority_cache, "ttl_seconds", 0)
    region_id = locations["region"].id

    assert authorize(db, approver.id, PERM_LEAVE_APPROVE, region_id).authorized
    assert _cached(approver.id, region_id) is None
