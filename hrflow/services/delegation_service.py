"""
Delegation ledger service

A delegation lets a delegate exercise the delegator's authority for one
permission at one location while it is active and inside its window.
Revocation is terminal; expiry is derived from ``ends_at``.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from hrflow.core.errors import AuthorizationError, NotFoundError, PreconditionError
from hrflow.models.delegation import Delegation, DelegationStatus
from hrflow.models.user import User
from hrflow.services.audit_service import log_audit
from hrflow.services.authority_service import authorize, has_system_admin
from hrflow.services.location_service import get_location
from hrflow.services.role_service import get_permission_by_name
from hrflow.utils.datetime_utils import ensure_utc, now_utc, within_window

logger = logging.getLogger(__name__)


def _windows_overlap(
    start_a: datetime,
    end_a: Optional[datetime],
    start_b: datetime,
    end_b: Optional[datetime],
) -> bool:
    """Half-open windows [start, end) overlap; a missing end is open."""
    start_a, end_a, start_b, end_b = map(ensure_utc, (start_a, end_a, start_b, end_b))
    if end_a is not None and end_a <= start_b:
        return False
    if end_b is not None and end_b <= start_a:
        return False
    return True


def has_overlapping_delegation(
    db: Session,
    delegator_id: int,
    delegate_id: int,
    permission_id: int,
    location_id: int,
    starts_at: datetime,
    ends_at: Optional[datetime],
    exclude_id: Optional[int] = None,
) -> bool:
    query = db.query(Delegation).filter(
        Delegation.delegator_id == delegator_id,
        Delegation.delegate_id == delegate_id,
        Delegation.permission_id == permission_id,
        Delegation.location_id == location_id,
        Delegation.status == DelegationStatus.ACTIVE,
        Delegation.revoked_at.is_(None),
    )
    if exclude_id is not None:
        query = query.filter(Delegation.id != exclude_id)
    return any(
        _windows_overlap(starts_at, ends_at, existing.starts_at, existing.ends_at)
        for existing in query.all()
    )


def create_delegation(
    db: Session,
    delegator_id: int,
    delegate_id: int,
    permission_name: str,
    location_id: int,
    starts_at: Optional[datetime] = None,
    ends_at: Optional[datetime] = None,
    reason: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> Delegation:
    """
    Record a delegation.

    The delegator must currently hold the permission at the location, and
    there must be no overlapping active delegation for the same
    (delegator, delegate, permission, location).
    """
    if delegator_id == delegate_id:
        raise PreconditionError("Cannot delegate to yourself")

    starts_at = ensure_utc(starts_at) or now_utc()
    ends_at = ensure_utc(ends_at)
    if ends_at is not None and ends_at <= starts_at:
        raise PreconditionError("ends_at must be after starts_at")

    for user_id in (delegator_id, delegate_id):
        user = db.get(User, user_id)
        if not user or not user.is_active:
            raise NotFoundError(f"User with id {user_id} not found or inactive")

    get_location(db, location_id)
    permission = get_permission_by_name(db, permission_name)

    # Delegating on behalf of someone else is an administrator action
    if actor_id is not None and actor_id != delegator_id and not has_system_admin(db, actor_id):
        raise AuthorizationError("Only a system administrator can delegate on behalf of another user")

    held = authorize(db, delegator_id, permission_name, location_id)
    if not held.authorized:
        raise PreconditionError(
            f"Delegator does not hold '{permission_name}' at location {location_id}: {held.reason}"
        )

    if has_overlapping_delegation(db, delegator_id, delegate_id, permission.id, location_id, starts_at, ends_at):
        raise PreconditionError("An overlapping active delegation already exists")

    delegation = Delegation(
        delegator_id=delegator_id,
        delegate_id=delegate_id,
        permission_id=permission.id,
        location_id=location_id,
        status=DelegationStatus.ACTIVE,
        starts_at=starts_at,
        ends_at=ends_at,
        reason=reason,
    )
    db.add(delegation)
    db.flush()
    log_audit(
        db, actor_id or delegator_id, "CREATE", "delegation", delegation.id,
        {
            "delegator_id": delegator_id,
            "delegate_id": delegate_id,
            "permission": permission_name,
            "location_id": location_id,
        },
    )
    db.commit()
    db.refresh(delegation)
    logger.info(
        "Delegation %s: user %s -> user %s for %s at location %s",
        delegation.id, delegator_id, delegate_id, permission_name, location_id,
    )
    return delegation


def get_delegation(db: Session, delegation_id: int) -> Delegation:
    delegation = db.get(Delegation, delegation_id)
    if not delegation:
        raise NotFoundError(f"Delegation {delegation_id} not found")
    return delegation


def revoke_delegation(db: Session, delegation_id: int, actor_id: int) -> Delegation:
    """Revoke a delegation. Only the delegator or a system administrator may revoke."""
    delegation = get_delegation(db, delegation_id)
    if actor_id != delegation.delegator_id and not has_system_admin(db, actor_id):
        raise AuthorizationError("Only the delegator or a system administrator can revoke this delegation")
    if delegation.status != DelegationStatus.ACTIVE:
        raise PreconditionError(f"Delegation {delegation_id} is already {delegation.status.value}")

    delegation.status = DelegationStatus.REVOKED
    delegation.revoked_at = now_utc()
    delegation.revoked_by = actor_id
    log_audit(db, actor_id, "REVOKE", "delegation", delegation_id, {"delegate_id": delegation.delegate_id})
    db.commit()
    db.refresh(delegation)
    return delegation


def expire_delegations(db: Session, now: Optional[datetime] = None) -> int:
    """Mark active delegations whose window has closed as expired."""
    now = now or now_utc()
    elapsed = (
        db.query(Delegation)
        .filter(
            Delegation.status == DelegationStatus.ACTIVE,
            Delegation.ends_at.isnot(None),
        )
        .all()
    )
    expired = [d for d in elapsed if ensure_utc(d.ends_at) <= ensure_utc(now)]
    if not expired:
        return 0
    # ORM updates, not a bulk UPDATE: the flush listener invalidates cached authority
    for delegation in expired:
        delegation.status = DelegationStatus.EXPIRED
    expired_ids = [d.id for d in expired]
    log_audit(db, None, "EXPIRE", "delegation", None, {"delegation_ids": expired_ids})
    db.commit()
    logger.info("Expired %d delegations", len(expired_ids))
    return len(expired_ids)


def list_active_delegations_for(db: Session, delegate_id: int, now: Optional[datetime] = None) -> List[Delegation]:
    """Delegations the user can exercise right now."""
    now = now or now_utc()
    rows = (
        db.query(Delegation)
        .filter(
            Delegation.delegate_id == delegate_id,
            Delegation.status == DelegationStatus.ACTIVE,
            Delegation.revoked_at.is_(None),
        )
        .order_by(Delegation.starts_at)
        .all()
    )
    return [d for d in rows if within_window(now, d.starts_at, d.ends_at)]


def list_delegations_by(
    db: Session,
    delegator_id: int,
    status: Optional[DelegationStatus] = None,
) -> List[Delegation]:
    query = db.query(Delegation).filter(Delegation.delegator_id == delegator_id)
    if status is not None:
        query = query.filter(Delegation.status == status)
    return query.order_by(Delegation.created_at.desc(), Delegation.id.desc()).all()


def list_delegations(
    db: Session,
    user_id: Optional[int] = None,
    status: Optional[DelegationStatus] = None,
) -> List[Delegation]:
    """All delegations, or those where user_id is delegator or delegate."""
    query = db.query(Delegation)
    if user_id is not None:
        query = query.filter((Delegation.delegator_id == user_id) | (Delegation.delegate_id == user_id))
    if status is not None:
        query = query.filter(Delegation.status == status)
    return query.order_by(Delegation.id.desc()).all()
