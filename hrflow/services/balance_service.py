"""
Leave balance ledger

One row per (user, leave type, year) with allocated/used/pending counters.
The counters are authoritative and are never recomputed from history.

- add_pending / remove_pending / convert_pending_to_used run inside the
  caller's workflow transaction and never commit.
- allocate / adjust / reset are administrator operations and commit;
  add_allocation is the accrual run's non-committing variant.
- bulk_allocate / bulk_reset give each user a savepoint and report
  per-user outcomes instead of failing the batch.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hrflow.core.errors import NotFoundError, PreconditionError
from hrflow.models.access import UserRole
from hrflow.models.leave import (
    LeaveBalance,
    LeaveBalanceAdjustment,
    LeaveBalanceReset,
    LeaveType,
    ResetType,
)
from hrflow.models.user import User, UserStatus
from hrflow.services.audit_service import log_audit
from hrflow.utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

Number = Union[Decimal, int, float, str]


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def get_or_create_balance(
    db: Session,
    user_id: int,
    leave_type_id: int,
    year: int,
    lock: bool = True,
) -> LeaveBalance:
    """Fetch (locking for update) or create the ledger row."""
    query = db.query(LeaveBalance).filter(
        LeaveBalance.user_id == user_id,
        LeaveBalance.leave_type_id == leave_type_id,
        LeaveBalance.year == year,
    )
    if lock:
        query = query.with_for_update()
    balance = query.first()
    if balance:
        return balance
    balance = LeaveBalance(
        user_id=user_id,
        leave_type_id=leave_type_id,
        year=year,
        allocated=ZERO,
        used=ZERO,
        pending=ZERO,
    )
    db.add(balance)
    db.flush()
    return balance


def available_days(balance: LeaveBalance) -> Decimal:
    return max(ZERO, _dec(balance.allocated) - _dec(balance.used) - _dec(balance.pending))


def is_over_allocated(balance: LeaveBalance) -> bool:
    """used + pending above allocated: a warning, not a constraint."""
    return _dec(balance.used) + _dec(balance.pending) > _dec(balance.allocated)


def _warn_if_over_allocated(balance: LeaveBalance) -> None:
    if is_over_allocated(balance):
        logger.warning(
            "Leave balance over allocation: user=%s leave_type=%s year=%s allocated=%s used=%s pending=%s",
            balance.user_id, balance.leave_type_id, balance.year,
            balance.allocated, balance.used, balance.pending,
        )


# --- Workflow primitives (no commit) ---

def add_pending(db: Session, user_id: int, leave_type_id: int, year: int, days: Number) -> LeaveBalance:
    days = _dec(days)
    if days < 0:
        raise PreconditionError("Pending days must not be negative")
    balance = get_or_create_balance(db, user_id, leave_type_id, year)
    balance.pending = _dec(balance.pending) + days
    _warn_if_over_allocated(balance)
    return balance


def remove_pending(db: Session, user_id: int, leave_type_id: int, year: int, days: Number) -> LeaveBalance:
    days = _dec(days)
    balance = get_or_create_balance(db, user_id, leave_type_id, year)
    current = _dec(balance.pending)
    if days > current:
        logger.warning(
            "Releasing %s pending days but only %s pending (user=%s leave_type=%s year=%s); clamping at 0",
            days, current, user_id, leave_type_id, year,
        )
    balance.pending = max(ZERO, current - days)
    return balance


def convert_pending_to_used(db: Session, user_id: int, leave_type_id: int, year: int, days: Number) -> LeaveBalance:
    days = _dec(days)
    balance = get_or_create_balance(db, user_id, leave_type_id, year)
    current = _dec(balance.pending)
    if days > current:
        logger.warning(
            "Converting %s days but only %s pending (user=%s leave_type=%s year=%s)",
            days, current, user_id, leave_type_id, year,
        )
    balance.pending = max(ZERO, current - days)
    balance.used = _dec(balance.used) + days
    _warn_if_over_allocated(balance)
    return balance


# --- Administration ---

def _require_user_and_type(db: Session, user_id: int, leave_type_id: Optional[int]) -> None:
    user = db.get(User, user_id)
    if not user or user.deleted_at is not None:
        raise NotFoundError(f"User with id {user_id} not found")
    if leave_type_id is not None and db.get(LeaveType, leave_type_id) is None:
        raise NotFoundError(f"Leave type {leave_type_id} not found")


def _allocate(db: Session, user_id: int, leave_type_id: int, year: int, days: Decimal, actor_id: Optional[int]) -> LeaveBalance:
    if days < 0:
        raise PreconditionError("Allocated days must not be negative; use adjust to debit")
    _require_user_and_type(db, user_id, leave_type_id)
    balance = get_or_create_balance(db, user_id, leave_type_id, year)
    balance.allocated = _dec(balance.allocated) + days
    log_audit(
        db, actor_id, "ALLOCATE", "leave_balance", balance.id,
        {"user_id": user_id, "leave_type_id": leave_type_id, "year": year, "days": days},
    )
    return balance


def add_allocation(
    db: Session,
    user_id: int,
    leave_type_id: int,
    year: int,
    days: Number,
    actor_id: Optional[int] = None,
) -> LeaveBalance:
    """Add days to the allocation inside the caller's transaction (accrual runs)."""
    return _allocate(db, user_id, leave_type_id, year, _dec(days), actor_id)


def allocate(
    db: Session,
    user_id: int,
    leave_type_id: int,
    year: int,
    days: Number,
    actor_id: Optional[int] = None,
) -> LeaveBalance:
    """Add days to a user's allocation for the year."""
    balance = _allocate(db, user_id, leave_type_id, year, _dec(days), actor_id)
    db.commit()
    db.refresh(balance)
    return balance


def _adjust(
    db: Session,
    user_id: int,
    leave_type_id: int,
    year: int,
    delta: Decimal,
    reason: str,
    actor_id: int,
) -> LeaveBalance:
    if not reason or not reason.strip():
        raise PreconditionError("A reason is required for balance adjustments")
    _require_user_and_type(db, user_id, leave_type_id)
    balance = get_or_create_balance(db, user_id, leave_type_id, year)
    new_allocated = _dec(balance.allocated) + delta
    if new_allocated < 0:
        raise PreconditionError(
            f"Adjustment of {delta} would make allocated days negative ({new_allocated})"
        )
    balance.allocated = new_allocated
    db.add(
        LeaveBalanceAdjustment(
            user_id=user_id,
            leave_type_id=leave_type_id,
            year=year,
            adjustment=delta,
            reason=reason,
            adjusted_by=actor_id,
            adjusted_at=now_utc(),
        )
    )
    _warn_if_over_allocated(balance)
    log_audit(
        db, actor_id, "ADJUST", "leave_balance", balance.id,
        {"user_id": user_id, "leave_type_id": leave_type_id, "year": year, "delta": delta, "reason": reason},
    )
    return balance


def adjust(
    db: Session,
    user_id: int,
    leave_type_id: int,
    year: int,
    delta: Number,
    reason: str,
    actor_id: int,
) -> LeaveBalance:
    """Credit (+) or debit (-) a user's allocation and record the adjustment."""
    balance = _adjust(db, user_id, leave_type_id, year, _dec(delta), reason, actor_id)
    db.commit()
    db.refresh(balance)
    return balance


def _reset(
    db: Session,
    user_id: int,
    leave_type_id: Optional[int],
    reason: str,
    actor_id: Optional[int],
    year: Optional[int] = None,
) -> int:
    _require_user_and_type(db, user_id, leave_type_id)
    query = db.query(LeaveBalance).filter(LeaveBalance.user_id == user_id)
    if leave_type_id is not None:
        query = query.filter(LeaveBalance.leave_type_id == leave_type_id)
    if year is not None:
        query = query.filter(LeaveBalance.year == year)
    balances = query.with_for_update().all()
    for balance in balances:
        balance.allocated = ZERO
        balance.used = ZERO
        balance.pending = ZERO
    db.add(
        LeaveBalanceReset(
            user_id=user_id,
            leave_type_id=leave_type_id,
            reset_type=ResetType.MANUAL if actor_id is not None else ResetType.AUTOMATIC,
            reason=reason,
            reset_by=actor_id,
            reset_at=now_utc(),
        )
    )
    log_audit(
        db, actor_id, "RESET", "leave_balance", None,
        {"user_id": user_id, "leave_type_id": leave_type_id, "year": year, "rows": len(balances)},
    )
    return len(balances)


def reset(
    db: Session,
    user_id: int,
    leave_type_id: Optional[int],
    reason: str,
    actor_id: Optional[int] = None,
    year: Optional[int] = None,
) -> int:
    """
    Zero a user's balances (every leave type when leave_type_id is None).

    Recorded as a manual reset when an actor is given, automatic otherwise.
    Returns the number of ledger rows reset.
    """
    count = _reset(db, user_id, leave_type_id, reason, actor_id, year)
    db.commit()
    return count


def balance_summary(balance: LeaveBalance) -> Dict[str, Any]:
    return {
        "id": balance.id,
        "user_id": balance.user_id,
        "leave_type_id": balance.leave_type_id,
        "year": balance.year,
        "allocated": _dec(balance.allocated),
        "used": _dec(balance.used),
        "pending": _dec(balance.pending),
        "available": available_days(balance),
        "over_allocated": is_over_allocated(balance),
    }


def get_user_balances(db: Session, user_id: int, year: int) -> List[Dict[str, Any]]:
    balances = (
        db.query(LeaveBalance)
        .filter(LeaveBalance.user_id == user_id, LeaveBalance.year == year)
        .order_by(LeaveBalance.leave_type_id)
        .all()
    )
    return [balance_summary(b) for b in balances]


def get_adjustment_history(
    db: Session,
    user_id: int,
    leave_type_id: Optional[int] = None,
    year: Optional[int] = None,
) -> List[LeaveBalanceAdjustment]:
    query = db.query(LeaveBalanceAdjustment).filter(LeaveBalanceAdjustment.user_id == user_id)
    if leave_type_id is not None:
        query = query.filter(LeaveBalanceAdjustment.leave_type_id == leave_type_id)
    if year is not None:
        query = query.filter(LeaveBalanceAdjustment.year == year)
    return query.order_by(LeaveBalanceAdjustment.adjusted_at.desc(), LeaveBalanceAdjustment.id.desc()).all()


def get_reset_history(db: Session, user_id: int) -> List[LeaveBalanceReset]:
    return (
        db.query(LeaveBalanceReset)
        .filter(LeaveBalanceReset.user_id == user_id)
        .order_by(LeaveBalanceReset.reset_at.desc(), LeaveBalanceReset.id.desc())
        .all()
    )


# --- Bulk operations ---

def match_users(
    db: Session,
    user_ids: Optional[List[int]] = None,
    role_ids: Optional[List[int]] = None,
    category_ids: Optional[List[int]] = None,
    staff_type_ids: Optional[List[int]] = None,
) -> List[int]:
    """Active users matching every given filter. No filters matches every active user."""
    query = db.query(User.id).filter(User.status == UserStatus.ACTIVE, User.deleted_at.is_(None))
    if user_ids:
        query = query.filter(User.id.in_(user_ids))
    if category_ids:
        query = query.filter(User.category_id.in_(category_ids))
    if staff_type_ids:
        query = query.filter(User.staff_type_id.in_(staff_type_ids))
    if role_ids:
        holders = (
            db.query(UserRole.user_id)
            .filter(UserRole.role_id.in_(role_ids), UserRole.deleted_at.is_(None))
        )
        query = query.filter(User.id.in_(holders))
    return [row[0] for row in query.order_by(User.id).all()]


def _run_bulk(db: Session, user_ids: List[int], operation, label: str) -> Dict[str, Any]:
    results: Dict[str, Any] = {"matched": len(user_ids), "succeeded": 0, "failed": 0, "errors": []}
    for user_id in user_ids:
        savepoint = db.begin_nested()
        try:
            operation(user_id)
            savepoint.commit()
            results["succeeded"] += 1
        except (PreconditionError, NotFoundError, SQLAlchemyError) as e:
            savepoint.rollback()
            results["failed"] += 1
            detail = getattr(e, "detail", None) or str(e)
            results["errors"].append({"user_id": user_id, "error": detail})
            logger.warning("Bulk %s failed for user %s: %s", label, user_id, detail)
    db.commit()
    logger.info(
        "Bulk %s: matched=%d succeeded=%d failed=%d",
        label, results["matched"], results["succeeded"], results["failed"],
    )
    return results


def bulk_allocate(
    db: Session,
    leave_type_id: int,
    year: int,
    days: Number,
    actor_id: Optional[int] = None,
    user_ids: Optional[List[int]] = None,
    role_ids: Optional[List[int]] = None,
    category_ids: Optional[List[int]] = None,
    staff_type_ids: Optional[List[int]] = None,
) -> Dict[str, Any]:
    days = _dec(days)
    if db.get(LeaveType, leave_type_id) is None:
        raise NotFoundError(f"Leave type {leave_type_id} not found")
    matched = match_users(db, user_ids, role_ids, category_ids, staff_type_ids)
    return _run_bulk(
        db, matched,
        lambda user_id: _allocate(db, user_id, leave_type_id, year, days, actor_id),
        "allocate",
    )


def bulk_reset(
    db: Session,
    leave_type_id: Optional[int],
    reason: str,
    actor_id: Optional[int] = None,
    year: Optional[int] = None,
    user_ids: Optional[List[int]] = None,
    role_ids: Optional[List[int]] = None,
    category_ids: Optional[List[int]] = None,
    staff_type_ids: Optional[List[int]] = None,
) -> Dict[str, Any]:
    if leave_type_id is not None and db.get(LeaveType, leave_type_id) is None:
        raise NotFoundError(f"Leave type {leave_type_id} not found")
    matched = match_users(db, user_ids, role_ids, category_ids, staff_type_ids)
    return _run_bulk(
        db, matched,
        lambda user_id: _reset(db, user_id, leave_type_id, reason, actor_id, year),
        "reset",
    )
