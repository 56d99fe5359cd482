"""
Accrual service - periodic leave crediting

Leave types flagged ``accrues`` are credited from LeaveAccrualConfig rows.
The rule for a user is the most specific active config:
location + staff type, then staff type, then location, then the leave
type's default (neither set). Without any config the monthly default from
settings applies.

Credits land at period end: monthly every month, quarterly in March, June,
September and December, annual in January. Each (user, leave type, month)
is credited at most once; LeaveAccrualRun rows record what was credited.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hrflow.core.config import settings
from hrflow.core.errors import NotFoundError, PreconditionError
from hrflow.models.leave import AccrualPeriod, LeaveAccrualConfig, LeaveAccrualRun, LeaveType
from hrflow.models.user import User, UserStatus
from hrflow.services import balance_service
from hrflow.services.audit_service import log_audit
from hrflow.utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
QUARTER_END_MONTHS = (3, 6, 9, 12)


def _last_day_of_month(year: int, month: int) -> date:
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - timedelta(days=1)


def credits_in_month(period: AccrualPeriod, month: int) -> bool:
    if period == AccrualPeriod.MONTHLY:
        return True
    if period == AccrualPeriod.QUARTERLY:
        return month in QUARTER_END_MONTHS
    return month == 1


def is_eligible_for_month_accrual(user: User, year: int, month: int) -> bool:
    """Active users who joined on or before the last day of the month."""
    if not user.is_active:
        return False
    if user.join_date is None:
        return True
    return user.join_date <= _last_day_of_month(year, month)


# --- Configs ---

def create_config(
    db: Session,
    leave_type_id: int,
    accrual_rate: Decimal,
    accrual_period: AccrualPeriod = AccrualPeriod.MONTHLY,
    location_id: Optional[int] = None,
    staff_type_id: Optional[int] = None,
    actor_id: Optional[int] = None,
) -> LeaveAccrualConfig:
    if db.get(LeaveType, leave_type_id) is None:
        raise NotFoundError(f"Leave type {leave_type_id} not found")
    if Decimal(str(accrual_rate)) < 0:
        raise PreconditionError("Accrual rate must not be negative")
    config = LeaveAccrualConfig(
        leave_type_id=leave_type_id,
        location_id=location_id,
        staff_type_id=staff_type_id,
        accrual_rate=accrual_rate,
        accrual_period=accrual_period,
        is_active=True,
    )
    db.add(config)
    db.flush()
    log_audit(
        db, actor_id, "ACCRUAL_CONFIG_CREATE", "leave_accrual_config", config.id,
        {
            "leave_type_id": leave_type_id,
            "location_id": location_id,
            "staff_type_id": staff_type_id,
            "accrual_rate": accrual_rate,
            "accrual_period": AccrualPeriod(accrual_period).value,
        },
    )
    db.commit()
    db.refresh(config)
    return config


def get_config(db: Session, config_id: int) -> LeaveAccrualConfig:
    config = (
        db.query(LeaveAccrualConfig)
        .filter(LeaveAccrualConfig.id == config_id, LeaveAccrualConfig.deleted_at.is_(None))
        .first()
    )
    if not config:
        raise NotFoundError(f"Accrual config {config_id} not found")
    return config


def list_configs(db: Session, leave_type_id: Optional[int] = None) -> List[LeaveAccrualConfig]:
    query = db.query(LeaveAccrualConfig).filter(LeaveAccrualConfig.deleted_at.is_(None))
    if leave_type_id is not None:
        query = query.filter(LeaveAccrualConfig.leave_type_id == leave_type_id)
    return query.order_by(LeaveAccrualConfig.leave_type_id, LeaveAccrualConfig.id).all()


def update_config(
    db: Session,
    config_id: int,
    actor_id: Optional[int] = None,
    accrual_rate: Optional[Decimal] = None,
    accrual_period: Optional[AccrualPeriod] = None,
    is_active: Optional[bool] = None,
) -> LeaveAccrualConfig:
    config = get_config(db, config_id)
    changes: Dict[str, Any] = {}
    if accrual_rate is not None:
        if Decimal(str(accrual_rate)) < 0:
            raise PreconditionError("Accrual rate must not be negative")
        config.accrual_rate = accrual_rate
        changes["accrual_rate"] = accrual_rate
    if accrual_period is not None:
        config.accrual_period = accrual_period
        changes["accrual_period"] = AccrualPeriod(accrual_period).value
    if is_active is not None:
        config.is_active = is_active
        changes["is_active"] = is_active
    log_audit(db, actor_id, "ACCRUAL_CONFIG_UPDATE", "leave_accrual_config", config.id, changes)
    db.commit()
    db.refresh(config)
    return config


def delete_config(db: Session, config_id: int, actor_id: Optional[int] = None) -> None:
    config = get_config(db, config_id)
    config.deleted_at = now_utc()
    config.is_active = False
    log_audit(db, actor_id, "ACCRUAL_CONFIG_DELETE", "leave_accrual_config", config.id, {})
    db.commit()


# --- Rates ---

def resolve_accrual_config(
    db: Session,
    leave_type_id: int,
    location_id: Optional[int],
    staff_type_id: Optional[int],
) -> Optional[LeaveAccrualConfig]:
    """The most specific active config for a user's location and staff type."""
    candidates = (
        db.query(LeaveAccrualConfig)
        .filter(
            LeaveAccrualConfig.leave_type_id == leave_type_id,
            LeaveAccrualConfig.is_active.is_(True),
            LeaveAccrualConfig.deleted_at.is_(None),
            or_(LeaveAccrualConfig.location_id.is_(None), LeaveAccrualConfig.location_id == location_id),
            or_(LeaveAccrualConfig.staff_type_id.is_(None), LeaveAccrualConfig.staff_type_id == staff_type_id),
        )
        .order_by(LeaveAccrualConfig.id.desc())
        .all()
    )

    def rank(config: LeaveAccrualConfig) -> int:
        # staff type outranks location
        return (2 if config.staff_type_id is not None else 0) + (1 if config.location_id is not None else 0)

    if not candidates:
        return None
    return max(candidates, key=rank)


def resolve_accrual_rate(
    db: Session,
    leave_type_id: int,
    location_id: Optional[int],
    staff_type_id: Optional[int],
) -> Tuple[Decimal, AccrualPeriod, Optional[LeaveAccrualConfig]]:
    config = resolve_accrual_config(db, leave_type_id, location_id, staff_type_id)
    if config is None:
        return Decimal(str(settings.DEFAULT_MONTHLY_ACCRUAL_DAYS)), AccrualPeriod.MONTHLY, None
    return Decimal(str(config.accrual_rate)), AccrualPeriod(config.accrual_period), config


def calculate_accrual(db: Session, user: User, leave_type_id: int, start_date: date, end_date: date) -> Decimal:
    """
    Days the user would accrue over the whole calendar months from
    start_date's month to end_date's month. Months before the user joined
    earn nothing.
    """
    if start_date > end_date:
        return ZERO
    rate, period, _ = resolve_accrual_rate(db, leave_type_id, user.primary_location_id, user.staff_type_id)
    total = ZERO
    year, month = start_date.year, start_date.month
    while (year, month) <= (end_date.year, end_date.month):
        joined = user.join_date is None or user.join_date <= _last_day_of_month(year, month)
        if joined and credits_in_month(period, month):
            total += rate
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return total


# --- Monthly run ---

def _already_credited(db: Session, user_id: int, leave_type_id: int, year: int, month: int) -> bool:
    return (
        db.query(LeaveAccrualRun.id)
        .filter(
            LeaveAccrualRun.user_id == user_id,
            LeaveAccrualRun.leave_type_id == leave_type_id,
            LeaveAccrualRun.year == year,
            LeaveAccrualRun.month == month,
        )
        .first()
        is not None
    )


def _credit(db: Session, user: User, leave_type: LeaveType, year: int, month: int, actor_id: Optional[int]) -> Decimal:
    rate, period, config = resolve_accrual_rate(db, leave_type.id, user.primary_location_id, user.staff_type_id)
    if not credits_in_month(period, month) or rate <= 0:
        return ZERO
    balance_service.add_allocation(db, user.id, leave_type.id, year, rate, actor_id)
    db.add(
        LeaveAccrualRun(
            user_id=user.id,
            leave_type_id=leave_type.id,
            year=year,
            month=month,
            days=rate,
            config_id=config.id if config is not None else None,
            credited_at=now_utc(),
        )
    )
    db.flush()
    return rate


def process_monthly_accrual(db: Session, year: int, month: int, actor_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Credit every accruing leave type to every eligible user for one month.

    Each user and leave type gets its own savepoint; failures are counted
    and reported, and the rest of the run continues.
    """
    if month < 1 or month > 12:
        raise PreconditionError(f"Invalid month: {month}. Must be between 1 and 12.")
    target_month_key = f"{year:04d}-{month:02d}"

    leave_types = db.query(LeaveType).filter(LeaveType.accrues.is_(True)).order_by(LeaveType.id).all()
    users = (
        db.query(User)
        .filter(User.status == UserStatus.ACTIVE, User.deleted_at.is_(None))
        .order_by(User.id)
        .all()
    )

    results: Dict[str, Any] = {
        "month": target_month_key,
        "leave_types": len(leave_types),
        "users_processed": 0,
        "credited": 0,
        "skipped_already_credited": 0,
        "skipped_not_eligible": 0,
        "skipped_no_credit": 0,
        "failed": 0,
        "errors": [],
    }
    for user in users:
        results["users_processed"] += 1
        if not is_eligible_for_month_accrual(user, year, month):
            results["skipped_not_eligible"] += 1
            continue
        for leave_type in leave_types:
            if _already_credited(db, user.id, leave_type.id, year, month):
                results["skipped_already_credited"] += 1
                continue
            savepoint = db.begin_nested()
            try:
                days = _credit(db, user, leave_type, year, month, actor_id)
                savepoint.commit()
            except (PreconditionError, NotFoundError, SQLAlchemyError) as e:
                savepoint.rollback()
                detail = getattr(e, "detail", None) or str(e)
                results["failed"] += 1
                results["errors"].append({"user_id": user.id, "leave_type_id": leave_type.id, "error": detail})
                logger.warning(
                    "Accrual %s failed for user %s leave type %s: %s",
                    target_month_key, user.id, leave_type.id, detail,
                )
                continue
            if days > 0:
                results["credited"] += 1
            else:
                results["skipped_no_credit"] += 1

    log_audit(
        db, actor_id, "ACCRUAL_RUN", "accrual", None,
        {key: value for key, value in results.items() if key != "errors"},
    )
    db.commit()
    logger.info(
        "Accrual %s: users=%d credited=%d already=%d not_eligible=%d failed=%d",
        target_month_key, results["users_processed"], results["credited"],
        results["skipped_already_credited"], results["skipped_not_eligible"], results["failed"],
    )
    return results
