"""
Leave request service - drafts that the workflow engine submits

A request is created as Draft; its status afterwards mirrors its workflow
instance. Only Draft and Adjusted requests can be edited.

Policy checks run at create, edit and submit:

- max_days_per_year on the leave type is a hard limit on used + pending +
  requested days for the calendar year
- going over the balance allocation is allowed and reported as a warning
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from fastapi import status
from sqlalchemy.orm import Session

from hrflow.core.errors import AuthorizationError, NotFoundError, PreconditionError
from hrflow.models.leave import LeaveBalance, LeaveRequest, LeaveType
from hrflow.models.user import User
from hrflow.models.workflow import WorkflowStatus
from hrflow.schemas.leave import LeaveValidation
from hrflow.services.audit_service import log_audit
from hrflow.services.holiday_service import get_holiday_dates
from hrflow.services.location_service import get_location

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (WorkflowStatus.DRAFT, WorkflowStatus.ADJUSTED)
# Requests still holding (or about to hold) days on the calendar
OVERLAP_STATUSES = (
    WorkflowStatus.DRAFT,
    WorkflowStatus.SUBMITTED,
    WorkflowStatus.UNDER_REVIEW,
    WorkflowStatus.APPROVED,
    WorkflowStatus.ADJUSTED,
)


def calculate_days(
    start_date: date,
    end_date: date,
    exclude_weekends: bool = False,
    holidays: Optional[Iterable[date]] = None,
) -> Decimal:
    """
    Leave days between start_date and end_date, both inclusive.

    With exclude_weekends the count is in working days: Saturdays, Sundays
    and any date in ``holidays`` are skipped.
    """
    if start_date > end_date:
        return Decimal("0")
    skipped = set(holidays or ()) if exclude_weekends else set()
    days = 0
    current = start_date
    while current <= end_date:
        if not (exclude_weekends and current.weekday() >= 5) and current not in skipped:
            days += 1
        current += timedelta(days=1)
    return Decimal(days)


def validate_leave_year(start_date: date, end_date: date) -> None:
    """Balances are kept per calendar year, so a request may not span two."""
    if start_date.year != end_date.year:
        raise PreconditionError(
            f"Leave cannot span across years. Start date year: {start_date.year}, end date year: {end_date.year}"
        )


def validate_overlap(
    db: Session,
    user_id: int,
    start_date: date,
    end_date: date,
    exclude_request_id: Optional[int] = None,
) -> None:
    query = db.query(LeaveRequest).filter(
        LeaveRequest.user_id == user_id,
        LeaveRequest.deleted_at.is_(None),
        LeaveRequest.status.in_(OVERLAP_STATUSES),
        LeaveRequest.end_date >= start_date,
        LeaveRequest.start_date <= end_date,
    )
    if exclude_request_id is not None:
        query = query.filter(LeaveRequest.id != exclude_request_id)
    overlapping = query.first()
    if overlapping:
        raise PreconditionError(
            f"Leave request overlaps with existing leave from {overlapping.start_date} to {overlapping.end_date}",
            status_code=status.HTTP_409_CONFLICT,
        )


def _check_dates(
    db: Session,
    leave_type: LeaveType,
    user_id: int,
    location_id: int,
    start_date: date,
    end_date: date,
    exclude_request_id: Optional[int] = None,
) -> Decimal:
    if start_date > end_date:
        raise PreconditionError("Start date must be on or before end date")
    validate_leave_year(start_date, end_date)
    holidays = None
    if leave_type.exclude_weekends:
        holidays = get_holiday_dates(db, location_id, start_date, end_date)
    days = calculate_days(start_date, end_date, leave_type.exclude_weekends, holidays)
    if days <= 0:
        raise PreconditionError("The requested range contains no leave days")
    validate_overlap(db, user_id, start_date, end_date, exclude_request_id)
    return days


def _policy_findings(
    db: Session,
    leave_type: LeaveType,
    user_id: int,
    year: int,
    days: Decimal,
) -> Tuple[List[str], List[str]]:
    """(errors, warnings) for requesting ``days`` more of leave_type in ``year``."""
    errors: List[str] = []
    warnings: List[str] = []
    balance = (
        db.query(LeaveBalance)
        .filter(
            LeaveBalance.user_id == user_id,
            LeaveBalance.leave_type_id == leave_type.id,
            LeaveBalance.year == year,
        )
        .first()
    )
    committed = Decimal("0")
    if balance is not None:
        committed = Decimal(str(balance.used)) + Decimal(str(balance.pending))

    if leave_type.max_days_per_year is not None:
        limit = Decimal(str(leave_type.max_days_per_year))
        if committed + days > limit:
            errors.append(
                f"{leave_type.name} is limited to {limit} days per year; "
                f"{committed} already used or pending, {days} requested"
            )

    if balance is not None and committed + days > Decimal(str(balance.allocated)):
        warnings.append(
            f"Request exceeds the {leave_type.name} allocation of {balance.allocated} days "
            f"({committed} used or pending, {days} requested)"
        )
    return errors, warnings


def _enforce_policy(db: Session, leave_type: LeaveType, user_id: int, year: int, days: Decimal) -> None:
    errors, warnings = _policy_findings(db, leave_type, user_id, year, days)
    for warning in warnings:
        logger.warning("Leave request for user %s: %s", user_id, warning)
    if errors:
        raise PreconditionError(errors[0])


def validate_leave_request(
    db: Session,
    user_id: int,
    leave_type_id: int,
    start_date: date,
    end_date: date,
    location_id: Optional[int] = None,
    exclude_request_id: Optional[int] = None,
) -> LeaveValidation:
    """Dry run of the create-time checks; never writes."""
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError(f"User with id {user_id} not found or inactive")
    leave_type = db.get(LeaveType, leave_type_id)
    if not leave_type:
        raise NotFoundError(f"Leave type {leave_type_id} not found")
    location_id = location_id or user.primary_location_id

    try:
        days = _check_dates(db, leave_type, user_id, location_id, start_date, end_date, exclude_request_id)
    except PreconditionError as e:
        return LeaveValidation(valid=False, days=Decimal("0"), errors=[e.detail])

    errors, warnings = _policy_findings(db, leave_type, user_id, start_date.year, days)
    return LeaveValidation(valid=not errors, days=days, errors=errors, warnings=warnings)


def check_leave_request(db: Session, request: LeaveRequest) -> None:
    """Re-run the policy checks for a request about to be submitted."""
    days = _check_dates(
        db, request.leave_type, request.user_id, request.location_id,
        request.start_date, request.end_date, exclude_request_id=request.id,
    )
    if days != Decimal(str(request.days_requested)):
        logger.info(
            "Leave request %s recounted from %s to %s days before submission",
            request.id, request.days_requested, days,
        )
        request.days_requested = days
    _enforce_policy(db, request.leave_type, request.user_id, request.start_date.year, days)


def create_leave_request(
    db: Session,
    user_id: int,
    leave_type_id: int,
    start_date: date,
    end_date: date,
    reason: Optional[str] = None,
    location_id: Optional[int] = None,
) -> LeaveRequest:
    """Create a Draft request at the given location or the user's primary location."""
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError(f"User with id {user_id} not found or inactive")
    leave_type = db.get(LeaveType, leave_type_id)
    if not leave_type:
        raise NotFoundError(f"Leave type {leave_type_id} not found")

    location_id = location_id or user.primary_location_id
    if location_id is None:
        raise PreconditionError("A location is required for users without a primary location")
    get_location(db, location_id)

    days = _check_dates(db, leave_type, user_id, location_id, start_date, end_date)
    _enforce_policy(db, leave_type, user_id, start_date.year, days)
    request = LeaveRequest(
        user_id=user_id,
        leave_type_id=leave_type_id,
        location_id=location_id,
        start_date=start_date,
        end_date=end_date,
        days_requested=days,
        reason=reason,
        status=WorkflowStatus.DRAFT,
    )
    db.add(request)
    db.flush()
    log_audit(
        db, user_id, "CREATE", "leave_request", request.id,
        {"leave_type_id": leave_type_id, "start_date": start_date, "end_date": end_date, "days": days},
    )
    db.commit()
    db.refresh(request)
    return request


def get_leave_request(db: Session, request_id: int) -> LeaveRequest:
    request = (
        db.query(LeaveRequest)
        .filter(LeaveRequest.id == request_id, LeaveRequest.deleted_at.is_(None))
        .first()
    )
    if not request:
        raise NotFoundError(f"Leave request {request_id} not found")
    return request


def update_leave_request(
    db: Session,
    request_id: int,
    actor_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    reason: Optional[str] = None,
) -> LeaveRequest:
    """Edit a Draft or Adjusted request before (re)submission."""
    request = get_leave_request(db, request_id)
    if request.user_id != actor_id:
        raise AuthorizationError("Only the creator may edit a leave request")
    if request.status not in EDITABLE_STATUSES:
        raise PreconditionError(f"Cannot edit leave request with status {request.status.value}")

    new_start = start_date or request.start_date
    new_end = end_date or request.end_date
    days = _check_dates(
        db, request.leave_type, request.user_id, request.location_id, new_start, new_end,
        exclude_request_id=request.id,
    )
    _enforce_policy(db, request.leave_type, request.user_id, new_start.year, days)
    request.days_requested = days
    request.start_date = new_start
    request.end_date = new_end
    if reason is not None:
        request.reason = reason
    log_audit(
        db, actor_id, "UPDATE", "leave_request", request.id,
        {"start_date": new_start, "end_date": new_end, "days": request.days_requested},
    )
    db.commit()
    db.refresh(request)
    return request


def list_leave_requests(
    db: Session,
    user_id: int,
    status_filter: Optional[WorkflowStatus] = None,
) -> List[LeaveRequest]:
    query = db.query(LeaveRequest).filter(LeaveRequest.user_id == user_id, LeaveRequest.deleted_at.is_(None))
    if status_filter is not None:
        query = query.filter(LeaveRequest.status == status_filter)
    return query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.id.desc()).all()
