"""
Timesheet service - Draft timesheets for the approval workflow

Hours are booked per day as entries; the timesheet total is the sum of its
entries. A timesheet is checked before submission: errors block it,
warnings are reported and let it through.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Set

from fastapi import status
from sqlalchemy.orm import Session

from hrflow.core.config import settings
from hrflow.core.errors import AuthorizationError, NotFoundError, PreconditionError
from hrflow.models.timesheet import Timesheet, TimesheetEntry
from hrflow.models.user import User
from hrflow.models.workflow import WorkflowStatus
from hrflow.schemas.leave import TimesheetValidation
from hrflow.services.audit_service import log_audit
from hrflow.services.holiday_service import get_holiday_dates
from hrflow.services.location_service import get_location

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (WorkflowStatus.DRAFT, WorkflowStatus.ADJUSTED)
MAX_HOURS_PER_DAY = Decimal("24")
ZERO = Decimal("0")


def _dec(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def create_timesheet(
    db: Session,
    user_id: int,
    period_start: date,
    period_end: date,
    notes: Optional[str] = None,
    location_id: Optional[int] = None,
) -> Timesheet:
    """Create an empty Draft timesheet; one live timesheet per user and period."""
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError(f"User with id {user_id} not found or inactive")
    if period_start > period_end:
        raise PreconditionError("Period start must be on or before period end")

    location_id = location_id or user.primary_location_id
    if location_id is None:
        raise PreconditionError("A location is required for users without a primary location")
    get_location(db, location_id)

    existing = (
        db.query(Timesheet)
        .filter(
            Timesheet.user_id == user_id,
            Timesheet.period_start == period_start,
            Timesheet.period_end == period_end,
            Timesheet.deleted_at.is_(None),
            Timesheet.status.notin_([WorkflowStatus.DECLINED, WorkflowStatus.CANCELLED]),
        )
        .first()
    )
    if existing:
        raise PreconditionError(
            f"Timesheet {existing.id} already covers {period_start} to {period_end}",
            status_code=status.HTTP_409_CONFLICT,
        )

    timesheet = Timesheet(
        user_id=user_id,
        location_id=location_id,
        period_start=period_start,
        period_end=period_end,
        total_hours=ZERO,
        notes=notes,
        status=WorkflowStatus.DRAFT,
    )
    db.add(timesheet)
    db.flush()
    log_audit(
        db, user_id, "CREATE", "timesheet", timesheet.id,
        {"period_start": period_start, "period_end": period_end},
    )
    db.commit()
    db.refresh(timesheet)
    return timesheet


def get_timesheet(db: Session, timesheet_id: int) -> Timesheet:
    timesheet = (
        db.query(Timesheet)
        .filter(Timesheet.id == timesheet_id, Timesheet.deleted_at.is_(None))
        .first()
    )
    if not timesheet:
        raise NotFoundError(f"Timesheet {timesheet_id} not found")
    return timesheet


def list_timesheets(db: Session, user_id: int) -> List[Timesheet]:
    return (
        db.query(Timesheet)
        .filter(Timesheet.user_id == user_id, Timesheet.deleted_at.is_(None))
        .order_by(Timesheet.period_start.desc())
        .all()
    )


# --- Entries ---

def _editable_by_owner(db: Session, timesheet_id: int, actor_id: int) -> Timesheet:
    timesheet = get_timesheet(db, timesheet_id)
    if timesheet.user_id != actor_id:
        raise AuthorizationError("Only the owner may book hours on a timesheet")
    if timesheet.status not in EDITABLE_STATUSES:
        raise PreconditionError(f"Cannot edit timesheet with status {timesheet.status.value}")
    return timesheet


def _holidays(db: Session, timesheet: Timesheet) -> Set[date]:
    return get_holiday_dates(db, timesheet.location_id, timesheet.period_start, timesheet.period_end)


def expected_hours_for(day: date, holidays: Set[date]) -> Decimal:
    """Standard working day length; nothing is expected on weekends and holidays."""
    if day.weekday() >= 5 or day in holidays:
        return ZERO
    return _dec(settings.STANDARD_WORKDAY_HOURS)


def _recompute_total(timesheet: Timesheet) -> None:
    timesheet.total_hours = sum((_dec(e.total_hours) for e in timesheet.entries), ZERO)


def upsert_entry(
    db: Session,
    timesheet_id: int,
    actor_id: int,
    entry_date: date,
    work_hours=ZERO,
    leave_hours=ZERO,
    holiday_hours=ZERO,
    overtime_hours=ZERO,
    notes: Optional[str] = None,
) -> TimesheetEntry:
    """Book the hours for one day of the period, replacing any earlier booking."""
    timesheet = _editable_by_owner(db, timesheet_id, actor_id)
    if not timesheet.period_start <= entry_date <= timesheet.period_end:
        raise PreconditionError(
            f"{entry_date} is outside the timesheet period {timesheet.period_start} to {timesheet.period_end}"
        )
    hours = {
        "work_hours": _dec(work_hours),
        "leave_hours": _dec(leave_hours),
        "holiday_hours": _dec(holiday_hours),
        "overtime_hours": _dec(overtime_hours),
    }
    if any(value < 0 for value in hours.values()):
        raise PreconditionError("Hours must not be negative")
    if sum(hours.values(), ZERO) > MAX_HOURS_PER_DAY:
        raise PreconditionError(f"More than {MAX_HOURS_PER_DAY} hours booked on {entry_date}")

    entry = next((e for e in timesheet.entries if e.entry_date == entry_date), None)
    if entry is None:
        entry = TimesheetEntry(entry_date=entry_date)
        timesheet.entries.append(entry)
    for name, value in hours.items():
        setattr(entry, name, value)
    entry.expected_hours = expected_hours_for(entry_date, _holidays(db, timesheet))
    entry.notes = notes
    _recompute_total(timesheet)
    db.flush()
    log_audit(
        db, actor_id, "UPSERT_ENTRY", "timesheet", timesheet.id,
        {"entry_date": entry_date, **hours},
    )
    db.commit()
    db.refresh(entry)
    return entry


def delete_entry(db: Session, timesheet_id: int, actor_id: int, entry_date: date) -> Timesheet:
    timesheet = _editable_by_owner(db, timesheet_id, actor_id)
    entry = next((e for e in timesheet.entries if e.entry_date == entry_date), None)
    if entry is None:
        raise NotFoundError(f"No hours booked on {entry_date} in timesheet {timesheet_id}")
    timesheet.entries.remove(entry)
    _recompute_total(timesheet)
    log_audit(db, actor_id, "DELETE_ENTRY", "timesheet", timesheet.id, {"entry_date": entry_date})
    db.commit()
    db.refresh(timesheet)
    return timesheet


# --- Validation ---

def validate_timesheet(db: Session, timesheet: Timesheet) -> TimesheetValidation:
    """
    Compare booked hours with the working calendar of the period.

    Errors: nothing booked, or a working day booked past its expected hours
    other than as overtime. Warnings: a working day short of its expected
    hours, and working days with no booking at all.
    """
    errors: List[str] = []
    warnings: List[str] = []
    holidays = _holidays(db, timesheet)

    expected_total = ZERO
    day = timesheet.period_start
    working_days = []
    while day <= timesheet.period_end:
        expected = expected_hours_for(day, holidays)
        if expected > 0:
            working_days.append(day)
        expected_total += expected
        day += timedelta(days=1)

    actual_total = sum((_dec(e.total_hours) for e in timesheet.entries), ZERO)
    if not timesheet.entries or actual_total <= 0:
        errors.append("No hours booked on this timesheet")

    booked = set()
    for entry in timesheet.entries:
        booked.add(entry.entry_date)
        expected = expected_hours_for(entry.entry_date, holidays)
        regular = _dec(entry.work_hours) + _dec(entry.leave_hours) + _dec(entry.holiday_hours)
        if expected > 0 and regular > expected:
            errors.append(
                f"{entry.entry_date}: {regular} regular hours booked against {expected} expected; "
                f"book the excess as overtime"
            )
        elif regular < expected:
            warnings.append(f"{entry.entry_date}: {regular} hours booked against {expected} expected")

    missing = [d for d in working_days if d not in booked]
    if missing and timesheet.entries:
        warnings.append(f"{len(missing)} working day(s) without booked hours, first {missing[0]}")

    outcome = "error" if errors else "warning" if warnings else "valid"
    return TimesheetValidation(
        status=outcome,
        can_submit=outcome != "error",
        expected_hours=expected_total,
        actual_hours=actual_total,
        errors=errors,
        warnings=warnings,
    )


def can_submit_timesheet(db: Session, timesheet: Timesheet) -> bool:
    return validate_timesheet(db, timesheet).can_submit


def check_timesheet(db: Session, timesheet: Timesheet) -> None:
    """Raise with the first blocking finding; log the warnings."""
    validation = validate_timesheet(db, timesheet)
    for warning in validation.warnings:
        logger.warning("Timesheet %s: %s", timesheet.id, warning)
    if not validation.can_submit:
        raise PreconditionError(f"Timesheet cannot be submitted: {validation.errors[0]}")
