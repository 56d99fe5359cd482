"""
Timesheet endpoints

Hours are booked per day with PUT /{id}/entries/{date}; the timesheet total
follows its entries. Submission goes through /workflows/instances and is
refused while the validation below reports errors.
"""
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hrflow.core.deps import get_current_user, get_db
from hrflow.core.errors import AuthorizationError
from hrflow.models.user import User
from hrflow.schemas.leave import (
    TimesheetCreate,
    TimesheetEntryOut,
    TimesheetEntryUpsert,
    TimesheetOut,
    TimesheetValidation,
)
from hrflow.services import timesheet_service

router = APIRouter()


def _own_timesheet(db: Session, timesheet_id: int, user: User):
    timesheet = timesheet_service.get_timesheet(db, timesheet_id)
    if timesheet.user_id != user.id:
        raise AuthorizationError("Not allowed to view this timesheet")
    return timesheet


@router.post("", response_model=TimesheetOut, status_code=status.HTTP_201_CREATED)
async def create_timesheet(
    body: TimesheetCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Create an empty Draft timesheet for a period"""
    return timesheet_service.create_timesheet(
        db,
        user_id=current_user.id,
        period_start=body.period_start,
        period_end=body.period_end,
        notes=body.notes,
        location_id=body.location_id,
    )


@router.get("", response_model=List[TimesheetOut])
async def list_my_timesheets(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return timesheet_service.list_timesheets(db, current_user.id)


@router.get("/{timesheet_id}", response_model=TimesheetOut)
async def get_timesheet(
    timesheet_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _own_timesheet(db, timesheet_id, current_user)


@router.get("/{timesheet_id}/entries", response_model=List[TimesheetEntryOut])
async def list_entries(
    timesheet_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _own_timesheet(db, timesheet_id, current_user).entries


@router.put("/{timesheet_id}/entries/{entry_date}", response_model=TimesheetEntryOut)
async def upsert_entry(
    timesheet_id: int,
    entry_date: date,
    body: TimesheetEntryUpsert,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Book (or rebook) the hours for one day of a Draft or Adjusted timesheet"""
    return timesheet_service.upsert_entry(
        db, timesheet_id, current_user.id, entry_date,
        work_hours=body.work_hours,
        leave_hours=body.leave_hours,
        holiday_hours=body.holiday_hours,
        overtime_hours=body.overtime_hours,
        notes=body.notes,
    )


@router.delete("/{timesheet_id}/entries/{entry_date}", response_model=TimesheetOut)
async def delete_entry(
    timesheet_id: int,
    entry_date: date,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return timesheet_service.delete_entry(db, timesheet_id, current_user.id, entry_date)


@router.get("/{timesheet_id}/validation", response_model=TimesheetValidation)
async def validate_timesheet(
    timesheet_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Booked hours against the period's working calendar; can_submit is false on errors"""
    return timesheet_service.validate_timesheet(db, _own_timesheet(db, timesheet_id, current_user))
