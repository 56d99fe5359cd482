"""
Holiday calendar endpoints
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_HOLIDAYS_MANAGE
from hrflow.core.deps import get_current_user, get_db, require_permission
from hrflow.models.user import User
from hrflow.schemas.holiday import HolidayCreate, HolidayOut
from hrflow.services import holiday_service

router = APIRouter()


@router.post("", response_model=HolidayOut, status_code=status.HTTP_201_CREATED)
async def create_holiday(
    body: HolidayCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_HOLIDAYS_MANAGE))
):
    """
    Declare a holiday

    A holiday at a location also applies to every location below it. Leave
    types counted in working days skip it, and timesheets expect no hours on it.
    """
    return holiday_service.create_holiday(
        db,
        name=body.name,
        holiday_date=body.holiday_date,
        location_id=body.location_id,
        hours=body.hours,
        actor_id=current_user.id,
    )


@router.get("", response_model=List[HolidayOut])
async def list_holidays(
    year: Optional[int] = Query(None),
    location_id: Optional[int] = Query(None, description="Only holidays declared at exactly this location"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return holiday_service.list_holidays(db, year, location_id)


@router.get("/locations/{location_id}", response_model=List[HolidayOut])
async def list_holidays_for_location(
    location_id: int,
    from_date: date = Query(...),
    to_date: date = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Holidays observed at a location, inherited ones included"""
    return holiday_service.get_holidays_for_location(db, location_id, from_date, to_date)


@router.delete("/{holiday_id}", response_model=HolidayOut)
async def delete_holiday(
    holiday_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_HOLIDAYS_MANAGE))
):
    return holiday_service.delete_holiday(db, holiday_id, actor_id=current_user.id)
