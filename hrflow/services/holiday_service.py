"""
Holiday calendar service

A holiday applies at its location and every location below it. Holidays
without a location apply everywhere.
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional, Set

from fastapi import status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from hrflow.core.config import settings
from hrflow.core.constants import LOCATION_PATH_SEPARATOR
from hrflow.core.errors import NotFoundError, PreconditionError
from hrflow.models.holiday import Holiday
from hrflow.services.audit_service import log_audit
from hrflow.services.location_service import get_location
from hrflow.utils.datetime_utils import now_utc


def _location_chain(db: Session, location_id: int) -> List[int]:
    """The location id and every ancestor id, root first."""
    location = get_location(db, location_id)
    return [int(part) for part in location.path.split(LOCATION_PATH_SEPARATOR)]


def create_holiday(
    db: Session,
    name: str,
    holiday_date: date,
    location_id: Optional[int] = None,
    hours: Optional[Decimal] = None,
    actor_id: Optional[int] = None,
) -> Holiday:
    """
    Create a holiday at a location, or everywhere when location_id is None.

    Raises:
        PreconditionError (409): a holiday already exists on that date at that location
    """
    if location_id is not None:
        get_location(db, location_id)

    existing = (
        db.query(Holiday)
        .filter(
            Holiday.holiday_date == holiday_date,
            Holiday.location_id.is_(None) if location_id is None else Holiday.location_id == location_id,
            Holiday.deleted_at.is_(None),
        )
        .first()
    )
    if existing:
        raise PreconditionError(
            f"Holiday '{existing.name}' already exists on {holiday_date}",
            status_code=status.HTTP_409_CONFLICT,
        )

    holiday = Holiday(
        name=name,
        holiday_date=holiday_date,
        location_id=location_id,
        hours=hours if hours is not None else Decimal(str(settings.STANDARD_WORKDAY_HOURS)),
        active=True,
        created_by=actor_id,
    )
    db.add(holiday)
    db.flush()
    if actor_id:
        log_audit(
            db, actor_id, "HOLIDAY_CREATE", "holiday", holiday.id,
            {"name": name, "date": holiday_date, "location_id": location_id},
        )
    db.commit()
    db.refresh(holiday)
    return holiday


def get_holiday(db: Session, holiday_id: int) -> Holiday:
    holiday = db.query(Holiday).filter(Holiday.id == holiday_id, Holiday.deleted_at.is_(None)).first()
    if not holiday:
        raise NotFoundError(f"Holiday {holiday_id} not found")
    return holiday


def list_holidays(db: Session, year: Optional[int] = None, location_id: Optional[int] = None) -> List[Holiday]:
    """Holidays in a year; with location_id only those declared at exactly that location."""
    query = db.query(Holiday).filter(Holiday.deleted_at.is_(None))
    if year is not None:
        query = query.filter(Holiday.holiday_date >= date(year, 1, 1), Holiday.holiday_date <= date(year, 12, 31))
    if location_id is not None:
        query = query.filter(Holiday.location_id == location_id)
    return query.order_by(Holiday.holiday_date, Holiday.id).all()


def delete_holiday(db: Session, holiday_id: int, actor_id: Optional[int] = None) -> Holiday:
    holiday = get_holiday(db, holiday_id)
    holiday.deleted_at = now_utc()
    holiday.active = False
    if actor_id:
        log_audit(db, actor_id, "HOLIDAY_DELETE", "holiday", holiday.id, {"date": holiday.holiday_date})
    db.commit()
    db.refresh(holiday)
    return holiday


def get_holidays_for_location(
    db: Session,
    location_id: int,
    from_date: date,
    to_date: date,
) -> List[Holiday]:
    """Active holidays in [from_date, to_date] that apply at location_id."""
    chain = _location_chain(db, location_id)
    return (
        db.query(Holiday)
        .filter(
            Holiday.active.is_(True),
            Holiday.deleted_at.is_(None),
            Holiday.holiday_date >= from_date,
            Holiday.holiday_date <= to_date,
            or_(Holiday.location_id.is_(None), Holiday.location_id.in_(chain)),
        )
        .order_by(Holiday.holiday_date)
        .all()
    )


def get_holiday_dates(db: Session, location_id: Optional[int], from_date: date, to_date: date) -> Set[date]:
    if location_id is None:
        return set()
    return {h.holiday_date for h in get_holidays_for_location(db, location_id, from_date, to_date)}
