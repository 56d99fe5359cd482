"""
Tests for the holiday calendar and holiday-aware leave day counting
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi import status
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_HOLIDAYS_MANAGE
from hrflow.core.errors import PreconditionError
from hrflow.core.security import create_access_token
from hrflow.models.access import RoleScopeMode
from hrflow.models.leave import LeaveType
from hrflow.models.user import User
from hrflow.services import holiday_service, leave_service, location_service, role_service

# Monday 3 to Friday 7 June 2030
MONDAY = date(2030, 6, 3)
FRIDAY = date(2030, 6, 7)


@pytest.fixture
def locations(db: Session):
    hq = location_service.create_location(db, "HQ")
    north = location_service.create_location(db, "North", hq.id)
    depot = location_service.create_location(db, "Depot", north.id)
    south = location_service.create_location(db, "South", hq.id)
    return {"hq": hq, "north": north, "depot": depot, "south": south}


@pytest.fixture
def working_days_type(db: Session):
    leave_type = LeaveType(name="Annual", exclude_weekends=True)
    db.add(leave_type)
    db.commit()
    db.refresh(leave_type)
    return leave_type


@pytest.fixture
def depot_worker(db: Session, locations):
    user = User(email="depot@company.com", name="Depot Worker", primary_location_id=locations["depot"].id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_holiday_applies_below_its_location(db, locations):
    holiday_service.create_holiday(db, "Northern Day", date(2030, 6, 4), location_id=locations["north"].id)
    holiday_service.create_holiday(db, "National Day", date(2030, 6, 5))

    depot_dates = holiday_service.get_holiday_dates(db, locations["depot"].id, MONDAY, FRIDAY)
    south_dates = holiday_service.get_holiday_dates(db, locations["south"].id, MONDAY, FRIDAY)

    assert depot_dates == {date(2030, 6, 4), date(2030, 6, 5)}
    assert south_dates == {date(2030, 6, 5)}


def test_duplicate_holiday_at_same_location_rejected(db, locations):
    holiday_service.create_holiday(db, "Northern Day", MONDAY, location_id=locations["north"].id)

    with pytest.raises(PreconditionError) as exc:
        holiday_service.create_holiday(db, "Again", MONDAY, location_id=locations["north"].id)
    assert exc.value.status_code == status.HTTP_409_CONFLICT

    # Same date elsewhere is a different holiday
    holiday_service.create_holiday(db, "Southern Day", MONDAY, location_id=locations["south"].id)


def test_deleted_holiday_no_longer_observed(db, locations):
    holiday = holiday_service.create_holiday(db, "National Day", MONDAY)
    holiday_service.delete_holiday(db, holiday.id)

    assert holiday_service.get_holiday_dates(db, locations["depot"].id, MONDAY, FRIDAY) == set()
    assert holiday_service.list_holidays(db, year=2030) == []


def test_calculate_days_skips_holidays_only_for_working_day_types():
    holidays = {date(2030, 6, 5)}

    assert leave_service.calculate_days(MONDAY, FRIDAY, exclude_weekends=True, holidays=holidays) == Decimal("4")
    assert leave_service.calculate_days(MONDAY, FRIDAY, exclude_weekends=False, holidays=holidays) == Decimal("5")
    assert leave_service.calculate_days(MONDAY, date(2030, 6, 9), exclude_weekends=True) == Decimal("5")


def test_leave_request_counts_location_holidays(db, locations, working_days_type, depot_worker):
    holiday_service.create_holiday(db, "Northern Day", date(2030, 6, 4), location_id=locations["north"].id)
    holiday_service.create_holiday(db, "Southern Day", date(2030, 6, 6), location_id=locations["south"].id)

    request = leave_service.create_leave_request(db, depot_worker.id, working_days_type.id, MONDAY, FRIDAY)

    assert request.days_requested == Decimal("4")


def test_leave_of_only_holidays_rejected(db, locations, working_days_type, depot_worker):
    holiday_service.create_holiday(db, "National Day", MONDAY)

    with pytest.raises(PreconditionError):
        leave_service.create_leave_request(db, depot_worker.id, working_days_type.id, MONDAY, MONDAY)


def test_holiday_endpoints_require_permission(client, db, locations, depot_worker):
    admin = User(email="calendar@company.com", name="Calendar Admin", primary_location_id=locations["hq"].id)
    db.add(admin)
    db.commit()
    role = role_service.create_role(db, "Calendar Admin", [PERM_HOLIDAYS_MANAGE], scope_mode=RoleScopeMode.GLOBAL)
    role_service.assign_role(db, admin.id, role.id)
    admin_headers = {"Authorization": f"Bearer {create_access_token({'sub': str(admin.id)})}"}
    worker_headers = {"Authorization": f"Bearer {create_access_token({'sub': str(depot_worker.id)})}"}
    body = {"name": "Northern Day", "holiday_date": "2030-06-04", "location_id": locations["north"].id}

    assert client.post("/api/v1/holidays", json=body, headers=worker_headers).status_code == 403

    response = client.post("/api/v1/holidays", json=body, headers=admin_headers)
    assert response.status_code == status.HTTP_201_CREATED
    assert Decimal(response.json()["hours"]) == Decimal("8.5")

    observed = client.get(
        f"/api/v1/holidays/locations/{locations['depot'].id}",
        params={"from_date": "2030-06-01", "to_date": "2030-06-30"},
        headers=worker_headers,
    ).json()
    assert [h["name"] for h in observed] == ["Northern Day"]
