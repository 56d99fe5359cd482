"""
Tests for timesheet endpoints, day entries and submission checks
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi import status
from sqlalchemy.orm import Session

from hrflow.core.errors import AuthorizationError, PreconditionError
from hrflow.core.security import create_access_token
from hrflow.models.user import User
from hrflow.models.workflow import WorkflowStatus
from hrflow.services import holiday_service, location_service, timesheet_service

# Monday 4 to Sunday 10 March 2030
MONDAY = date(2030, 3, 4)
SUNDAY = date(2030, 3, 10)


@pytest.fixture
def worker(db: Session):
    site = location_service.create_location(db, "Site A")
    user = User(email="worker@company.com", name="Worker", primary_location_id=site.id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(worker):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(worker.id)})}"}


@pytest.fixture
def week(db: Session, worker):
    return timesheet_service.create_timesheet(db, worker.id, MONDAY, SUNDAY)


def _book_full_week(db, timesheet, owner_id):
    for offset in range(5):
        timesheet_service.upsert_entry(
            db, timesheet.id, owner_id, date(2030, 3, 4 + offset), work_hours=Decimal("8.5")
        )


def test_create_and_list_timesheet(client, worker, auth_headers):
    response = client.post(
        "/api/v1/timesheets",
        json={"period_start": "2030-03-04", "period_end": "2030-03-10"},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["status"] == "Draft"
    assert data["location_id"] == worker.primary_location_id
    assert Decimal(data["total_hours"]) == 0

    listed = client.get("/api/v1/timesheets", headers=auth_headers).json()
    assert [t["id"] for t in listed] == [data["id"]]


def test_duplicate_period_rejected(client, auth_headers):
    body = {"period_start": "2030-03-04", "period_end": "2030-03-10"}
    assert client.post("/api/v1/timesheets", json=body, headers=auth_headers).status_code == 201

    response = client.post("/api/v1/timesheets", json=body, headers=auth_headers)
    assert response.status_code == status.HTTP_409_CONFLICT


def test_inverted_period_rejected(client, auth_headers):
    response = client.post(
        "/api/v1/timesheets",
        json={"period_start": "2030-03-10", "period_end": "2030-03-04"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_submit_without_template_is_configuration_error(client, auth_headers):
    timesheet = client.post(
        "/api/v1/timesheets",
        json={"period_start": "2030-03-04", "period_end": "2030-03-10"},
        headers=auth_headers,
    ).json()
    booked = client.put(
        f"/api/v1/timesheets/{timesheet['id']}/entries/2030-03-04",
        json={"work_hours": "8.5"},
        headers=auth_headers,
    )
    assert booked.status_code == status.HTTP_200_OK

    response = client.post(
        "/api/v1/workflows/instances",
        json={"resource_type": "timesheet", "resource_id": timesheet["id"]},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["error_type"] == "configuration"


def test_submit_empty_timesheet_is_precondition_error(client, auth_headers):
    timesheet = client.post(
        "/api/v1/timesheets",
        json={"period_start": "2030-03-04", "period_end": "2030-03-10"},
        headers=auth_headers,
    ).json()

    response = client.post(
        "/api/v1/workflows/instances",
        json={"resource_type": "timesheet", "resource_id": timesheet["id"]},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error_type"] == "precondition"
    assert "No hours booked" in response.json()["detail"]


def test_entries_drive_total_hours(db, worker, week):
    timesheet_service.upsert_entry(db, week.id, worker.id, MONDAY, work_hours=Decimal("8"))
    timesheet_service.upsert_entry(db, week.id, worker.id, date(2030, 3, 5), work_hours=Decimal("6"),
                                   leave_hours=Decimal("2.5"))
    db.refresh(week)
    assert week.total_hours == Decimal("16.5")

    # Rebooking a day replaces it
    timesheet_service.upsert_entry(db, week.id, worker.id, MONDAY, work_hours=Decimal("4"))
    db.refresh(week)
    assert week.total_hours == Decimal("12.5")
    assert len(week.entries) == 2

    timesheet_service.delete_entry(db, week.id, worker.id, MONDAY)
    db.refresh(week)
    assert week.total_hours == Decimal("8.5")


def test_expected_hours_zero_on_weekends_and_holidays(db, worker, week):
    holiday_service.create_holiday(db, "Founders Day", date(2030, 3, 6), location_id=worker.primary_location_id)

    monday = timesheet_service.upsert_entry(db, week.id, worker.id, MONDAY, work_hours=Decimal("8.5"))
    wednesday = timesheet_service.upsert_entry(db, week.id, worker.id, date(2030, 3, 6),
                                               holiday_hours=Decimal("8.5"))
    saturday = timesheet_service.upsert_entry(db, week.id, worker.id, date(2030, 3, 9), work_hours=Decimal("3"))

    assert monday.expected_hours == Decimal("8.5")
    assert wednesday.expected_hours == 0
    assert saturday.expected_hours == 0


def test_entry_outside_period_rejected(db, worker, week):
    with pytest.raises(PreconditionError):
        timesheet_service.upsert_entry(db, week.id, worker.id, date(2030, 3, 11), work_hours=Decimal("8"))


def test_entry_over_24_hours_rejected(db, worker, week):
    with pytest.raises(PreconditionError):
        timesheet_service.upsert_entry(
            db, week.id, worker.id, MONDAY, work_hours=Decimal("20"), overtime_hours=Decimal("5")
        )


def test_only_owner_books_hours(db, worker, week):
    other = User(email="other@company.com", name="Other", primary_location_id=worker.primary_location_id)
    db.add(other)
    db.commit()

    with pytest.raises(AuthorizationError):
        timesheet_service.upsert_entry(db, week.id, other.id, MONDAY, work_hours=Decimal("8"))


def test_submitted_timesheet_entries_locked(db, worker, week):
    timesheet_service.upsert_entry(db, week.id, worker.id, MONDAY, work_hours=Decimal("8.5"))
    week.status = WorkflowStatus.SUBMITTED
    db.commit()

    with pytest.raises(PreconditionError):
        timesheet_service.upsert_entry(db, week.id, worker.id, date(2030, 3, 5), work_hours=Decimal("8.5"))


def test_validation_full_week_is_valid(db, worker, week):
    _book_full_week(db, week, worker.id)
    db.refresh(week)

    validation = timesheet_service.validate_timesheet(db, week)

    assert validation.status == "valid"
    assert validation.can_submit
    assert validation.expected_hours == Decimal("42.5")
    assert validation.actual_hours == Decimal("42.5")


def test_validation_shortfall_is_warning(db, worker, week):
    _book_full_week(db, week, worker.id)
    timesheet_service.upsert_entry(db, week.id, worker.id, MONDAY, work_hours=Decimal("6"))
    db.refresh(week)

    validation = timesheet_service.validate_timesheet(db, week)

    assert validation.status == "warning"
    assert validation.can_submit
    assert any("2030-03-04" in w for w in validation.warnings)


def test_validation_regular_hours_past_expected_is_error(db, worker, week):
    _book_full_week(db, week, worker.id)
    timesheet_service.upsert_entry(db, week.id, worker.id, MONDAY, work_hours=Decimal("11"))
    db.refresh(week)

    validation = timesheet_service.validate_timesheet(db, week)

    assert validation.status == "error"
    assert not validation.can_submit
    assert not timesheet_service.can_submit_timesheet(db, week)


def test_validation_extra_hours_as_overtime_or_weekend_allowed(db, worker, week):
    _book_full_week(db, week, worker.id)
    timesheet_service.upsert_entry(
        db, week.id, worker.id, MONDAY, work_hours=Decimal("8.5"), overtime_hours=Decimal("2.5")
    )
    timesheet_service.upsert_entry(db, week.id, worker.id, date(2030, 3, 9), work_hours=Decimal("4"))
    db.refresh(week)

    validation = timesheet_service.validate_timesheet(db, week)

    assert validation.status == "valid"
    assert validation.actual_hours == Decimal("49")


def test_validation_missing_working_days_is_warning(db, worker, week):
    timesheet_service.upsert_entry(db, week.id, worker.id, MONDAY, work_hours=Decimal("8.5"))
    db.refresh(week)

    validation = timesheet_service.validate_timesheet(db, week)

    assert validation.status == "warning"
    assert any("4 working day(s)" in w for w in validation.warnings)


def test_validation_endpoint(client, db, worker, week, auth_headers):
    response = client.get(f"/api/v1/timesheets/{week.id}/validation", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "error"
    assert data["can_submit"] is False


def test_entry_endpoints(client, week, auth_headers):
    response = client.put(
        f"/api/v1/timesheets/{week.id}/entries/2030-03-05",
        json={"work_hours": "7.5", "leave_hours": "1"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert Decimal(response.json()["total_hours"]) == Decimal("8.5")

    entries = client.get(f"/api/v1/timesheets/{week.id}/entries", headers=auth_headers).json()
    assert [e["entry_date"] for e in entries] == ["2030-03-05"]

    response = client.delete(f"/api/v1/timesheets/{week.id}/entries/2030-03-05", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK
    assert Decimal(response.json()["total_hours"]) == 0

    response = client.put(
        f"/api/v1/timesheets/{week.id}/entries/2030-03-05",
        json={"work_hours": "-1"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
