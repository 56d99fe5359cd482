"""
Tests for the workflow HTTP surface: templates, leave requests, instances and balances
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi import status
from sqlalchemy.orm import Session

from hrflow.core.constants import (
    PERM_LEAVE_APPROVE,
    PERM_WORKFLOW_INSTANCES_READ,
    PERM_WORKFLOW_TEMPLATES_MANAGE,
    PERM_WORKFLOW_TEMPLATES_READ,
)
from hrflow.core.security import create_access_token
from hrflow.models.access import RoleScopeMode
from hrflow.models.leave import LeaveType
from hrflow.models.user import User
from hrflow.services import balance_service, location_service, role_service

YEAR = 2030


def _user(db: Session, email: str, location_id=None, manager_id=None) -> User:
    user = User(email=email, name=email.split("@")[0], primary_location_id=location_id, manager_id=manager_id)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def org(db: Session):
    office = location_service.create_location(db, "Head Office")

    admin = _user(db, "wf.admin@company.com", office.id)
    owner = _user(db, "owner@company.com", office.id)
    hr1 = _user(db, "hr1@company.com", office.id)
    hr2 = _user(db, "hr2@company.com", office.id)
    outsider = _user(db, "outsider@company.com", office.id)

    admin_role = role_service.create_role(
        db, "Workflow Admin",
        [PERM_WORKFLOW_TEMPLATES_MANAGE, PERM_WORKFLOW_TEMPLATES_READ, PERM_WORKFLOW_INSTANCES_READ],
        scope_mode=RoleScopeMode.GLOBAL,
    )
    role_service.assign_role(db, admin.id, admin_role.id)
    hr_role = role_service.create_role(db, "HR Manager", [PERM_LEAVE_APPROVE], scope_mode=RoleScopeMode.GLOBAL)
    role_service.assign_role(db, hr1.id, hr_role.id)
    role_service.assign_role(db, hr2.id, hr_role.id)

    annual = LeaveType(name="Annual")
    db.add(annual)
    db.commit()
    db.refresh(annual)
    balance_service.allocate(db, owner.id, annual.id, YEAR, 10)

    return {
        "office": office, "admin": admin, "owner": owner, "hr1": hr1, "hr2": hr2,
        "outsider": outsider, "annual": annual,
    }


@pytest.fixture
def template(client, org):
    response = client.post(
        "/api/v1/workflows/templates",
        json={
            "name": "HR sign-off",
            "resource_type": "leave",
            "steps": [
                {
                    "step_order": 1,
                    "required_permission": PERM_LEAVE_APPROVE,
                    "approver_strategy": "role",
                    "required_roles": ["HR Manager"],
                    "location_scope": "same",
                }
            ],
        },
        headers=_headers(org["admin"]),
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


@pytest.fixture
def submitted(client, org, template):
    """A two-day request submitted through the API"""
    response = client.post(
        "/api/v1/leave/requests",
        json={
            "leave_type_id": org["annual"].id,
            "start_date": str(date(YEAR, 6, 1)),
            "end_date": str(date(YEAR, 6, 2)),
            "reason": "Wedding",
        },
        headers=_headers(org["owner"]),
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    request = response.json()
    assert request["status"] == "Draft"

    response = client.post(
        "/api/v1/workflows/instances",
        json={"resource_type": "leave", "resource_id": request["id"]},
        headers=_headers(org["owner"]),
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def test_template_created_with_version(template):
    assert template["version"] == 1
    assert template["status"] == "active"
    assert template["steps"][0]["approver_strategy"] == "role"


def test_template_creation_requires_permission(client, org):
    response = client.post(
        "/api/v1/workflows/templates",
        json={
            "name": "Sneaky",
            "resource_type": "leave",
            "steps": [{"step_order": 1, "required_permission": PERM_LEAVE_APPROVE}],
        },
        headers=_headers(org["outsider"]),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error_type"] == "authorization"


def test_template_role_strategy_without_roles_is_422(client, org):
    response = client.post(
        "/api/v1/workflows/templates",
        json={
            "name": "Broken",
            "resource_type": "leave",
            "steps": [{"step_order": 1, "required_permission": PERM_LEAVE_APPROVE, "approver_strategy": "role"}],
        },
        headers=_headers(org["admin"]),
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_template_match_and_preview(client, org, template):
    response = client.get(
        "/api/v1/workflows/templates/match",
        params={"resource_type": "leave", "location_id": org["office"].id},
        headers=_headers(org["admin"]),
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["id"] == template["id"]

    response = client.get(
        "/api/v1/workflows/templates/match",
        params={"resource_type": "timesheet", "location_id": org["office"].id},
        headers=_headers(org["admin"]),
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND

    response = client.post(
        f"/api/v1/workflows/templates/{template['id']}/preview-approvers",
        json={"location_id": org["office"].id, "owner_id": org["owner"].id},
        headers=_headers(org["admin"]),
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()[0]["approver_ids"] == sorted([org["hr1"].id, org["hr2"].id])


def test_submit_reserves_days(client, org, submitted):
    assert submitted["status"] == "Submitted"
    assert submitted["current_step_order"] == 1

    response = client.get(f"/api/v1/leave/balances/me?year={YEAR}", headers=_headers(org["owner"]))
    assert response.status_code == status.HTTP_200_OK
    balance = response.json()[0]
    assert Decimal(balance["pending"]) == Decimal("2")
    assert Decimal(balance["available"]) == Decimal("8")


def test_pending_queue_and_approval(client, org, submitted):
    response = client.get("/api/v1/workflows/instances/pending", headers=_headers(org["hr1"]))
    assert response.status_code == status.HTTP_200_OK
    assert [row["instance_id"] for row in response.json()] == [submitted["id"]]

    response = client.get("/api/v1/workflows/instances/pending", headers=_headers(org["outsider"]))
    assert response.json() == []

    response = client.post(
        f"/api/v1/workflows/instances/{submitted['id']}/approve",
        json={"comment": "Approved", "step_order": 1},
        headers=_headers(org["hr1"]),
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "Approved"
    assert data["current_step_order"] is None
    assert data["steps"][0]["actor_id"] == org["hr1"].id

    response = client.get(f"/api/v1/leave/balances/me?year={YEAR}", headers=_headers(org["owner"]))
    balance = response.json()[0]
    assert Decimal(balance["used"]) == Decimal("2")
    assert Decimal(balance["pending"]) == Decimal("0")


def test_lost_race_returns_409(client, org, submitted):
    url = f"/api/v1/workflows/instances/{submitted['id']}/approve"
    first = client.post(url, json={"step_order": 1}, headers=_headers(org["hr1"]))
    second = client.post(url, json={"step_order": 1}, headers=_headers(org["hr2"]))

    assert first.status_code == status.HTTP_200_OK
    assert second.status_code == status.HTTP_409_CONFLICT
    body = second.json()
    assert body["error"] is True
    assert body["error_type"] == "consistency"


def test_non_approver_gets_403(client, org, submitted):
    response = client.post(
        f"/api/v1/workflows/instances/{submitted['id']}/decline",
        json={"reason": "No", "step_order": 1},
        headers=_headers(org["outsider"]),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error_type"] == "authorization"


def test_decline_without_reason_is_422(client, org, submitted):
    response = client.post(
        f"/api/v1/workflows/instances/{submitted['id']}/decline",
        json={"reason": "", "step_order": 1},
        headers=_headers(org["hr1"]),
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_approve_without_step_order_is_422(client, org, submitted):
    response = client.post(
        f"/api/v1/workflows/instances/{submitted['id']}/approve",
        json={"comment": "Looks fine"},
        headers=_headers(org["hr1"]),
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    detail = client.get(f"/api/v1/workflows/instances/{submitted['id']}", headers=_headers(org["owner"])).json()
    assert detail["instance"]["current_step_order"] == 1


def test_instance_detail_visibility(client, org, submitted):
    url = f"/api/v1/workflows/instances/{submitted['id']}"

    for viewer in ("owner", "hr1", "admin"):
        response = client.get(url, headers=_headers(org[viewer]))
        assert response.status_code == status.HTTP_200_OK, viewer

    detail = client.get(url, headers=_headers(org["owner"])).json()
    assert detail["instance"]["id"] == submitted["id"]
    assert detail["current_approver_ids"] == sorted([org["hr1"].id, org["hr2"].id])
    assert detail["history"] == []

    response = client.get(url, headers=_headers(org["outsider"]))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_unknown_instance_is_404(client, org):
    response = client.get("/api/v1/workflows/instances/999", headers=_headers(org["owner"]))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error_type"] == "not_found"


def test_cancel_by_owner(client, org, submitted):
    url = f"/api/v1/workflows/instances/{submitted['id']}/cancel"

    response = client.post(url, headers=_headers(org["hr1"]))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.post(url, headers=_headers(org["owner"]))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "Cancelled"

    response = client.get("/api/v1/leave/requests?status=Cancelled", headers=_headers(org["owner"]))
    assert len(response.json()) == 1


def test_overlapping_leave_request_is_409(client, org, submitted):
    response = client.post(
        "/api/v1/leave/requests",
        json={
            "leave_type_id": org["annual"].id,
            "start_date": str(date(YEAR, 6, 2)),
            "end_date": str(date(YEAR, 6, 3)),
        },
        headers=_headers(org["owner"]),
    )
    assert response.status_code == status.HTTP_409_CONFLICT


def test_leave_request_visible_to_owner_only(client, org, submitted):
    request_id = submitted["resource_id"]
    assert client.get(f"/api/v1/leave/requests/{request_id}", headers=_headers(org["owner"])).status_code == 200
    assert client.get(
        f"/api/v1/leave/requests/{request_id}", headers=_headers(org["outsider"])
    ).status_code == status.HTTP_403_FORBIDDEN


def test_stalled_listing_requires_permission(client, org):
    assert client.get(
        "/api/v1/workflows/instances/stalled", headers=_headers(org["admin"])
    ).status_code == status.HTTP_200_OK
    assert client.get(
        "/api/v1/workflows/instances/stalled", headers=_headers(org["outsider"])
    ).status_code == status.HTTP_403_FORBIDDEN
