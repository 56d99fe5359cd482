"""
Leave request endpoints

Requests are created as Draft and submitted through /workflows/instances.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hrflow.core.deps import get_current_user, get_db
from hrflow.core.errors import AuthorizationError
from hrflow.models.user import User
from hrflow.models.workflow import WorkflowStatus
from hrflow.schemas.leave import LeaveRequestCreate, LeaveRequestOut, LeaveRequestUpdate, LeaveValidation
from hrflow.services import leave_service

router = APIRouter()


@router.post("/requests", response_model=LeaveRequestOut, status_code=status.HTTP_201_CREATED)
async def create_leave_request(
    body: LeaveRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Create a Draft leave request

    Days are counted inclusively (weekends skipped when the leave type says
    so, holidays too). Overlapping live requests are rejected with 409,
    requests past the leave type's max_days_per_year with 400. Exceeding
    the available balance is allowed and logged.
    """
    return leave_service.create_leave_request(
        db,
        user_id=current_user.id,
        leave_type_id=body.leave_type_id,
        start_date=body.start_date,
        end_date=body.end_date,
        reason=body.reason,
        location_id=body.location_id,
    )


@router.post("/validate", response_model=LeaveValidation)
async def validate_leave_request(
    body: LeaveRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Run the create-time checks without saving; warnings do not block"""
    return leave_service.validate_leave_request(
        db,
        user_id=current_user.id,
        leave_type_id=body.leave_type_id,
        start_date=body.start_date,
        end_date=body.end_date,
        location_id=body.location_id,
    )


@router.get("/requests", response_model=List[LeaveRequestOut])
async def list_my_leave_requests(
    request_status: Optional[WorkflowStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the caller's leave requests, newest first"""
    return leave_service.list_leave_requests(db, current_user.id, request_status)


@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    request = leave_service.get_leave_request(db, request_id)
    if request.user_id != current_user.id:
        raise AuthorizationError("Not allowed to view this leave request")
    return request


@router.patch("/requests/{request_id}", response_model=LeaveRequestOut)
async def update_leave_request(
    request_id: int,
    body: LeaveRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Edit a Draft or Adjusted request before (re)submitting it"""
    return leave_service.update_leave_request(
        db, request_id, current_user.id,
        start_date=body.start_date,
        end_date=body.end_date,
        reason=body.reason,
    )
