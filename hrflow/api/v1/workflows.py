"""
Workflow instance endpoints: submit, act on steps, and inspect instances
"""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_WORKFLOW_INSTANCES_READ
from hrflow.core.deps import get_current_user, get_db, require_permission
from hrflow.core.errors import AuthorizationError
from hrflow.models.user import User
from hrflow.schemas.workflow import (
    AdjustRequest,
    ApproveRequest,
    DeclineRequest,
    InstanceDetailOut,
    InstanceOut,
    InstanceSummary,
    SubmitRequest,
)
from hrflow.services import workflow_service
from hrflow.services.authority_service import authorize

router = APIRouter()


@router.post("", response_model=InstanceOut, status_code=status.HTTP_201_CREATED)
async def submit_resource(
    body: SubmitRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Submit a Draft or Adjusted resource for approval

    Creates a workflow instance from the best matching template. Resubmitting
    an Adjusted resource starts a fresh instance linked to the previous one.
    """
    return workflow_service.submit(db, body.resource_type, body.resource_id, current_user.id)


@router.get("/pending", response_model=List[InstanceSummary])
async def list_pending(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List instances whose current step the caller can act on"""
    return workflow_service.list_pending_approvals(db, current_user.id)


@router.get("/stalled", response_model=List[InstanceSummary])
async def list_stalled(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_WORKFLOW_INSTANCES_READ))
):
    """
    List instances under review whose current step has no eligible approver

    These need an administrator to fix roles, scopes or the template.
    """
    return workflow_service.list_stalled_instances(db)


@router.get("/{instance_id}", response_model=InstanceDetailOut)
async def get_instance(
    instance_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Get an instance with its step history and current approvers

    Visible to the creator, to current approvers, and to holders of
    workflows.instances.read at the instance location.
    """
    detail = workflow_service.get_instance_detail(db, instance_id)
    instance = detail["instance"]
    if (
        instance.created_by != current_user.id
        and current_user.id not in detail["current_approver_ids"]
        and not authorize(db, current_user.id, PERM_WORKFLOW_INSTANCES_READ, instance.location_id).authorized
    ):
        raise AuthorizationError(f"Not allowed to view workflow instance {instance_id}")
    return detail


@router.post("/{instance_id}/approve", response_model=InstanceOut)
async def approve_step(
    instance_id: int,
    body: ApproveRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Approve the current step

    step_order names the step the caller saw as current; if another approver
    resolved it first the call fails with 409 instead of acting on a later step.
    """
    return workflow_service.approve(db, instance_id, current_user.id, body.step_order, body.comment)


@router.post("/{instance_id}/decline", response_model=InstanceOut)
async def decline_step(
    instance_id: int,
    body: DeclineRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Decline the current step; the instance and its resource end as Declined"""
    return workflow_service.decline(db, instance_id, current_user.id, body.step_order, body.reason)


@router.post("/{instance_id}/adjust", response_model=InstanceOut)
async def request_adjustment(
    instance_id: int,
    body: AdjustRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Send the resource back to its creator for changes"""
    return workflow_service.adjust(db, instance_id, current_user.id, body.step_order, body.reason)


@router.post("/{instance_id}/cancel", response_model=InstanceOut)
async def cancel_instance(
    instance_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Cancel an instance (creator or system administrator)"""
    return workflow_service.cancel(db, instance_id, current_user.id)
