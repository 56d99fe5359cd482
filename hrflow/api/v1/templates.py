"""
Workflow template catalog endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from hrflow.core.constants import PERM_WORKFLOW_TEMPLATES_MANAGE, PERM_WORKFLOW_TEMPLATES_READ
from hrflow.core.deps import get_db, require_permission
from hrflow.core.errors import NotFoundError
from hrflow.models.user import User
from hrflow.models.workflow import ResourceType, TemplateStatus
from hrflow.schemas.workflow import (
    PreviewApproversRequest,
    StepApproversOut,
    TemplateCreate,
    TemplateOut,
)
from hrflow.services import template_service
from hrflow.services.approver_service import preview_approvers
from hrflow.services.location_service import get_location

router = APIRouter()


@router.post("", response_model=TemplateOut, status_code=status.HTTP_201_CREATED)
async def create_template(
    body: TemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_WORKFLOW_TEMPLATES_MANAGE))
):
    """
    Create a template

    A template with the same resource type and filters gets the next
    version number; the previous versions stay usable until deprecated.
    """
    return template_service.create_template(db, body, actor_id=current_user.id)


@router.get("", response_model=List[TemplateOut])
async def list_templates(
    resource_type: Optional[ResourceType] = Query(None),
    template_status: Optional[TemplateStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_WORKFLOW_TEMPLATES_READ))
):
    """List templates, optionally filtered by resource type and status"""
    return template_service.list_templates(db, resource_type, template_status)


@router.get("/match", response_model=TemplateOut)
async def match_template(
    resource_type: ResourceType = Query(...),
    location_id: int = Query(...),
    staff_type_id: Optional[int] = Query(None),
    leave_type_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_WORKFLOW_TEMPLATES_READ))
):
    """Return the template a resource with these attributes would be submitted under"""
    get_location(db, location_id)
    template = template_service.find_template(db, resource_type, location_id, staff_type_id, leave_type_id)
    if template is None:
        raise NotFoundError(f"No active {resource_type.value} template matches location {location_id}")
    return template


@router.get("/{template_id}", response_model=TemplateOut)
async def get_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_WORKFLOW_TEMPLATES_READ))
):
    """Get a template with its steps"""
    return template_service.get_template(db, template_id)


@router.post("/{template_id}/deprecate", response_model=TemplateOut)
async def deprecate_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_WORKFLOW_TEMPLATES_MANAGE))
):
    """
    Deprecate a template

    Deprecated templates are no longer matched for new submissions; running
    instances keep using them.
    """
    return template_service.deprecate_template(db, template_id, actor_id=current_user.id)


@router.post("/{template_id}/preview-approvers", response_model=List[StepApproversOut])
async def preview_template_approvers(
    template_id: int,
    body: PreviewApproversRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERM_WORKFLOW_TEMPLATES_READ))
):
    """Resolve each step's approvers for a hypothetical resource at a location"""
    template = template_service.get_template(db, template_id)
    get_location(db, body.location_id)
    return preview_approvers(db, template, body.location_id, body.owner_id)
