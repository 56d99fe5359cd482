"""
Workflow template catalog

Templates are matched to a resource by "most specific filter wins": a
template declaring a non-null location/staff-type/leave-type filter that the
resource does not match is disqualified; among the rest the one with the
most matching non-null filters wins, ties going to the highest version.
"""
import logging
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session

from hrflow.core.errors import ConfigurationError, NotFoundError, PreconditionError
from hrflow.models.leave import LeaveType
from hrflow.models.location import Location
from hrflow.models.user import StaffType
from hrflow.models.workflow import (
    ApproverStrategyKind,
    ResourceType,
    TemplateStatus,
    WorkflowStep,
    WorkflowTemplate,
)
from hrflow.schemas.workflow import ApproverStrategy, TemplateCreate
from hrflow.services.audit_service import log_audit

logger = logging.getLogger(__name__)

_strategy_adapter = TypeAdapter(ApproverStrategy)


def parse_step_strategy(step: WorkflowStep) -> ApproverStrategy:
    """Parse a stored step row into its typed approver strategy."""
    payload = {"kind": step.approver_strategy.value}
    if step.approver_strategy in (ApproverStrategyKind.ROLE, ApproverStrategyKind.COMBINED):
        payload["roles"] = list(step.required_roles or [])
    if step.approver_strategy != ApproverStrategyKind.MANAGER:
        payload["location_scope"] = step.location_scope
    if step.approver_strategy in (ApproverStrategyKind.ROLE, ApproverStrategyKind.PERMISSION):
        payload["include_manager"] = bool(step.include_manager)
    try:
        return _strategy_adapter.validate_python(payload)
    except ValidationError as e:
        raise ConfigurationError(
            f"Step {step.step_order} of template {step.template_id} has an unusable approver configuration: "
            f"{e.errors()[0]['msg']}"
        )


def _filter_score(template: WorkflowTemplate, location_id, staff_type_id, leave_type_id) -> Optional[int]:
    """Number of matching non-null filters, or None when any declared filter mismatches."""
    score = 0
    for declared, actual in (
        (template.location_id, location_id),
        (template.staff_type_id, staff_type_id),
        (template.leave_type_id, leave_type_id),
    ):
        if declared is None:
            continue
        if declared != actual:
            return None
        score += 1
    return score


def find_template(
    db: Session,
    resource_type: ResourceType,
    location_id: Optional[int],
    staff_type_id: Optional[int] = None,
    leave_type_id: Optional[int] = None,
) -> Optional[WorkflowTemplate]:
    """Pick the most specific active template for a resource, or None."""
    candidates = (
        db.query(WorkflowTemplate)
        .filter(
            WorkflowTemplate.resource_type == resource_type,
            WorkflowTemplate.status == TemplateStatus.ACTIVE,
        )
        .all()
    )
    best = None
    best_key = None
    for template in candidates:
        score = _filter_score(template, location_id, staff_type_id, leave_type_id)
        if score is None:
            continue
        # id breaks exact ties so the choice never depends on row order
        key = (score, template.version, template.id)
        if best_key is None or key > best_key:
            best, best_key = template, key
    return best


def require_template(
    db: Session,
    resource_type: ResourceType,
    location_id: Optional[int],
    staff_type_id: Optional[int] = None,
    leave_type_id: Optional[int] = None,
) -> WorkflowTemplate:
    template = find_template(db, resource_type, location_id, staff_type_id, leave_type_id)
    if template is None:
        raise ConfigurationError(
            f"No matching workflow template for {resource_type.value} "
            f"(location={location_id}, staff_type={staff_type_id}, leave_type={leave_type_id})"
        )
    if not template.steps:
        raise ConfigurationError(f"Workflow template {template.id} has no steps")
    return template


def get_template(db: Session, template_id: int) -> WorkflowTemplate:
    template = db.get(WorkflowTemplate, template_id)
    if not template:
        raise NotFoundError(f"Workflow template {template_id} not found")
    return template


def list_templates(
    db: Session,
    resource_type: Optional[ResourceType] = None,
    status: Optional[TemplateStatus] = None,
) -> List[WorkflowTemplate]:
    query = db.query(WorkflowTemplate)
    if resource_type is not None:
        query = query.filter(WorkflowTemplate.resource_type == resource_type)
    if status is not None:
        query = query.filter(WorkflowTemplate.status == status)
    return query.order_by(WorkflowTemplate.resource_type, WorkflowTemplate.id).all()


def _next_version(db: Session, data: TemplateCreate) -> int:
    current = (
        db.query(func.max(WorkflowTemplate.version))
        .filter(
            WorkflowTemplate.resource_type == data.resource_type,
            WorkflowTemplate.location_id.is_(None) if data.location_id is None
            else WorkflowTemplate.location_id == data.location_id,
            WorkflowTemplate.staff_type_id.is_(None) if data.staff_type_id is None
            else WorkflowTemplate.staff_type_id == data.staff_type_id,
            WorkflowTemplate.leave_type_id.is_(None) if data.leave_type_id is None
            else WorkflowTemplate.leave_type_id == data.leave_type_id,
        )
        .scalar()
    )
    return (current or 0) + 1


def create_template(db: Session, data: TemplateCreate, actor_id: Optional[int] = None) -> WorkflowTemplate:
    """
    Create a template with its ordered steps.

    The version is one above the highest existing version for the same
    filter set; earlier versions are left untouched.
    """
    if data.location_id is not None and db.get(Location, data.location_id) is None:
        raise NotFoundError(f"Location {data.location_id} not found")
    if data.staff_type_id is not None and db.get(StaffType, data.staff_type_id) is None:
        raise NotFoundError(f"Staff type {data.staff_type_id} not found")
    if data.leave_type_id is not None and db.get(LeaveType, data.leave_type_id) is None:
        raise NotFoundError(f"Leave type {data.leave_type_id} not found")

    template = WorkflowTemplate(
        name=data.name,
        resource_type=data.resource_type,
        location_id=data.location_id,
        staff_type_id=data.staff_type_id,
        leave_type_id=data.leave_type_id,
        status=TemplateStatus.ACTIVE,
        version=_next_version(db, data),
        created_by=actor_id,
    )
    for step in data.steps:
        template.steps.append(
            WorkflowStep(
                step_order=step.step_order,
                required_permission=step.required_permission,
                approver_strategy=step.approver_strategy,
                required_roles=step.required_roles or None,
                include_manager=step.include_manager,
                location_scope=step.location_scope,
                allow_decline=step.allow_decline,
                allow_adjust=step.allow_adjust,
                conditional_rules=step.conditional_rules,
            )
        )
    db.add(template)
    db.flush()

    try:
        for step in template.steps:
            parse_step_strategy(step)
    except ConfigurationError:
        db.rollback()
        raise

    log_audit(
        db, actor_id, "CREATE", "workflow_template", template.id,
        {"name": data.name, "resource_type": data.resource_type.value, "version": template.version,
         "steps": len(data.steps)},
    )
    db.commit()
    db.refresh(template)
    logger.info("Created workflow template %s (%s v%s)", template.id, template.resource_type.value, template.version)
    return template


def deprecate_template(db: Session, template_id: int, actor_id: Optional[int] = None) -> WorkflowTemplate:
    """Take a template out of matching. Running instances keep using it."""
    template = get_template(db, template_id)
    if template.status == TemplateStatus.DEPRECATED:
        raise PreconditionError(f"Workflow template {template_id} is already deprecated")
    template.status = TemplateStatus.DEPRECATED
    log_audit(db, actor_id, "DEPRECATE", "workflow_template", template_id, {"version": template.version})
    db.commit()
    db.refresh(template)
    return template
