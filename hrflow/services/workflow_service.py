"""
Workflow engine

Drives a resource through the ordered steps of its matched template.

States: Draft -> Submitted -> UnderReview -> Approved | Declined | Cancelled,
plus Adjusted (changes requested), from which the creator resubmits into a
new instance linked through ``previous_instance_id``.

``current_step_order`` is the only source of truth for which step is
actionable. Every transition runs in one transaction together with its
balance side effects. Approve, decline and adjust name the step they act on;
under the instance lock that step must still be current, and the step row is
then resolved by a compare-and-swap on its pending status. Of two actors
racing on the same step exactly one wins and the other gets
StepAlreadyResolvedError, whichever of the two checks it trips.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hrflow.core.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    StepAlreadyResolvedError,
    WorkflowError,
)
from hrflow.models.workflow import (
    REVIEWABLE_STATUSES,
    ResourceType,
    StepStatus,
    WorkflowInstance,
    WorkflowStatus,
    WorkflowStepInstance,
    WorkflowTemplate,
)
from hrflow.services.approver_service import can_act, eligible_approvers, get_instance_step
from hrflow.services.audit_service import log_audit
from hrflow.services.authority_service import has_system_admin
from hrflow.services.resource_adapters import get_adapter
from hrflow.services.template_service import require_template
from hrflow.utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

SUBMITTABLE_RESOURCE_STATUSES = (WorkflowStatus.DRAFT, WorkflowStatus.ADJUSTED)
CANCELLABLE_STATUSES = (
    WorkflowStatus.DRAFT,
    WorkflowStatus.SUBMITTED,
    WorkflowStatus.UNDER_REVIEW,
    WorkflowStatus.ADJUSTED,
)


@contextmanager
def _transition(db: Session, label: str):
    """Commit on success; roll back and re-raise on any failure."""
    try:
        yield
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.error("Workflow %s failed in the store; rolled back", label, exc_info=True)
        raise


def get_instance(db: Session, instance_id: int) -> WorkflowInstance:
    instance = db.get(WorkflowInstance, instance_id)
    if not instance:
        raise NotFoundError(f"Workflow instance {instance_id} not found")
    return instance


def _lock_instance(db: Session, instance_id: int) -> WorkflowInstance:
    instance = (
        db.query(WorkflowInstance)
        .filter(WorkflowInstance.id == instance_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not instance:
        raise NotFoundError(f"Workflow instance {instance_id} not found")
    return instance


def _latest_instance(db: Session, resource_type: ResourceType, resource_id: int) -> Optional[WorkflowInstance]:
    return (
        db.query(WorkflowInstance)
        .filter(WorkflowInstance.resource_type == resource_type, WorkflowInstance.resource_id == resource_id)
        .order_by(WorkflowInstance.id.desc())
        .first()
    )


def _warn_if_unresolvable(db: Session, instance: WorkflowInstance) -> None:
    if instance.status not in REVIEWABLE_STATUSES:
        return
    if not eligible_approvers(db, instance):
        logger.warning(
            "Workflow instance %s step %s has no eligible approvers (%s %s at location %s)",
            instance.id, instance.current_step_order, instance.resource_type.value,
            instance.resource_id, instance.location_id,
        )


def create_instance(
    db: Session,
    template: WorkflowTemplate,
    resource_type: ResourceType,
    resource_id: int,
    actor_id: int,
    location_id: int,
    previous_instance_id: Optional[int] = None,
) -> WorkflowInstance:
    """Draft instance with one pending step instance per template step. Does not commit."""
    instance = WorkflowInstance(
        template_id=template.id,
        resource_type=resource_type,
        resource_id=resource_id,
        status=WorkflowStatus.DRAFT,
        current_step_order=None,
        created_by=actor_id,
        location_id=location_id,
        previous_instance_id=previous_instance_id,
    )
    instance.steps = [
        WorkflowStepInstance(step_order=step.step_order, status=StepStatus.PENDING)
        for step in template.steps
    ]
    db.add(instance)
    db.flush()
    return instance


def submit(db: Session, resource_type: ResourceType, resource_id: int, actor_id: int) -> WorkflowInstance:
    """
    Submit a Draft or Adjusted resource into a new workflow instance.

    Only the resource's creator may submit, and the resource must pass its
    own checks (leave policy, timesheet hours). The first step becomes
    current; for leave the requested days are added to pending.
    """
    resource_type = ResourceType(resource_type)
    adapter = get_adapter(resource_type)

    with _transition(db, "submit"):
        resource = adapter.load(db, resource_id, lock=True)
        info = adapter.describe(db, resource)
        if info.owner_id != actor_id:
            raise AuthorizationError(f"Only the creator of {resource_type.value} {resource_id} may submit it")
        if info.status not in SUBMITTABLE_RESOURCE_STATUSES:
            raise PreconditionError(
                f"Cannot submit {resource_type.value} {resource_id} with status {info.status.value}"
            )
        adapter.validate_submission(db, resource)

        previous = _latest_instance(db, resource_type, resource_id)
        if previous is not None and previous.status in REVIEWABLE_STATUSES:
            raise PreconditionError(
                f"{resource_type.value} {resource_id} already has workflow instance {previous.id} under review"
            )

        template = require_template(db, resource_type, info.location_id, info.staff_type_id, info.leave_type_id)
        instance = create_instance(
            db, template, resource_type, resource_id, actor_id, info.location_id,
            previous_instance_id=previous.id if previous is not None else None,
        )
        instance.status = WorkflowStatus.SUBMITTED
        instance.current_step_order = min(step.step_order for step in template.steps)

        adapter.link_instance(resource, instance.id)
        adapter.set_status(resource, WorkflowStatus.SUBMITTED)
        adapter.on_submit(db, resource)
        log_audit(
            db, actor_id, "SUBMIT", "workflow_instance", instance.id,
            {
                "resource_type": resource_type.value,
                "resource_id": resource_id,
                "template_id": template.id,
                "template_version": template.version,
                "previous_instance_id": instance.previous_instance_id,
            },
        )

    db.refresh(instance)
    logger.info(
        "Submitted %s %s as workflow instance %s (template %s, step %s)",
        resource_type.value, resource_id, instance.id, instance.template_id, instance.current_step_order,
    )
    _warn_if_unresolvable(db, instance)
    return instance


def _current_step_for_action(
    db: Session,
    instance: WorkflowInstance,
    actor_id: int,
    step_order: int,
):
    """
    Validate that the addressed step is the actionable one and that the
    actor may act on it. Returns (template step, step instance).

    step_order is the step the caller saw as current. It is compared under
    the instance lock, so a caller that lost a race on that step gets
    StepAlreadyResolvedError rather than acting on the step that followed.
    """
    if step_order is None:
        raise PreconditionError("step_order is required to act on a workflow step")
    if step_order != instance.current_step_order:
        addressed = next((s for s in instance.steps if s.step_order == step_order), None)
        if addressed is None:
            raise NotFoundError(f"Workflow instance {instance.id} has no step {step_order}")
        if addressed.status != StepStatus.PENDING:
            raise StepAlreadyResolvedError(instance.id, step_order)
        raise PreconditionError(
            f"Step {step_order} of workflow instance {instance.id} is not the current step "
            f"(current: {instance.current_step_order})"
        )

    if instance.status not in REVIEWABLE_STATUSES:
        raise PreconditionError(
            f"Workflow instance {instance.id} is {instance.status.value}; no step can be acted on"
        )

    step = get_instance_step(instance, instance.current_step_order)
    step_instance = next((s for s in instance.steps if s.step_order == instance.current_step_order), None)
    if step is None or step_instance is None:
        raise PreconditionError(f"Current step {instance.current_step_order} of workflow instance {instance.id} not found")

    allowed, reason = can_act(db, instance, step, actor_id)
    if not allowed:
        raise AuthorizationError(f"User {actor_id} may not act on step {step.step_order}: {reason}")
    return step, step_instance


def _resolve_step(
    db: Session,
    instance: WorkflowInstance,
    step_instance: WorkflowStepInstance,
    new_status: StepStatus,
    actor_id: int,
    comment: Optional[str],
) -> None:
    """Compare-and-swap the step instance out of pending; the race loser gets StepAlreadyResolvedError."""
    result = db.execute(
        update(WorkflowStepInstance)
        .where(
            WorkflowStepInstance.id == step_instance.id,
            WorkflowStepInstance.status == StepStatus.PENDING,
        )
        .values(status=new_status, actor_id=actor_id, acted_at=now_utc(), comment=comment)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        logger.warning(
            "Lost race on workflow instance %s step %s (actor %s)",
            instance.id, step_instance.step_order, actor_id,
        )
        raise StepAlreadyResolvedError(instance.id, step_instance.step_order)


def approve(
    db: Session,
    instance_id: int,
    actor_id: int,
    step_order: int,
    comment: Optional[str] = None,
) -> WorkflowInstance:
    """
    Approve the current step. The last step approves the instance and
    converts pending days to used; any other step advances to the next one.
    """
    with _transition(db, "approve"):
        instance = _lock_instance(db, instance_id)
        step, step_instance = _current_step_for_action(db, instance, actor_id, step_order)
        adapter = get_adapter(instance.resource_type)
        resource = adapter.load(db, instance.resource_id, lock=True)

        _resolve_step(db, instance, step_instance, StepStatus.APPROVED, actor_id, comment)

        later = sorted(s.step_order for s in instance.template.steps if s.step_order > step.step_order)
        if later:
            instance.status = WorkflowStatus.UNDER_REVIEW
            instance.current_step_order = later[0]
            adapter.set_status(resource, WorkflowStatus.UNDER_REVIEW)
        else:
            instance.status = WorkflowStatus.APPROVED
            instance.current_step_order = None
            adapter.set_status(resource, WorkflowStatus.APPROVED)
            adapter.on_approved(db, resource)
        log_audit(
            db, actor_id, "APPROVE", "workflow_instance", instance.id,
            {"step_order": step.step_order, "comment": comment, "status": instance.status.value},
        )

    db.refresh(instance)
    logger.info(
        "User %s approved step %s of workflow instance %s -> %s",
        actor_id, step.step_order, instance.id, instance.status.value,
    )
    _warn_if_unresolvable(db, instance)
    return instance


def decline(
    db: Session,
    instance_id: int,
    actor_id: int,
    step_order: int,
    reason: str,
) -> WorkflowInstance:
    """Decline the current step. Terminal; pending days are released."""
    if not reason or not reason.strip():
        raise PreconditionError("A reason is required to decline")

    with _transition(db, "decline"):
        instance = _lock_instance(db, instance_id)
        step, step_instance = _current_step_for_action(db, instance, actor_id, step_order)
        if not step.allow_decline:
            raise PreconditionError(f"Step {step.step_order} does not allow decline")
        adapter = get_adapter(instance.resource_type)
        resource = adapter.load(db, instance.resource_id, lock=True)

        _resolve_step(db, instance, step_instance, StepStatus.DECLINED, actor_id, reason)

        instance.status = WorkflowStatus.DECLINED
        instance.current_step_order = None
        adapter.set_status(resource, WorkflowStatus.DECLINED)
        adapter.on_released(db, resource)
        log_audit(db, actor_id, "DECLINE", "workflow_instance", instance.id, {"step_order": step.step_order, "reason": reason})

    db.refresh(instance)
    logger.info("User %s declined step %s of workflow instance %s", actor_id, step.step_order, instance.id)
    return instance


def adjust(
    db: Session,
    instance_id: int,
    actor_id: int,
    step_order: int,
    reason: str,
) -> WorkflowInstance:
    """
    Send the resource back to its creator for changes. Pending days are
    released and re-added when the creator resubmits into a new instance.
    """
    if not reason or not reason.strip():
        raise PreconditionError("A reason is required to request adjustments")

    with _transition(db, "adjust"):
        instance = _lock_instance(db, instance_id)
        step, step_instance = _current_step_for_action(db, instance, actor_id, step_order)
        if not step.allow_adjust:
            raise PreconditionError(f"Step {step.step_order} does not allow adjustment")
        adapter = get_adapter(instance.resource_type)
        resource = adapter.load(db, instance.resource_id, lock=True)

        _resolve_step(db, instance, step_instance, StepStatus.ADJUSTED, actor_id, reason)

        instance.status = WorkflowStatus.ADJUSTED
        instance.current_step_order = None
        adapter.set_status(resource, WorkflowStatus.ADJUSTED)
        adapter.on_released(db, resource)
        log_audit(db, actor_id, "ADJUST", "workflow_instance", instance.id, {"step_order": step.step_order, "reason": reason})

    db.refresh(instance)
    logger.info("User %s requested adjustments at step %s of workflow instance %s", actor_id, step.step_order, instance.id)
    return instance


def cancel(db: Session, instance_id: int, actor_id: int, reason: Optional[str] = None) -> WorkflowInstance:
    """
    Cancel a non-terminal instance. Only the creator or a system
    administrator may cancel; pending days are released if still reserved.
    """
    with _transition(db, "cancel"):
        instance = _lock_instance(db, instance_id)
        if instance.created_by != actor_id and not has_system_admin(db, actor_id):
            raise AuthorizationError("Only the creator or a system administrator may cancel this workflow")
        if instance.status not in CANCELLABLE_STATUSES:
            raise PreconditionError(f"Workflow instance {instance.id} is {instance.status.value} and cannot be cancelled")

        adapter = get_adapter(instance.resource_type)
        resource = adapter.load(db, instance.resource_id, lock=True)
        if resource.workflow_instance_id != instance.id:
            raise PreconditionError(
                f"Workflow instance {instance.id} has been superseded by instance {resource.workflow_instance_id}"
            )

        prior_status = instance.status
        instance.status = WorkflowStatus.CANCELLED
        instance.current_step_order = None
        adapter.set_status(resource, WorkflowStatus.CANCELLED)
        if prior_status in REVIEWABLE_STATUSES:
            adapter.on_released(db, resource)
        log_audit(
            db, actor_id, "CANCEL", "workflow_instance", instance.id,
            {"prior_status": prior_status.value, "reason": reason},
        )

    db.refresh(instance)
    logger.info("User %s cancelled workflow instance %s (was %s)", actor_id, instance.id, prior_status.value)
    return instance


def _summary(instance: WorkflowInstance, approver_count: int) -> Dict[str, Any]:
    return {
        "instance_id": instance.id,
        "resource_type": instance.resource_type,
        "resource_id": instance.resource_id,
        "status": instance.status,
        "current_step_order": instance.current_step_order,
        "created_by": instance.created_by,
        "location_id": instance.location_id,
        "eligible_approver_count": approver_count,
    }


def _reviewable_instances(db: Session) -> List[WorkflowInstance]:
    return (
        db.query(WorkflowInstance)
        .filter(WorkflowInstance.status.in_(REVIEWABLE_STATUSES))
        .order_by(WorkflowInstance.created_at, WorkflowInstance.id)
        .all()
    )


def list_pending_approvals(db: Session, actor_id: int) -> List[Dict[str, Any]]:
    """Instances whose current step resolves to a set containing the actor."""
    pending = []
    for instance in _reviewable_instances(db):
        approvers = eligible_approvers(db, instance)
        if actor_id in approvers:
            pending.append(_summary(instance, len(approvers)))
    return pending


def list_stalled_instances(db: Session) -> List[Dict[str, Any]]:
    """Reviewable instances whose current step resolves to zero eligible approvers."""
    return [
        _summary(instance, 0)
        for instance in _reviewable_instances(db)
        if not eligible_approvers(db, instance)
    ]


def get_instance_detail(db: Session, instance_id: int) -> Dict[str, Any]:
    """The instance with its step history, current approvers and earlier instances."""
    instance = get_instance(db, instance_id)
    history = []
    previous_id = instance.previous_instance_id
    while previous_id is not None:
        previous = db.get(WorkflowInstance, previous_id)
        if previous is None:
            break
        history.append(previous)
        previous_id = previous.previous_instance_id
    return {
        "instance": instance,
        "current_approver_ids": sorted(eligible_approvers(db, instance)),
        "history": history,
    }
