"""
Resource adapters

The engine is generic over resource types. Each adapter supplies what the
engine needs from one resource table: owner, location, template filters,
status mirroring and the balance side effects of each transition.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from hrflow.core.errors import ConfigurationError, NotFoundError
from hrflow.models.leave import LeaveRequest
from hrflow.models.timesheet import Timesheet
from hrflow.models.user import User
from hrflow.models.workflow import ResourceType, WorkflowStatus
from hrflow.services import balance_service, leave_service, timesheet_service

logger = logging.getLogger(__name__)


class ResourceInfo(BaseModel):
    resource_type: ResourceType
    resource_id: int
    owner_id: int
    location_id: int
    status: WorkflowStatus
    staff_type_id: Optional[int] = None
    leave_type_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days: Optional[Decimal] = None


class ResourceAdapter:
    resource_type: ResourceType
    model: Any

    def load(self, db: Session, resource_id: int, lock: bool = True):
        query = db.query(self.model).filter(self.model.id == resource_id, self.model.deleted_at.is_(None))
        if lock:
            query = query.with_for_update()
        resource = query.first()
        if not resource:
            raise NotFoundError(f"{self.resource_type.value} {resource_id} not found")
        return resource

    def describe(self, db: Session, resource) -> ResourceInfo:
        raise NotImplementedError

    def set_status(self, resource, status: WorkflowStatus) -> None:
        resource.status = status

    def link_instance(self, resource, instance_id: int) -> None:
        resource.workflow_instance_id = instance_id

    def validate_submission(self, db: Session, resource) -> None:
        """Raise PreconditionError when the resource may not be submitted as it stands."""

    # Balance side effects; the default resource has none
    def on_submit(self, db: Session, resource) -> None:
        pass

    def on_approved(self, db: Session, resource) -> None:
        pass

    def on_released(self, db: Session, resource) -> None:
        pass

    @staticmethod
    def _owner_staff_type(db: Session, owner_id: int) -> Optional[int]:
        owner = db.get(User, owner_id)
        return owner.staff_type_id if owner else None


class LeaveRequestAdapter(ResourceAdapter):
    """Leave requests reserve, convert and release days on the balance ledger."""

    resource_type = ResourceType.LEAVE
    model = LeaveRequest

    def describe(self, db: Session, resource: LeaveRequest) -> ResourceInfo:
        return ResourceInfo(
            resource_type=self.resource_type,
            resource_id=resource.id,
            owner_id=resource.user_id,
            location_id=resource.location_id,
            status=resource.status,
            staff_type_id=self._owner_staff_type(db, resource.user_id),
            leave_type_id=resource.leave_type_id,
            start_date=resource.start_date,
            end_date=resource.end_date,
            days=Decimal(str(resource.days_requested)),
        )

    @staticmethod
    def _ledger_key(resource: LeaveRequest):
        return resource.user_id, resource.leave_type_id, resource.start_date.year

    def validate_submission(self, db: Session, resource: LeaveRequest) -> None:
        leave_service.check_leave_request(db, resource)

    def on_submit(self, db: Session, resource: LeaveRequest) -> None:
        balance_service.add_pending(db, *self._ledger_key(resource), resource.days_requested)

    def on_approved(self, db: Session, resource: LeaveRequest) -> None:
        balance_service.convert_pending_to_used(db, *self._ledger_key(resource), resource.days_requested)

    def on_released(self, db: Session, resource: LeaveRequest) -> None:
        balance_service.remove_pending(db, *self._ledger_key(resource), resource.days_requested)


class TimesheetAdapter(ResourceAdapter):
    resource_type = ResourceType.TIMESHEET
    model = Timesheet

    def describe(self, db: Session, resource: Timesheet) -> ResourceInfo:
        return ResourceInfo(
            resource_type=self.resource_type,
            resource_id=resource.id,
            owner_id=resource.user_id,
            location_id=resource.location_id,
            status=resource.status,
            staff_type_id=self._owner_staff_type(db, resource.user_id),
            start_date=resource.period_start,
            end_date=resource.period_end,
        )

    def validate_submission(self, db: Session, resource: Timesheet) -> None:
        timesheet_service.check_timesheet(db, resource)


ADAPTERS: Dict[ResourceType, ResourceAdapter] = {
    ResourceType.LEAVE: LeaveRequestAdapter(),
    ResourceType.TIMESHEET: TimesheetAdapter(),
}


def get_adapter(resource_type: ResourceType) -> ResourceAdapter:
    adapter = ADAPTERS.get(ResourceType(resource_type))
    if adapter is None:
        raise ConfigurationError(f"No resource adapter registered for {resource_type}")
    return adapter
