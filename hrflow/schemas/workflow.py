"""
Workflow schemas: approver strategies, template definitions and instance views
"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from hrflow.models.workflow import (
    ApproverStrategyKind,
    LocationScope,
    ResourceType,
    StepStatus,
    TemplateStatus,
    WorkflowStatus,
)
from hrflow.utils.datetime_utils import iso_8601_utc


# --- Approver strategies (closed tagged union, parsed once from a step row) ---

class RoleStrategy(BaseModel):
    kind: Literal["role"] = "role"
    roles: List[str] = Field(..., min_length=1)
    location_scope: LocationScope = LocationScope.SAME
    include_manager: bool = False


class ManagerStrategy(BaseModel):
    kind: Literal["manager"] = "manager"


class PermissionStrategy(BaseModel):
    kind: Literal["permission"] = "permission"
    location_scope: LocationScope = LocationScope.SAME
    include_manager: bool = False


class CombinedStrategy(BaseModel):
    """Union of the role strategy and the direct manager."""
    kind: Literal["combined"] = "combined"
    roles: List[str] = Field(..., min_length=1)
    location_scope: LocationScope = LocationScope.SAME


ApproverStrategy = Annotated[
    Union[RoleStrategy, ManagerStrategy, PermissionStrategy, CombinedStrategy],
    Field(discriminator="kind"),
]


# --- Template definitions ---

class StepDefinition(BaseModel):
    """One step of a template as submitted by an administrator"""
    step_order: int = Field(..., ge=1, description="Position in the linear approval path")
    required_permission: str = Field(..., min_length=1, description="Permission the approver must hold")
    approver_strategy: ApproverStrategyKind = ApproverStrategyKind.PERMISSION
    required_roles: List[str] = Field(default_factory=list, description="Role names for role/combined strategies")
    include_manager: bool = False
    location_scope: LocationScope = LocationScope.SAME
    allow_decline: bool = True
    allow_adjust: bool = False
    conditional_rules: Optional[dict] = None

    @model_validator(mode="after")
    def roles_required_for_role_strategies(self) -> "StepDefinition":
        if self.approver_strategy in (ApproverStrategyKind.ROLE, ApproverStrategyKind.COMBINED) and not self.required_roles:
            raise ValueError(f"required_roles must not be empty for the {self.approver_strategy.value} strategy")
        return self


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1)
    resource_type: ResourceType
    location_id: Optional[int] = None
    staff_type_id: Optional[int] = None
    leave_type_id: Optional[int] = None
    steps: List[StepDefinition] = Field(..., min_length=1)

    @field_validator("steps")
    @classmethod
    def unique_step_order(cls, v: List[StepDefinition]) -> List[StepDefinition]:
        orders = [s.step_order for s in v]
        if len(orders) != len(set(orders)):
            raise ValueError("step_order must be unique within a template")
        return sorted(v, key=lambda s: s.step_order)

    @model_validator(mode="after")
    def leave_type_only_for_leave(self) -> "TemplateCreate":
        if self.leave_type_id is not None and self.resource_type != ResourceType.LEAVE:
            raise ValueError("leave_type_id filter only applies to leave templates")
        return self


class StepOut(BaseModel):
    id: int
    step_order: int
    required_permission: str
    approver_strategy: ApproverStrategyKind
    required_roles: Optional[List[str]] = None
    include_manager: bool
    location_scope: LocationScope
    allow_decline: bool
    allow_adjust: bool
    conditional_rules: Optional[dict] = None

    model_config = ConfigDict(from_attributes=True)


class TemplateOut(BaseModel):
    id: int
    name: str
    resource_type: ResourceType
    location_id: Optional[int]
    staff_type_id: Optional[int]
    leave_type_id: Optional[int]
    status: TemplateStatus
    version: int
    created_at: datetime
    steps: List[StepOut] = []

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)


class TemplateMatchQuery(BaseModel):
    resource_type: ResourceType
    location_id: int
    staff_type_id: Optional[int] = None
    leave_type_id: Optional[int] = None


class PreviewApproversRequest(BaseModel):
    location_id: int = Field(..., description="Resource location to resolve against")
    owner_id: Optional[int] = Field(None, description="Resource owner, for manager strategies")


class StepApproversOut(BaseModel):
    step_order: int
    approver_strategy: ApproverStrategyKind
    approver_ids: List[int]


# --- Instances ---

class SubmitRequest(BaseModel):
    resource_type: ResourceType
    resource_id: int


class ApproveRequest(BaseModel):
    step_order: int = Field(..., ge=1, description="Step the caller is acting on; 409 if another approver resolved it first")
    comment: Optional[str] = Field(None, description="Optional approval comment")


class DeclineRequest(BaseModel):
    reason: str = Field(..., min_length=1, description="Reason for declining")
    step_order: int = Field(..., ge=1)


class AdjustRequest(BaseModel):
    reason: str = Field(..., min_length=1, description="Changes requested from the creator")
    step_order: int = Field(..., ge=1)


class StepInstanceOut(BaseModel):
    step_order: int
    status: StepStatus
    actor_id: Optional[int]
    acted_at: Optional[datetime]
    comment: Optional[str]

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("acted_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)


class InstanceOut(BaseModel):
    id: int
    template_id: int
    resource_type: ResourceType
    resource_id: int
    status: WorkflowStatus
    current_step_order: Optional[int]
    created_by: int
    location_id: int
    previous_instance_id: Optional[int] = None
    created_at: datetime
    steps: List[StepInstanceOut] = []

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)


class InstanceSummary(BaseModel):
    """Row of a pending-approvals or stalled-instances listing"""
    instance_id: int
    resource_type: ResourceType
    resource_id: int
    status: WorkflowStatus
    current_step_order: Optional[int]
    created_by: int
    location_id: int
    eligible_approver_count: int


class InstanceDetailOut(BaseModel):
    instance: InstanceOut
    current_approver_ids: List[int] = []
    history: List[InstanceOut] = Field(default_factory=list, description="Earlier instances for the same resource")
