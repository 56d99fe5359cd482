"""
Workflow models: templates, steps, instances and step instances
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    JSON,
    Enum as SQLEnum,
    UniqueConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
import enum
from hrflow.db.base import Base


class ResourceType(str, enum.Enum):
    LEAVE = "leave"
    TIMESHEET = "timesheet"


class TemplateStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DEPRECATED = "deprecated"


class ApproverStrategyKind(str, enum.Enum):
    ROLE = "role"
    MANAGER = "manager"
    PERMISSION = "permission"
    COMBINED = "combined"


class LocationScope(str, enum.Enum):
    SAME = "same"
    ALL = "all"
    ANCESTORS = "ancestors"


class WorkflowStatus(str, enum.Enum):
    """Status of an instance; resources mirror the same values."""
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "UnderReview"
    APPROVED = "Approved"
    DECLINED = "Declined"
    CANCELLED = "Cancelled"
    ADJUSTED = "Adjusted"


# Instance states in which the current step is actionable
REVIEWABLE_STATUSES = (WorkflowStatus.SUBMITTED, WorkflowStatus.UNDER_REVIEW)
TERMINAL_STATUSES = (WorkflowStatus.APPROVED, WorkflowStatus.DECLINED, WorkflowStatus.CANCELLED)


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    ADJUSTED = "adjusted"


class WorkflowTemplate(Base):
    __tablename__ = "workflow_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    resource_type = Column(SQLEnum(ResourceType), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    staff_type_id = Column(Integer, ForeignKey("staff_types.id"), nullable=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=True)
    status = Column(SQLEnum(TemplateStatus), nullable=False, default=TemplateStatus.ACTIVE)
    version = Column(Integer, nullable=False, default=1)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    steps = relationship(
        "WorkflowStep",
        back_populates="template",
        order_by="WorkflowStep.step_order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_workflow_templates_match", "resource_type", "status"),
    )


class WorkflowStep(Base):
    __tablename__ = "workflow_steps"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("workflow_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    required_permission = Column(String, nullable=False)
    approver_strategy = Column(SQLEnum(ApproverStrategyKind), nullable=False, default=ApproverStrategyKind.PERMISSION)
    required_roles = Column(JSON, nullable=True)  # list of role names
    include_manager = Column(Boolean, nullable=False, default=False)
    location_scope = Column(SQLEnum(LocationScope), nullable=False, default=LocationScope.SAME)
    allow_decline = Column(Boolean, nullable=False, default=True)
    allow_adjust = Column(Boolean, nullable=False, default=False)
    conditional_rules = Column(JSON, nullable=True)

    template = relationship("WorkflowTemplate", back_populates="steps")

    __table_args__ = (
        UniqueConstraint("template_id", "step_order", name="uq_workflow_steps_template_order"),
    )


class WorkflowInstance(Base):
    __tablename__ = "workflow_instances"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("workflow_templates.id"), nullable=False, index=True)
    resource_type = Column(SQLEnum(ResourceType), nullable=False)
    resource_id = Column(Integer, nullable=False)
    status = Column(SQLEnum(WorkflowStatus), nullable=False, default=WorkflowStatus.DRAFT)
    current_step_order = Column(Integer, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    previous_instance_id = Column(Integer, ForeignKey("workflow_instances.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    template = relationship("WorkflowTemplate")
    creator = relationship("User", foreign_keys=[created_by])
    steps = relationship(
        "WorkflowStepInstance",
        back_populates="instance",
        order_by="WorkflowStepInstance.step_order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_workflow_instances_resource", "resource_type", "resource_id"),
        Index("ix_workflow_instances_status", "status"),
    )


class WorkflowStepInstance(Base):
    __tablename__ = "workflow_step_instances"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("workflow_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    status = Column(SQLEnum(StepStatus), nullable=False, default=StepStatus.PENDING)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    acted_at = Column(DateTime(timezone=True), nullable=True)
    comment = Column(Text, nullable=True)

    instance = relationship("WorkflowInstance", back_populates="steps")
    actor = relationship("User", foreign_keys=[actor_id])

    __table_args__ = (
        UniqueConstraint("instance_id", "step_order", name="uq_step_instances_instance_order"),
    )
