"""
Leave models: leave types, requests and the balance ledger
"""
from sqlalchemy import (
    Column,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    Numeric,
    Boolean,
    Enum as SQLEnum,
    UniqueConstraint,
    Index,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import relationship
import enum
from hrflow.db.base import Base
from hrflow.models.workflow import WorkflowStatus


class ResetType(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class AccrualPeriod(str, enum.Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class LeaveType(Base):
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(String, nullable=True)
    is_paid = Column(Boolean, nullable=False, default=True)
    exclude_weekends = Column(Boolean, nullable=False, default=False)
    max_days_per_year = Column(Numeric(6, 2), nullable=True)
    accrues = Column(Boolean, nullable=False, default=False)  # credited by the monthly accrual run
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_requested = Column(Numeric(6, 2), nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(SQLEnum(WorkflowStatus), nullable=False, default=WorkflowStatus.DRAFT)
    workflow_instance_id = Column(Integer, ForeignKey("workflow_instances.id"), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    user = relationship("User", foreign_keys=[user_id])
    leave_type = relationship("LeaveType")
    location = relationship("Location")

    __table_args__ = (
        Index("ix_leave_requests_user_dates", "user_id", "start_date", "end_date"),
        CheckConstraint("start_date <= end_date", name="check_leave_start_le_end"),
    )


class LeaveBalance(Base):
    """
    Ledger row per (user_id, leave_type_id, year).
    available = allocated - used - pending; none of the counters may go negative.
    """
    __tablename__ = "leave_balances"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    year = Column(Integer, nullable=False, index=True)
    allocated = Column(Numeric(6, 2), nullable=False, default=0)
    used = Column(Numeric(6, 2), nullable=False, default=0)
    pending = Column(Numeric(6, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    user = relationship("User")
    leave_type = relationship("LeaveType")

    __table_args__ = (
        UniqueConstraint("user_id", "leave_type_id", "year", name="uq_leave_balances_user_type_year"),
        CheckConstraint("allocated >= 0 AND used >= 0 AND pending >= 0", name="check_leave_balance_non_negative"),
    )


class LeaveBalanceAdjustment(Base):
    """History of manual adjustments to allocated days."""
    __tablename__ = "leave_balance_adjustments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    year = Column(Integer, nullable=False)
    adjustment = Column(Numeric(6, 2), nullable=False)  # + for credit, - for debit
    reason = Column(Text, nullable=False)
    adjusted_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    adjusted_at = Column(DateTime(timezone=True), nullable=False)


class LeaveBalanceReset(Base):
    __tablename__ = "leave_balance_resets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=True)  # null = every type
    reset_type = Column(SQLEnum(ResetType), nullable=False)
    reason = Column(Text, nullable=False)
    reset_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reset_at = Column(DateTime(timezone=True), nullable=False)


class LeaveAccrualConfig(Base):
    """
    Accrual rate for a leave type. location_id and staff_type_id narrow the
    rule; the most specific active row wins.
    """
    __tablename__ = "leave_accrual_configs"

    id = Column(Integer, primary_key=True, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    staff_type_id = Column(Integer, ForeignKey("staff_types.id"), nullable=True)
    accrual_rate = Column(Numeric(6, 2), nullable=False)
    accrual_period = Column(SQLEnum(AccrualPeriod), nullable=False, default=AccrualPeriod.MONTHLY)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)

    leave_type = relationship("LeaveType")

    __table_args__ = (
        CheckConstraint("accrual_rate >= 0", name="check_accrual_rate_non_negative"),
    )


class LeaveAccrualRun(Base):
    """One row per (user, leave type, month) credited; makes the monthly run idempotent."""
    __tablename__ = "leave_accrual_runs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    days = Column(Numeric(6, 2), nullable=False)
    config_id = Column(Integer, ForeignKey("leave_accrual_configs.id"), nullable=True)
    credited_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "leave_type_id", "year", "month", name="uq_leave_accrual_runs_user_type_month"),
    )
