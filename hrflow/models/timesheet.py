"""
Timesheet models
"""
from sqlalchemy import (
    Column,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    Text,
    Enum as SQLEnum,
    CheckConstraint,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from hrflow.db.base import Base
from hrflow.models.workflow import WorkflowStatus


class Timesheet(Base):
    __tablename__ = "timesheets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    total_hours = Column(Numeric(7, 2), nullable=False, default=0)  # sum of entry hours
    notes = Column(Text, nullable=True)
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
    location = relationship("Location")
    entries = relationship(
        "TimesheetEntry",
        back_populates="timesheet",
        order_by="TimesheetEntry.entry_date",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("period_start <= period_end", name="check_timesheet_period"),
    )


class TimesheetEntry(Base):
    """
    Hours booked on one day of a timesheet.
    expected_hours is the working day length at the timesheet location, zero
    on weekends and holidays.
    """
    __tablename__ = "timesheet_entries"

    id = Column(Integer, primary_key=True, index=True)
    timesheet_id = Column(Integer, ForeignKey("timesheets.id", ondelete="CASCADE"), nullable=False, index=True)
    entry_date = Column(Date, nullable=False)
    work_hours = Column(Numeric(5, 2), nullable=False, default=0)
    leave_hours = Column(Numeric(5, 2), nullable=False, default=0)
    holiday_hours = Column(Numeric(5, 2), nullable=False, default=0)
    overtime_hours = Column(Numeric(5, 2), nullable=False, default=0)
    expected_hours = Column(Numeric(5, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)

    timesheet = relationship("Timesheet", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("timesheet_id", "entry_date", name="uq_timesheet_entries_day"),
        CheckConstraint(
            "work_hours >= 0 AND leave_hours >= 0 AND holiday_hours >= 0 AND overtime_hours >= 0",
            name="check_timesheet_entry_hours_non_negative",
        ),
    )

    @property
    def total_hours(self):
        return self.work_hours + self.leave_hours + self.holiday_hours + self.overtime_hours
