"""
Leave request, timesheet, balance and accrual schemas
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from hrflow.models.leave import AccrualPeriod, ResetType
from hrflow.models.workflow import WorkflowStatus
from hrflow.utils.datetime_utils import iso_8601_utc


class LeaveRequestCreate(BaseModel):
    """Schema for creating a Draft leave request"""
    leave_type_id: int = Field(..., description="Leave type")
    start_date: date = Field(..., description="First day of leave")
    end_date: date = Field(..., description="Last day of leave (inclusive)")
    reason: Optional[str] = Field(None, description="Reason for leave")
    location_id: Optional[int] = Field(None, description="Defaults to the user's primary location")

    @model_validator(mode="after")
    def start_before_end(self) -> "LeaveRequestCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


class LeaveValidation(BaseModel):
    """Outcome of the leave policy checks; warnings never block submission"""
    valid: bool
    days: Decimal
    errors: List[str] = []
    warnings: List[str] = []


class LeaveRequestUpdate(BaseModel):
    """Edit a Draft or Adjusted request before resubmitting"""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = None


class LeaveRequestOut(BaseModel):
    id: int
    user_id: int
    leave_type_id: int
    location_id: int
    start_date: date
    end_date: date
    days_requested: Decimal
    reason: Optional[str]
    status: WorkflowStatus
    workflow_instance_id: Optional[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)


class TimesheetCreate(BaseModel):
    period_start: date
    period_end: date
    notes: Optional[str] = None
    location_id: Optional[int] = Field(None, description="Defaults to the user's primary location")

    @model_validator(mode="after")
    def start_before_end(self) -> "TimesheetCreate":
        if self.period_start > self.period_end:
            raise ValueError("period_start must be on or before period_end")
        return self


class TimesheetOut(BaseModel):
    id: int
    user_id: int
    location_id: int
    period_start: date
    period_end: date
    total_hours: Decimal
    notes: Optional[str]
    status: WorkflowStatus
    workflow_instance_id: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class TimesheetEntryUpsert(BaseModel):
    """Hours booked on one day of the period; every field is hours"""
    work_hours: Decimal = Field(Decimal("0"), ge=0, le=24)
    leave_hours: Decimal = Field(Decimal("0"), ge=0, le=24)
    holiday_hours: Decimal = Field(Decimal("0"), ge=0, le=24)
    overtime_hours: Decimal = Field(Decimal("0"), ge=0, le=24)
    notes: Optional[str] = None


class TimesheetEntryOut(BaseModel):
    id: int
    timesheet_id: int
    entry_date: date
    work_hours: Decimal
    leave_hours: Decimal
    holiday_hours: Decimal
    overtime_hours: Decimal
    expected_hours: Decimal
    total_hours: Decimal
    notes: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class TimesheetValidation(BaseModel):
    """error blocks submission, warning does not"""
    status: str = Field(..., description="valid, warning or error")
    can_submit: bool
    expected_hours: Decimal
    actual_hours: Decimal
    errors: List[str] = []
    warnings: List[str] = []


# --- Balances ---

class LeaveBalanceOut(BaseModel):
    id: int
    user_id: int
    leave_type_id: int
    year: int
    allocated: Decimal
    used: Decimal
    pending: Decimal
    available: Decimal
    over_allocated: bool = Field(False, description="used + pending exceeds allocated")


class AllocateRequest(BaseModel):
    user_id: int
    leave_type_id: int
    year: int = Field(..., ge=2000, le=2100)
    days: Decimal = Field(..., ge=0)


class AdjustRequest(BaseModel):
    user_id: int
    leave_type_id: int
    year: int = Field(..., ge=2000, le=2100)
    delta: Decimal = Field(..., description="Positive to credit, negative to debit")
    reason: str = Field(..., min_length=1)


class ResetRequest(BaseModel):
    user_id: int
    leave_type_id: Optional[int] = Field(None, description="Omit to reset every leave type")
    year: Optional[int] = None
    reason: str = Field(..., min_length=1)


class UserFilter(BaseModel):
    """Users matching every given filter; no filter matches every active user"""
    user_ids: Optional[List[int]] = None
    role_ids: Optional[List[int]] = None
    category_ids: Optional[List[int]] = None
    staff_type_ids: Optional[List[int]] = None


class BulkAllocateRequest(UserFilter):
    leave_type_id: int
    year: int = Field(..., ge=2000, le=2100)
    days: Decimal = Field(..., ge=0)


class BulkResetRequest(UserFilter):
    leave_type_id: Optional[int] = None
    year: Optional[int] = None
    reason: str = Field(..., min_length=1)


class BulkError(BaseModel):
    user_id: int
    error: str


class BulkResult(BaseModel):
    matched: int
    succeeded: int
    failed: int
    errors: List[BulkError] = []


class AdjustmentOut(BaseModel):
    id: int
    user_id: int
    leave_type_id: int
    year: int
    adjustment: Decimal
    reason: str
    adjusted_by: int
    adjusted_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ResetOut(BaseModel):
    id: int
    user_id: int
    leave_type_id: Optional[int]
    reset_type: ResetType
    reason: str
    reset_by: Optional[int]
    reset_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- Accrual ---

class AccrualConfigCreate(BaseModel):
    leave_type_id: int
    accrual_rate: Decimal = Field(..., ge=0, description="Days credited per period")
    accrual_period: AccrualPeriod = AccrualPeriod.MONTHLY
    location_id: Optional[int] = None
    staff_type_id: Optional[int] = None


class AccrualConfigUpdate(BaseModel):
    accrual_rate: Optional[Decimal] = Field(None, ge=0)
    accrual_period: Optional[AccrualPeriod] = None
    is_active: Optional[bool] = None


class AccrualConfigOut(BaseModel):
    id: int
    leave_type_id: int
    location_id: Optional[int]
    staff_type_id: Optional[int]
    accrual_rate: Decimal
    accrual_period: AccrualPeriod
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AccrualRunRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)


class AccrualRunError(BaseModel):
    user_id: int
    leave_type_id: int
    error: str


class AccrualRunResult(BaseModel):
    month: str
    leave_types: int
    users_processed: int
    credited: int
    skipped_already_credited: int
    skipped_not_eligible: int
    skipped_no_credit: int
    failed: int
    errors: List[AccrualRunError] = []
