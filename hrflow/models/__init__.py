"""
Database models
"""
from hrflow.models.user import User, UserStatus, StaffType, UserCategory
from hrflow.models.location import Location, LocationStatus
from hrflow.models.access import (
    Permission,
    Role,
    RolePermission,
    UserRole,
    PermissionScope,
    RoleStatus,
    RoleScopeMode,
    ScopeStatus,
    ScopeSource,
)
from hrflow.models.delegation import Delegation, DelegationStatus
from hrflow.models.workflow import (
    WorkflowTemplate,
    WorkflowStep,
    WorkflowInstance,
    WorkflowStepInstance,
    ResourceType,
    TemplateStatus,
    ApproverStrategyKind,
    LocationScope,
    WorkflowStatus,
    StepStatus,
    REVIEWABLE_STATUSES,
    TERMINAL_STATUSES,
)
from hrflow.models.leave import (
    LeaveType,
    LeaveRequest,
    LeaveBalance,
    LeaveBalanceAdjustment,
    LeaveBalanceReset,
    ResetType,
    AccrualPeriod,
    LeaveAccrualConfig,
    LeaveAccrualRun,
)
from hrflow.models.timesheet import Timesheet, TimesheetEntry
from hrflow.models.holiday import Holiday
from hrflow.models.audit_log import AuditLog

__all__ = [
    "User",
    "UserStatus",
    "StaffType",
    "UserCategory",
    "Location",
    "LocationStatus",
    "Permission",
    "Role",
    "RolePermission",
    "UserRole",
    "PermissionScope",
    "RoleStatus",
    "RoleScopeMode",
    "ScopeStatus",
    "ScopeSource",
    "Delegation",
    "DelegationStatus",
    "WorkflowTemplate",
    "WorkflowStep",
    "WorkflowInstance",
    "WorkflowStepInstance",
    "ResourceType",
    "TemplateStatus",
    "ApproverStrategyKind",
    "LocationScope",
    "WorkflowStatus",
    "StepStatus",
    "REVIEWABLE_STATUSES",
    "TERMINAL_STATUSES",
    "LeaveType",
    "LeaveRequest",
    "LeaveBalance",
    "LeaveBalanceAdjustment",
    "LeaveBalanceReset",
    "ResetType",
    "AccrualPeriod",
    "LeaveAccrualConfig",
    "LeaveAccrualRun",
    "Timesheet",
    "TimesheetEntry",
    "Holiday",
    "AuditLog",
]
