"""
Constants for permission names and service metadata
"""

SERVICE_NAME = "hrflow"

# Latest Alembic revision under alembic/versions
SCHEMA_REVISION = "002_holidays_accrual_entries"

# Permission names (module.action)
PERM_SYSTEM_ADMIN = "system.admin"
PERM_LEAVE_APPROVE = "leave.approve"
PERM_LEAVE_BALANCES_MANAGE = "leave.balances.manage"
PERM_TIMESHEET_APPROVE = "timesheets.approve"
PERM_WORKFLOW_TEMPLATES_READ = "workflows.templates.read"
PERM_WORKFLOW_TEMPLATES_MANAGE = "workflows.templates.manage"
PERM_WORKFLOW_INSTANCES_READ = "workflows.instances.read"
PERM_DELEGATIONS_MANAGE = "delegations.manage"
PERM_LOCATIONS_READ = "locations.read"
PERM_LOCATIONS_UPDATE = "locations.update"
PERM_ROLES_MANAGE = "roles.manage"
PERM_HOLIDAYS_MANAGE = "holidays.manage"

DEFAULT_PERMISSIONS = [
    PERM_SYSTEM_ADMIN,
    PERM_LEAVE_APPROVE,
    PERM_LEAVE_BALANCES_MANAGE,
    PERM_TIMESHEET_APPROVE,
    PERM_WORKFLOW_TEMPLATES_READ,
    PERM_WORKFLOW_TEMPLATES_MANAGE,
    PERM_WORKFLOW_INSTANCES_READ,
    PERM_DELEGATIONS_MANAGE,
    PERM_LOCATIONS_READ,
    PERM_LOCATIONS_UPDATE,
    PERM_ROLES_MANAGE,
    PERM_HOLIDAYS_MANAGE,
]

# Separator for materialized location paths
LOCATION_PATH_SEPARATOR = "."
