"""
Main API router
"""
from fastapi import APIRouter

from hrflow.api.v1 import (
    health,
    version,
    auth,
    locations,
    roles,
    delegations,
    templates,
    workflows,
    leaves,
    leave_balances,
    timesheets,
    holidays,
    leave_accrual,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(version.router, tags=["version"])
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(locations.router, prefix="/locations", tags=["locations"])
api_router.include_router(roles.router, prefix="/roles", tags=["roles"])
api_router.include_router(delegations.router, prefix="/delegations", tags=["delegations"])
api_router.include_router(templates.router, prefix="/workflows/templates", tags=["workflow-templates"])
api_router.include_router(workflows.router, prefix="/workflows/instances", tags=["workflow-instances"])
api_router.include_router(leaves.router, prefix="/leave", tags=["leave"])
api_router.include_router(leave_balances.router, prefix="/leave/balances", tags=["leave-balances"])
api_router.include_router(leave_accrual.router, prefix="/leave/accrual", tags=["leave-accrual"])
api_router.include_router(timesheets.router, prefix="/timesheets", tags=["timesheets"])
api_router.include_router(holidays.router, prefix="/holidays", tags=["holidays"])
