"""
Central error handling for HRFlow

Domain failures are raised as HTTPException subclasses so the boundary layer
renders them without translation. Each carries an ``error_type`` tag:

- authorization: actor lacks the permission/role/manager relationship
- precondition: wrong instance/step/resource status for the transition
- configuration: no matching template, unusable step configuration
- consistency: a concurrent transition won the race
- not_found: addressed row does not exist
"""
import logging
import traceback
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class WorkflowError(HTTPException):
    """Base class for domain failures surfaced to the caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "error"

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(status_code=status_code or self.status_code, detail=detail)


class AuthorizationError(WorkflowError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "authorization"


class PreconditionError(WorkflowError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "precondition"


class NotFoundError(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"


class ConfigurationError(WorkflowError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_type = "configuration"


class ConsistencyError(WorkflowError):
    status_code = status.HTTP_409_CONFLICT
    error_type = "consistency"


class StepAlreadyResolvedError(ConsistencyError):
    """Raised to the loser of a race on the same step instance."""

    def __init__(self, instance_id: int, step_order: int):
        super().__init__(
            detail=f"Step {step_order} of workflow instance {instance_id} already resolved"
        )
        self.instance_id = instance_id
        self.step_order = step_order


def _error_content(request: Request, status_code: int, detail, error_type: Optional[str] = None) -> dict:
    content = {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "path": str(request.url.path),
    }
    if error_type:
        content["error_type"] = error_type
    return content


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle HTTPException (and domain errors) with consistent JSON response format

    Args:
        request: FastAPI request object
        exc: HTTPException instance

    Returns:
        JSONResponse with error details
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_content(request, exc.status_code, exc.detail, getattr(exc, "error_type", None)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle RequestValidationError with consistent JSON response format

    Does not leak internal validation details in production.
    """
    from hrflow.core.config import settings

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_content(request, 422, "Validation error: Invalid request data", "validation"),
        )

    errors = []
    for e in exc.errors():
        err = dict(e)
        if "ctx" in err and isinstance(err["ctx"], dict):
            err["ctx"] = {
                k: (str(v) if not isinstance(v, (str, int, float, bool, type(None))) else v)
                for k, v in err["ctx"].items()
            }
        errors.append(err)
    content = _error_content(request, 422, "Validation error", "validation")
    content["errors"] = errors
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=content)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions (store failures included) with consistent JSON response format

    Does not leak internal error details in production.
    """
    from hrflow.core.config import settings

    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_content(request, 500, "Internal server error", "internal"),
        )

    content = _error_content(request, 500, str(exc), "internal")
    if settings.APP_ENV == "local":
        content["traceback"] = traceback.format_exc()
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)
