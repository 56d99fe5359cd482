"""
Version and metadata endpoint
"""
from fastapi import APIRouter

from hrflow.core.config import settings
from hrflow.core.constants import SCHEMA_REVISION, SERVICE_NAME

router = APIRouter()


@router.get("/version")
async def get_version():
    """Service name, version, environment and the schema revision this build expects"""
    return {
        "service": SERVICE_NAME,
        "version": settings.VERSION or "1.0.0",
        "env": settings.APP_ENV,
        "schema_revision": SCHEMA_REVISION,
    }
