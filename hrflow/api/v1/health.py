"""
Health check endpoint
"""
import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hrflow.core.config import settings
from hrflow.core.constants import SERVICE_NAME
from hrflow.core.deps import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(response: Response, db: Session = Depends(get_db)):
    """
    Health check endpoint

    Pings the relational store; returns 503 with status "degraded" when it
    cannot be reached. The authority cache is never consulted here since it
    holds no authoritative state.
    """
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check could not reach the database: %s", e)
        database = "unavailable"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ok" if database == "ok" else "degraded",
        "service": SERVICE_NAME,
        "database": database,
        "authority_cache": settings.AUTHORITY_CACHE_BACKEND,
    }
