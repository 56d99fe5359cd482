"""
Logging configuration for HRFlow

Workflow transitions are logged at INFO by hrflow.services.workflow_service,
unresolvable approval steps and lost races at WARNING.
"""
import logging
import sys

from hrflow.core.config import settings
from hrflow.core.constants import SERVICE_NAME

LOG_FORMAT = "%(asctime)s - " + SERVICE_NAME + " - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers and the level they run at outside DEBUG
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "passlib": logging.ERROR,
    "redis": logging.WARNING,
}


def setup_logging() -> None:
    """
    Configure the root logger from settings.LOG_LEVEL (stdout only).

    With LOG_LEVEL=DEBUG the SQL emitted by the engine is logged too, which is
    the quickest way to inspect the compare-and-swap step updates.
    """
    log_level = getattr(logging, settings.LOG_LEVEL, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(log_level if log_level == logging.DEBUG else level)

    logging.getLogger(__name__).info(
        "Logging configured: level=%s, env=%s, authority cache=%s",
        settings.LOG_LEVEL, settings.APP_ENV, settings.AUTHORITY_CACHE_BACKEND,
    )
