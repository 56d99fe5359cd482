"""
Audit logging service
"""
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from hrflow.models.audit_log import AuditLog
from hrflow.utils.datetime_utils import now_utc
from hrflow.utils.json_serializer import sanitize_for_json


def log_audit(
    db: Session,
    actor_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    meta: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Add an audit log entry to the caller's transaction.

    The row is committed (or rolled back) together with the change it describes,
    so callers commit once for both.

    Args:
        db: Database session
        actor_id: ID of the user performing the action (None for automatic jobs)
        action: Action type (e.g., "SUBMIT", "APPROVE", "MOVE", "ALLOCATE")
        entity_type: Type of entity (e.g., "workflow_instance", "location")
        entity_id: ID of the affected entity (optional)
        meta: Additional metadata as dictionary (optional)
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_json=sanitize_for_json(meta) if meta is not None else None,
        created_at=now_utc(),
    )
    db.add(audit_log)
    return audit_log
