"""
Audit log model
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from hrflow.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # null for automatic jobs
    action = Column(String, nullable=False)  # e.g. "APPROVE", "DECLINE", "ALLOCATE", "MOVE"
    entity_type = Column(String, nullable=False)  # e.g. "workflow_instance", "leave_balance", "location"
    entity_id = Column(Integer, nullable=True)
    meta_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
