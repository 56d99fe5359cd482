"""
Location tree model (materialized path)

``path`` is the dot-joined chain of ancestor ids ending with the node's own id,
``level`` is the depth (roots are level 0).
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum, text
from sqlalchemy.orm import relationship
import enum
from hrflow.db.base import Base


class LocationStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    parent_id = Column(Integer, ForeignKey("locations.id"), nullable=True, index=True)
    path = Column(String, nullable=False, default="", index=True)
    level = Column(Integer, nullable=False, default=0)
    status = Column(SQLEnum(LocationStatus), nullable=False, default=LocationStatus.ACTIVE)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    parent = relationship("Location", remote_side=[id], backref="children")
