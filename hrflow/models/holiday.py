"""
Holiday calendar model
"""
from sqlalchemy import Column, Integer, Date, DateTime, ForeignKey, Numeric, String, Boolean, Index, text
from sqlalchemy.orm import relationship
from hrflow.db.base import Base


class Holiday(Base):
    """A non-working day at one location and every location below it; no location means everywhere."""
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    holiday_date = Column(Date, nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    hours = Column(Numeric(5, 2), nullable=False, default=8.5)
    active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    location = relationship("Location")

    __table_args__ = (
        Index("ix_holidays_location_date", "location_id", "holiday_date"),
    )
