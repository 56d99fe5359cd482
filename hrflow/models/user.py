"""
User directory models
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Enum as SQLEnum, text
from sqlalchemy.orm import relationship
import enum
from hrflow.db.base import Base


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class StaffType(Base):
    __tablename__ = "staff_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)


class UserCategory(Base):
    __tablename__ = "user_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    password_hash = Column(String, nullable=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    primary_location_id = Column(Integer, ForeignKey("locations.id"), nullable=True, index=True)
    staff_type_id = Column(Integer, ForeignKey("staff_types.id"), nullable=True)
    category_id = Column(Integer, ForeignKey("user_categories.id"), nullable=True)
    join_date = Column(Date, nullable=True)  # accrual starts from the month of joining
    status = Column(SQLEnum(UserStatus), nullable=False, default=UserStatus.ACTIVE)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    # Relationships
    manager = relationship("User", remote_side=[id], backref="direct_reports")
    primary_location = relationship("Location", foreign_keys=[primary_location_id])
    staff_type = relationship("StaffType")
    category = relationship("UserCategory")
    user_roles = relationship("UserRole", back_populates="user", foreign_keys="UserRole.user_id")

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE and self.deleted_at is None
