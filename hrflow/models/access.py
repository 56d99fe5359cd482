"""
Permission store models: permissions, roles, role grants and permission scopes
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    UniqueConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
import enum
from hrflow.db.base import Base


class RoleStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class RoleScopeMode(str, enum.Enum):
    SCOPED = "scoped"  # grant needs a matching PermissionScope row
    GLOBAL = "global"  # grant applies at every location


class ScopeStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ScopeSource(str, enum.Enum):
    DIRECT = "direct"
    ROLE_SYNC = "role_sync"


class Permission(Base):
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)  # module.action
    module = Column(String, nullable=False, index=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)

    role_permissions = relationship("RolePermission", back_populates="permission", cascade="all, delete-orphan")
    scopes = relationship("PermissionScope", back_populates="permission", cascade="all, delete-orphan")


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    description = Column(String, nullable=True)
    status = Column(SQLEnum(RoleStatus), nullable=False, default=RoleStatus.ACTIVE)
    scope_mode = Column(SQLEnum(RoleScopeMode), nullable=False, default=RoleScopeMode.SCOPED)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    role_permissions = relationship("RolePermission", back_populates="role", cascade="all, delete-orphan")
    user_roles = relationship("UserRole", back_populates="role")


class RolePermission(Base):
    __tablename__ = "role_permissions"

    id = Column(Integer, primary_key=True, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = Column(Integer, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)

    role = relationship("Role", back_populates="role_permissions")
    permission = relationship("Permission", back_populates="role_permissions")

    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),
    )


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)

    user = relationship("User", back_populates="user_roles", foreign_keys=[user_id])
    role = relationship("Role", back_populates="user_roles")


class PermissionScope(Base):
    """
    Directly granted, location-qualified, time-bounded permission for one user.

    Effective only while status is active and now lies in
    [valid_from, valid_until) (open ended when valid_until is null).
    """
    __tablename__ = "permission_scopes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    permission_id = Column(Integer, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=True)
    include_descendants = Column(Boolean, nullable=False, default=False)
    is_global = Column(Boolean, nullable=False, default=False)
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    status = Column(SQLEnum(ScopeStatus), nullable=False, default=ScopeStatus.ACTIVE)
    source = Column(SQLEnum(ScopeSource), nullable=False, default=ScopeSource.DIRECT)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=True)  # set for role_sync scopes
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)

    user = relationship("User", foreign_keys=[user_id])
    permission = relationship("Permission", back_populates="scopes")
    location = relationship("Location")

    __table_args__ = (
        Index("ix_permission_scopes_user_permission", "user_id", "permission_id"),
    )
