"""
Database initialization: default permissions and the initial administrator
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from hrflow.core.config import settings
from hrflow.core.constants import DEFAULT_PERMISSIONS
from hrflow.core.security import hash_password
from hrflow.models.access import Role, RolePermission, RoleScopeMode, RoleStatus, UserRole
from hrflow.models.user import User, UserStatus
from hrflow.services.authority_service import has_system_admin
from hrflow.services.role_service import ensure_permission

logger = logging.getLogger(__name__)

ADMIN_ROLE_NAME = "System Administrator"


def seed_permissions(db: Session) -> int:
    """Create every default permission that does not exist yet. Returns the total."""
    for name in DEFAULT_PERMISSIONS:
        ensure_permission(db, name)
    db.commit()
    return len(DEFAULT_PERMISSIONS)


def init_db(db: Session, admin_email: str, admin_password: Optional[str]) -> Optional[User]:
    """
    Seed permissions and, when no active user holds system.admin through a
    role, create the administrator role and user.

    Returns the created administrator, or None when nothing was created.
    """
    seed_permissions(db)

    admin_holders = (
        db.query(UserRole.user_id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(UserRole.deleted_at.is_(None), Role.status == RoleStatus.ACTIVE)
        .distinct()
        .all()
    )
    if any(has_system_admin(db, row[0]) for row in admin_holders):
        logger.info("System administrator already exists, skipping initial bootstrap")
        return None
    if not admin_password:
        logger.warning("No system administrator exists and INITIAL_ADMIN_PASSWORD is not set")
        return None

    role = db.query(Role).filter(Role.name == ADMIN_ROLE_NAME).first()
    if not role:
        role = Role(
            name=ADMIN_ROLE_NAME,
            description="Bypasses every permission check",
            scope_mode=RoleScopeMode.GLOBAL,
            status=RoleStatus.ACTIVE,
        )
        db.add(role)
        db.flush()
        db.add(RolePermission(role_id=role.id, permission_id=ensure_permission(db, settings.SYSTEM_ADMIN_PERMISSION).id))

    admin = db.query(User).filter(User.email == admin_email).first()
    if not admin:
        admin = User(
            email=admin_email,
            name="System Administrator",
            password_hash=hash_password(admin_password),
            status=UserStatus.ACTIVE,
        )
        db.add(admin)
        db.flush()
    db.add(UserRole(user_id=admin.id, role_id=role.id))
    db.commit()
    db.refresh(admin)
    logger.info("Initial administrator %s created", admin_email)
    return admin
