"""
Tests for default permission seeding and the initial administrator
"""
from hrflow.core.constants import DEFAULT_PERMISSIONS
from hrflow.core.security import verify_password
from hrflow.db.init_db import init_db, seed_permissions
from hrflow.models.access import Permission
from hrflow.services.authority_service import has_system_admin


def test_seed_permissions_is_idempotent(db):
    seed_permissions(db)
    seed_permissions(db)
    assert db.query(Permission).count() == len(DEFAULT_PERMISSIONS)


def test_init_db_creates_administrator_once(db):
    admin = init_db(db, "admin@company.com", "S3cure-pass")

    assert admin is not None
    assert has_system_admin(db, admin.id)
    assert verify_password("S3cure-pass", admin.password_hash)

    assert init_db(db, "other.admin@company.com", "whatever") is None


def test_init_db_without_password_creates_nobody(db):
    assert init_db(db, "admin@company.com", None) is None
    assert db.query(Permission).count() == len(DEFAULT_PERMISSIONS)
