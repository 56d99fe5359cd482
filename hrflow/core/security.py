"""
Security utilities for authentication
"""
import logging
from datetime import timedelta
from typing import Dict, Optional

import bcrypt
from jose import JWTError, jwt
from passlib.context import CryptContext

from hrflow.core.config import settings
from hrflow.utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

argon2_available = False
try:
    import argon2

    argon2.PasswordHasher().hash("test")
    argon2_available = True
except Exception as e:
    logger.info(f"Argon2 backend not available, using bcrypt: {e}")

# Used only for scheme detection on legacy hashes
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using available backend (argon2 preferred, bcrypt fallback)"""
    if argon2_available:
        try:
            return argon2.PasswordHasher().hash(password)
        except Exception as e:
            logger.warning(f"Argon2 hashing failed, falling back to bcrypt: {e}")

    # Bcrypt has a 72-byte limit
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    if argon2_available and hashed_password.startswith("$argon2"):
        try:
            return argon2.PasswordHasher().verify(hashed_password, plain_password)
        except Exception:
            return False

    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8")[:72],
            hashed_password.encode("utf-8"),
        )
    except ValueError:
        pass

    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        return False


def create_access_token(data: Dict, expires_minutes: Optional[int] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()

    if expires_minutes is None:
        expires_minutes = settings.JWT_EXPIRE_MINUTES

    expire = now_utc() + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )


def decode_token(token: str) -> Dict:
    """Decode and verify a JWT token"""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        raise ValueError("Invalid token")
