"""
Authentication endpoints
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from hrflow.core.deps import get_db
from hrflow.core.security import create_access_token, verify_password
from hrflow.models.user import User
from hrflow.schemas.auth import LoginRequest, TokenResponse
from hrflow.services.audit_service import log_audit

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Authenticate user and return JWT token

    Validates email and password, rejects inactive users.
    """
    user = (
        db.query(User)
        .filter(User.email == login_data.email, User.deleted_at.is_(None))
        .first()
    )
    if not user or not user.password_hash:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    if not verify_password(login_data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive"
        )

    # JWT 'sub' claim must be a string
    access_token = create_access_token(data={"sub": str(user.id), "email": user.email})

    log_audit(db, user.id, "AUTH_LOGIN_SUCCESS", "auth", None, {"email": user.email})
    db.commit()
    logger.info("User %s logged in", user.id)

    return TokenResponse(access_token=access_token, token_type="bearer")
