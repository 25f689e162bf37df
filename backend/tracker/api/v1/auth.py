"""
Authentication endpoints.

Operators exchange email/password for a JWT used on the admin routes.
"""

import logging
from datetime import timedelta

from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.config import settings
from tracker.core.security import TokenData, create_access_token, require_auth
from tracker.db.postgres import get_db_session
from tracker.middleware.rate_limit import login_limit
from tracker.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


# ============================================================================
# Request/Response Models
# ============================================================================


class SignInRequest(BaseModel):
    """Sign-in credentials. ``username`` is the operator's email."""
    username: str = ""
    password: str = ""


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/signin")
@login_limit
async def signin(
    request: Request,
    credentials: SignInRequest,
    session: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive a JWT token."""
    logger.info("Sign-in attempt: %s", credentials.username)

    if not credentials.username or not credentials.password:
        raise HTTPException(status_code=400, detail="Username and password are required")

    user = await user_service.authenticate(session, credentials.username, credentials.password)
    if not user:
        logger.info("Sign-in rejected: %s", credentials.username)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    await user_service.update_last_login(session, user)
    await session.commit()

    token = create_access_token(
        data={"user_id": str(user.id), "email": user.email},
        expires_delta=timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )

    return {
        "success": True,
        "message": "Sign in successful",
        "token": token,
        "token_type": "bearer",
        "expires_in": settings.jwt_access_token_expire_minutes * 60,
        "user": {"id": user.id, "email": user.email},
    }


@router.post("/verify")
async def verify(current_user: TokenData = Depends(require_auth)):
    """Validate the bearer token and echo its claims."""
    return {"success": True, "user": {"id": current_user.user_id, "email": current_user.email}}


@router.post("/logout")
async def logout(current_user: TokenData = Depends(require_auth)):
    """Tokens are stateless; the client discards its copy."""
    return {"success": True, "message": "Logged out successfully"}
