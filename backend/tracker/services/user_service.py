"""
User service for operator accounts.

Operators sign in to obtain a bearer token for the administrative endpoints.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.config import settings
from tracker.core.security import get_password_hash, verify_password
from tracker.models.user import User

logger = logging.getLogger(__name__)

DEV_ADMIN_PASSWORD = "admin123"


class UserService:
    """Service for user-related database operations."""

    async def get_by_email(self, session: AsyncSession, email: str) -> Optional[User]:
        """Get a user by email address."""
        result = await session.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()

    async def create(self, session: AsyncSession, email: str, password: str) -> User:
        """Create a new user."""
        user = User(
            email=email,
            hashed_password=get_password_hash(password),
            is_active=True,
        )
        session.add(user)
        await session.flush()
        return user

    async def authenticate(
        self,
        session: AsyncSession,
        email: str,
        password: str,
    ) -> Optional[User]:
        """Authenticate an active user by email and password."""
        user = await self.get_by_email(session, email)

        # Don't reveal whether the account exists
        if not user or not user.is_active:
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    async def update_last_login(self, session: AsyncSession, user: User) -> None:
        """Update the user's last login timestamp."""
        user.last_login = datetime.utcnow()
        await session.flush()

    async def ensure_default_admin(self, session: AsyncSession) -> None:
        """Seed the configured operator account if it does not exist yet."""
        password = settings.admin_password
        if not password:
            if settings.environment != "development":
                return
            password = DEV_ADMIN_PASSWORD

        existing = await self.get_by_email(session, settings.admin_email)
        if existing:
            logger.info("User already exists: %s", settings.admin_email)
            return

        await self.create(session, email=settings.admin_email, password=password)
        await session.commit()
        logger.info("User created: %s", settings.admin_email)


# Singleton instance
user_service = UserService()
