"""
Mail settings service for the outbound SMTP configuration.

Handles encryption of the stored password using Fernet symmetric encryption
and hands out immutable ``TransportConfig`` snapshots to the dispatcher.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.config import settings
from tracker.core.exceptions import ValidationError
from tracker.models.mail_settings import MailSettings
from tracker.services.email_provider import TransportConfig

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1


class MailSettingsService:
    """Service for the stored SMTP configuration with encrypted credentials."""

    def __init__(self, key: Optional[str] = None):
        key = key or settings.email_encryption_key or os.environ.get("EMAIL_ENCRYPTION_KEY")
        if not key:
            # Generate a key for development (in production, set this in .env)
            key = Fernet.generate_key().decode()
            os.environ["EMAIL_ENCRYPTION_KEY"] = key
            logger.warning("EMAIL_ENCRYPTION_KEY not set - stored SMTP passwords will not survive a restart")
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def _encrypt(self, value: str) -> str:
        """Encrypt a string value."""
        return self._fernet.encrypt(value.encode()).decode()

    def _decrypt(self, value: str) -> str:
        """Decrypt an encrypted string."""
        return self._fernet.decrypt(value.encode()).decode()

    async def get_settings(self, session: AsyncSession) -> Optional[MailSettings]:
        """Get the stored settings row, if any."""
        result = await session.execute(
            select(MailSettings).where(MailSettings.id == SETTINGS_ROW_ID)
        )
        return result.scalar_one_or_none()

    async def get_snapshot(self, session: AsyncSession) -> TransportConfig:
        """Configuration current at call time, falling back to environment defaults."""
        stored = await self.get_settings(session)
        if stored is None:
            return TransportConfig.from_settings()

        try:
            password = self._decrypt(stored.smtp_password_encrypted)
        except InvalidToken:
            logger.error("Stored SMTP password cannot be decrypted; check EMAIL_ENCRYPTION_KEY")
            password = ""

        return TransportConfig(
            host=stored.smtp_host,
            port=stored.smtp_port,
            username=stored.smtp_username,
            password=password,
            secure=bool(stored.smtp_secure),
            from_email=stored.from_email or None,
            from_name=stored.from_name or None,
            connect_timeout=settings.smtp_connect_timeout,
            send_timeout=settings.smtp_send_timeout,
        )

    async def save(
        self,
        session: AsyncSession,
        host: Optional[str],
        port: Any,
        username: Optional[str],
        password: Optional[str],
        secure: bool = False,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ) -> MailSettings:
        """Create or replace the stored settings."""
        config = build_transport_config(host, port, username, password, secure)

        stored = await self.get_settings(session)
        if stored is None:
            stored = MailSettings(id=SETTINGS_ROW_ID)
            session.add(stored)

        stored.smtp_host = config.host
        stored.smtp_port = config.port
        stored.smtp_username = config.username
        stored.smtp_password_encrypted = self._encrypt(config.password)
        stored.smtp_secure = config.secure
        stored.from_email = from_email
        stored.from_name = from_name
        stored.verified = False
        stored.verified_at = None

        await session.flush()
        logger.info("Email configuration saved for %s:%s", config.host, config.port)
        return stored

    async def mark_verified(self, session: AsyncSession) -> None:
        stored = await self.get_settings(session)
        if stored is not None:
            stored.verified = True
            stored.verified_at = datetime.utcnow()
            await session.flush()

    def public_view(self, config: TransportConfig, stored: Optional[MailSettings] = None) -> dict[str, Any]:
        """Settings as shown to operators. The password is never returned."""
        return {
            "host": config.host,
            "port": config.port,
            "user": config.username,
            "secure": config.secure,
            "from_email": config.from_email,
            "from_name": config.from_name,
            "password_set": bool(config.password),
            "verified": bool(stored.verified) if stored else False,
            "source": "database" if stored else "environment",
        }


def build_transport_config(
    host: Optional[str],
    port: Any,
    username: Optional[str],
    password: Optional[str],
    secure: bool = False,
) -> TransportConfig:
    """Validate raw settings input into a TransportConfig."""
    if not host or not port or not username or not password:
        raise ValidationError("Missing required fields")
    try:
        port_number = int(port)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid port: {port!r}") from exc
    if not 0 < port_number < 65536:
        raise ValidationError(f"Invalid port: {port!r}")

    return TransportConfig(
        host=host,
        port=port_number,
        username=username,
        password=password,
        secure=secure is True,
        connect_timeout=settings.smtp_connect_timeout,
        send_timeout=settings.smtp_send_timeout,
    )


# Singleton instance
mail_settings_service = MailSettingsService()
