"""
Outbound mail settings model.

A single row holds the SMTP transport configuration edited from the dashboard.
The password is encrypted at rest using Fernet symmetric encryption.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from tracker.db.postgres import Base


class MailSettings(Base):
    """SMTP transport configuration with encrypted credentials."""

    __tablename__ = "mail_settings"

    id = Column(Integer, primary_key=True, default=1)

    smtp_host = Column(String(255), nullable=False)
    smtp_port = Column(Integer, nullable=False, default=587)
    smtp_secure = Column(Boolean, default=False)
    smtp_username = Column(String(255), nullable=False)
    smtp_password_encrypted = Column(Text, nullable=False)  # Fernet encrypted

    from_email = Column(String(255), nullable=True)
    from_name = Column(String(255), nullable=True)

    verified = Column(Boolean, default=False)
    verified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
