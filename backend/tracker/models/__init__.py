"""
SQLAlchemy models for persistence.
"""

from tracker.models.click import ClickEvent
from tracker.models.mail_settings import MailSettings
from tracker.models.user import User

__all__ = [
    "ClickEvent",
    "MailSettings",
    "User",
]
