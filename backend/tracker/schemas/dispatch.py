"""
Pydantic schemas for bulk dispatch and mail settings.

Field aliases keep the camelCase names the dashboard sends.
"""

from __future__ import annotations

from typing import Any, Optional, List, Union
from pydantic import BaseModel, ConfigDict, Field


class RecipientIn(BaseModel):
    """Recipient as submitted; the address shape is checked per recipient."""
    email: Optional[Any] = None
    name: Optional[Any] = None


class TemplateIn(BaseModel):
    subject: str = ""
    body: str = ""


class LinkMaskingIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    display_text: str = Field("", alias="displayText")


class SendEmailsRequest(BaseModel):
    """Bulk dispatch request."""
    model_config = ConfigDict(populate_by_name=True)

    recipients: List[RecipientIn] = Field(default_factory=list)
    campaign: Optional[Union[str, int]] = None
    template: Optional[TemplateIn] = None
    tracking_links: Optional[List[Optional[str]]] = Field(None, alias="trackingLinks")
    link_masking: Optional[LinkMaskingIn] = Field(None, alias="linkMasking")


class SendEmailsResponse(BaseModel):
    status: str = "completed"
    sent: int
    failed: int
    total: int
    errors: Optional[List[str]] = None


class MailSettingsRequest(BaseModel):
    """SMTP transport settings."""
    host: Optional[str] = None
    port: Optional[Union[int, str]] = None
    user: Optional[str] = None
    password: Optional[str] = Field(None, alias="pass")
    secure: bool = False
    from_email: Optional[str] = None
    from_name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)
