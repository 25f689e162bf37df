"""
Bulk dispatch endpoint.

Thin wrapper around the dispatch pipeline: the SMTP configuration snapshot
is read once per request and handed to the pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.exceptions import ConnectivityError, ValidationError
from tracker.core.security import TokenData, require_auth
from tracker.db.postgres import get_db_session
from tracker.schemas.dispatch import RecipientIn, SendEmailsRequest, SendEmailsResponse
from tracker.services.dispatch import Recipient, Template, dispatch_pipeline
from tracker.services.links import LinkMasking
from tracker.services.mail_settings_service import mail_settings_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _to_recipient(item: RecipientIn) -> Recipient:
    # Malformed addresses reach the pipeline and fail per recipient
    return Recipient(email=_as_text(item.email), name=_as_text(item.name) or "")


@router.post("/send-emails", response_model=SendEmailsResponse, response_model_exclude_none=True)
async def send_emails(
    request: SendEmailsRequest,
    session: AsyncSession = Depends(get_db_session),
    current_user: TokenData = Depends(require_auth),
):
    """Send the template to every recipient with their tracking link."""
    try:
        config = await mail_settings_service.get_snapshot(session)
    except SQLAlchemyError as e:
        logger.error("Could not load email configuration: %s", e)
        raise HTTPException(status_code=500, detail="Could not load email configuration")

    masking = None
    if request.link_masking is not None:
        masking = LinkMasking(
            enabled=request.link_masking.enabled,
            display_text=request.link_masking.display_text,
        )

    template = None
    if request.template is not None:
        template = Template(subject=request.template.subject, body=request.template.body)

    try:
        report = await dispatch_pipeline.dispatch(
            recipients=[_to_recipient(r) for r in request.recipients],
            campaign=str(request.campaign) if request.campaign is not None else "",
            template=template,
            links=request.tracking_links,
            masking=masking,
            config=config,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ConnectivityError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    return report.to_dict()
