"""
Email settings API endpoints.

Operators store the outbound SMTP configuration here and probe it before
launching a campaign.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.exceptions import ValidationError
from tracker.core.security import TokenData, require_auth
from tracker.db.postgres import get_db_session
from tracker.schemas.dispatch import MailSettingsRequest
from tracker.services.dispatch import dispatch_pipeline
from tracker.services.mail_settings_service import (
    build_transport_config,
    mail_settings_service,
)

router = APIRouter(tags=["Email Settings"])


@router.get("/email-config")
async def get_email_config(
    session: AsyncSession = Depends(get_db_session),
    current_user: TokenData = Depends(require_auth),
):
    """Current SMTP configuration (password withheld)."""
    stored = await mail_settings_service.get_settings(session)
    config = await mail_settings_service.get_snapshot(session)
    return mail_settings_service.public_view(config, stored)


@router.post("/email-config")
async def save_email_config(
    request: MailSettingsRequest,
    session: AsyncSession = Depends(get_db_session),
    current_user: TokenData = Depends(require_auth),
):
    """Store a new SMTP configuration. Takes effect on the next dispatch."""
    try:
        stored = await mail_settings_service.save(
            session,
            host=request.host,
            port=request.port,
            username=request.user,
            password=request.password,
            secure=request.secure,
            from_email=request.from_email,
            from_name=request.from_name,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    config = await mail_settings_service.get_snapshot(session)
    return {
        "status": "success",
        "message": "Email configuration saved",
        "config": mail_settings_service.public_view(config, stored),
    }


@router.post("/test-smtp")
async def test_smtp(
    request: MailSettingsRequest,
    current_user: TokenData = Depends(require_auth),
):
    """Probe a configuration without saving it."""
    try:
        config = build_transport_config(
            request.host, request.port, request.user, request.password, request.secure
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    result = await dispatch_pipeline.test_connection(config)
    if result["status"] != "success":
        raise HTTPException(status_code=400, detail=result)
    return result


@router.get("/test-email")
async def test_stored_smtp(
    session: AsyncSession = Depends(get_db_session),
    current_user: TokenData = Depends(require_auth),
):
    """Probe the configuration the next dispatch would use."""
    config = await mail_settings_service.get_snapshot(session)
    result = await dispatch_pipeline.test_connection(config)
    if result["status"] != "success":
        raise HTTPException(status_code=400, detail=result)

    await mail_settings_service.mark_verified(session)
    return result
