"""
Public click logging endpoint.

Unauthenticated because the landing page behind every tracking link posts
here. It never reports an error status to the recipient's browser.

Routes:
    POST /log    - Record a click against (user_id, dept, campaign)
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request

from tracker.services.click_store import click_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tracking"])

LOG_FIELDS = ("user_id", "dept", "campaign", "ip", "user_agent", "time")


@router.post("/log")
async def log_click(request: Request):
    """Record a link click.

    Missing fields are stored as empty values. Malformed bodies and storage
    failures come back as ``{"status": "error"}`` with HTTP 200.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Ignoring click with unreadable body from %s", request.client)
        return {"status": "error", "action": "not_logged"}

    if not isinstance(payload, dict):
        payload = {}

    fields = {name: payload.get(name) for name in LOG_FIELDS}
    if not fields["ip"] and request.client:
        fields["ip"] = request.client.host
    if not fields["user_agent"]:
        fields["user_agent"] = request.headers.get("user-agent")

    return await click_store.record_event(**fields)
