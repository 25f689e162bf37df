"""
Click administration endpoints.

Listing, pre-provisioning and deletion of click aggregates. All routes
require a bearer token.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException

from tracker.core.exceptions import StoreError
from tracker.core.security import TokenData, require_auth
from tracker.schemas.clicks import ClickEventResponse, PendingClicksRequest
from tracker.services.click_store import click_store

router = APIRouter(prefix="/clicks", tags=["Clicks"])


@router.get("", response_model=List[ClickEventResponse])
async def list_clicks(current_user: TokenData = Depends(require_auth)):
    """All click aggregates, newest first."""
    try:
        events = await click_store.list_events()
    except StoreError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return [event.to_dict() for event in events]


@router.post("/pending")
async def create_pending_clicks(
    request: PendingClicksRequest,
    current_user: TokenData = Depends(require_auth),
):
    """Insert placeholder rows for freshly generated links.

    Successful rows stay committed even when others fail; failures are
    returned as a 400 with one message per failed record.
    """
    try:
        result = await click_store.insert_pending(
            [record.model_dump() for record in request.records]
        )
    except StoreError as e:
        raise HTTPException(status_code=400, detail=e.message)

    if not result.ok:
        raise HTTPException(status_code=400, detail=result.to_dict())

    return {
        "status": "success",
        "message": f"{result.created} pending records created",
        **result.to_dict(),
    }


@router.delete("")
async def delete_all_clicks(current_user: TokenData = Depends(require_auth)):
    """Bulk delete every click record."""
    try:
        deleted = await click_store.clear_all()
    except StoreError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return {"status": "deleted", "message": "All clicks deleted", "deleted": deleted}


@router.delete("/{click_id}")
async def delete_click(click_id: int, current_user: TokenData = Depends(require_auth)):
    """Delete a single click record."""
    try:
        removed = await click_store.delete_event(click_id)
    except StoreError as e:
        raise HTTPException(status_code=500, detail=e.message)
    if not removed:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"status": "deleted", "message": "Record deleted successfully"}
