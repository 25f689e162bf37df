"""
Pydantic schemas for click event operations.
"""

from __future__ import annotations

from typing import Optional, List
from pydantic import BaseModel, ConfigDict


class ClickSeed(BaseModel):
    """One pre-provisioned click row."""
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    user_id: Optional[str] = None
    dept: Optional[str] = None
    campaign: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    time: Optional[str] = None


class PendingClicksRequest(BaseModel):
    """Batch of placeholder rows created alongside generated links."""
    records: List[ClickSeed]


class ClickEventResponse(BaseModel):
    """Aggregate click row."""
    id: int
    user_id: str
    dept: str
    campaign: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    time: Optional[str] = None
    click_count: int
