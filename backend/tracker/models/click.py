"""
Click event model.

One row per (user_id, dept, campaign) identity key. Repeated clicks update the
row in place and bump ``click_count``.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from tracker.db.postgres import Base


class ClickEvent(Base):
    """Aggregate interaction history for one identity key."""

    __tablename__ = "clicks"
    __table_args__ = (
        UniqueConstraint("user_id", "dept", "campaign", name="uq_clicks_identity"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity key (missing parts are stored as "")
    user_id = Column(String(255), nullable=False, default="")
    dept = Column(String(255), nullable=False, default="")
    campaign = Column(String(255), nullable=False, default="")

    # Last-seen metadata
    ip = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    time = Column(String(64), nullable=True)

    click_count = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "dept": self.dept,
            "campaign": self.campaign,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "time": self.time,
            "click_count": self.click_count,
        }
