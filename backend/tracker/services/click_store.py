"""
Click Event Store.

Owns the ``clicks`` table. Interaction events are aggregated per identity key
(user_id, dept, campaign): the first event inserts a row, every later event
overwrites the last-seen metadata and increments ``click_count``.

The unique constraint on the identity key is the consistency boundary. An
insert that loses a race against a concurrent writer for the same key is
rolled back and replayed as an update, so no click is dropped and no
duplicate row is created.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tracker.core.config import settings
from tracker.core.exceptions import StoreError
from tracker.db.postgres import async_session_maker
from tracker.models.click import ClickEvent

logger = logging.getLogger(__name__)

# Update/insert rounds before giving up on a contended key
UPSERT_ATTEMPTS = 3

ACTION_INSERTED = "inserted"
ACTION_UPDATED = "updated"
ACTION_NOT_LOGGED = "not_logged"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def identity_key(user_id: Any, dept: Any, campaign: Any) -> dict[str, str]:
    """Normalise an identity key; missing parts become empty strings."""
    return {
        "user_id": _text(user_id) or "",
        "dept": _text(dept) or "",
        "campaign": _text(campaign) or "",
    }


@dataclass
class PendingInsertResult:
    """Outcome of a pre-provisioning batch."""
    requested: int
    created: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "requested": self.requested,
            "created": self.created,
        }
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


class ClickStore:
    """Sole writer of click aggregates."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        pending_concurrency: Optional[int] = None,
    ):
        self._session_maker = session_maker or async_session_maker
        if pending_concurrency is None:
            pending_concurrency = settings.pending_insert_concurrency
        if pending_concurrency < 1:
            raise ValueError("pending_concurrency must be at least 1")
        self._pending_concurrency = pending_concurrency

    # ------------------------------------------------------------------ #
    #  Ingestion
    # ------------------------------------------------------------------ #

    async def record_event(
        self,
        user_id: Any = None,
        dept: Any = None,
        campaign: Any = None,
        ip: Any = None,
        user_agent: Any = None,
        time: Any = None,
    ) -> dict[str, str]:
        """Upsert one interaction event.

        Never raises: storage failures are logged and reported as
        ``not_logged`` so tracking pixels and redirects keep working.
        """
        key = identity_key(user_id, dept, campaign)
        values = {"ip": _text(ip), "user_agent": _text(user_agent), "time": _text(time)}

        try:
            action = await self._upsert(key, values)
        except (SQLAlchemyError, StoreError, OSError) as exc:
            logger.error("Click not logged for %s: %s", key, exc)
            return {"status": "error", "action": ACTION_NOT_LOGGED}

        logger.debug("Click %s for %s", action, key)
        return {"status": "logged", "action": action}

    async def _upsert(self, key: dict[str, str], values: dict[str, Optional[str]]) -> str:
        async with self._session_maker() as session:
            for attempt in range(1, UPSERT_ATTEMPTS + 1):
                try:
                    return await self._update_or_insert(session, key, values)
                except IntegrityError:
                    await session.rollback()
                    if attempt == UPSERT_ATTEMPTS:
                        raise
                    logger.debug("Identity key %s inserted concurrently, replaying as update", key)
        raise StoreError(f"Could not upsert click for {key}")

    async def _update_or_insert(
        self,
        session: AsyncSession,
        key: dict[str, str],
        values: dict[str, Optional[str]],
    ) -> str:
        result = await session.execute(
            update(ClickEvent)
            .where(
                ClickEvent.user_id == key["user_id"],
                ClickEvent.dept == key["dept"],
                ClickEvent.campaign == key["campaign"],
            )
            .values(click_count=ClickEvent.click_count + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            await session.commit()
            return ACTION_UPDATED

        session.add(ClickEvent(**key, **values, click_count=1))
        await session.commit()
        return ACTION_INSERTED

    # ------------------------------------------------------------------ #
    #  Pre-provisioning
    # ------------------------------------------------------------------ #

    async def insert_pending(self, records: Sequence[Mapping[str, Any]]) -> PendingInsertResult:
        """Insert placeholder rows before any link is clicked.

        Each record commits on its own; failures are collected per record and
        never roll back the records that succeeded. Pending rows start with
        ``click_count = 1``, the same as a first click.
        """
        if isinstance(records, (str, bytes)) or not isinstance(records, Sequence):
            raise StoreError("Invalid records: expected a list")

        semaphore = asyncio.Semaphore(self._pending_concurrency)

        async def _insert_one(index: int, record: Any) -> Optional[str]:
            if not isinstance(record, Mapping):
                return f"record {index}: expected an object"

            key = identity_key(record.get("user_id"), record.get("dept"), record.get("campaign"))
            async with semaphore:
                try:
                    async with self._session_maker() as session:
                        session.add(ClickEvent(
                            **key,
                            ip=_text(record.get("ip")),
                            user_agent=_text(record.get("user_agent")),
                            time=_text(record.get("time")),
                            click_count=1,
                        ))
                        await session.commit()
                except IntegrityError:
                    return (
                        f"record {index}: identity key already exists "
                        f"({key['user_id']}/{key['dept']}/{key['campaign']})"
                    )
                except (SQLAlchemyError, OSError) as exc:
                    return f"record {index}: {exc}"
            return None

        outcomes = await asyncio.gather(
            *(_insert_one(index, record) for index, record in enumerate(records))
        )

        result = PendingInsertResult(requested=len(records))
        for error in outcomes:
            if error is None:
                result.created += 1
            else:
                result.errors.append(error)

        if result.errors:
            logger.warning(
                "Pending insert: %d/%d records created, %d failed",
                result.created, result.requested, len(result.errors),
            )
        else:
            logger.info("Pending insert: %d records created", result.created)
        return result

    # ------------------------------------------------------------------ #
    #  Administration
    # ------------------------------------------------------------------ #

    async def list_events(self) -> list[ClickEvent]:
        """All aggregates, most recently inserted first."""
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(ClickEvent).order_by(ClickEvent.id.desc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Could not list clicks: {exc}") from exc

    async def clear_all(self) -> int:
        """Delete every click row. Irreversible."""
        try:
            async with self._session_maker() as session:
                result = await session.execute(delete(ClickEvent))
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Error deleting clicks: %s", exc)
            raise StoreError(f"Error deleting clicks: {exc}") from exc

        logger.info("Deleted %d click records", result.rowcount)
        return result.rowcount

    async def delete_event(self, event_id: int) -> bool:
        """Delete a single click row by surrogate id."""
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    delete(ClickEvent).where(ClickEvent.id == event_id)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Error deleting click record %s: %s", event_id, exc)
            raise StoreError(f"Error deleting record: {exc}") from exc
        return bool(result.rowcount)


# Singleton instance
click_store = ClickStore()
