"""Append-only, strictly ordered history of deployment events.

Appends on one node are serialised by an :class:`asyncio.Lock` (and, on
PostgreSQL, an advisory transaction lock) so that indices are assigned
gap-free and strictly increasing.  Every append commits before returning.
Reads use their own session and therefore see a committed prefix of the log.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncEngine

from deploy_core.models.history import HistoryEntry, HistoryEventType
from deploy_core.state.database import get_session
from deploy_core.state.repository import HistoryRepository, row_to_entry

logger = logging.getLogger(__name__)


class HistoryLog:
    """Node-local history backed by the SQLAlchemy history store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._append_lock = asyncio.Lock()

    async def append(self, entry: HistoryEntry) -> int:
        """Persist *entry* and return the index assigned to it."""
        async with self._append_lock:
            async with get_session(self._engine) as session:
                index = await HistoryRepository(session).add(entry)

        logger.info(
            "History #%d: type=%s user=%s branch=%s rev=%s maint=%s",
            index,
            entry.type.value,
            entry.open_id or "-",
            entry.branch or "-",
            entry.revision[:12] if entry.revision else "-",
            entry.maintenance,
        )
        return index

    async def query(
        self,
        limit: int | None = None,
        revertible_only: bool = False,
    ) -> list[HistoryEntry]:
        """Return entries in recorded order.

        *revertible_only* keeps entries flagged revertible; *limit* caps the
        result and is applied after filtering.  ``None`` or a non-positive
        limit returns everything.
        """
        async with get_session(self._engine) as session:
            rows = await HistoryRepository(session).list_entries(limit=limit, revertible_only=revertible_only)
            return [row_to_entry(row) for row in rows]

    async def get(self, index: int) -> HistoryEntry | None:
        async with get_session(self._engine) as session:
            row = await HistoryRepository(session).get(index)
            return row_to_entry(row) if row is not None else None

    async def latest(self) -> HistoryEntry | None:
        async with get_session(self._engine) as session:
            row = await HistoryRepository(session).latest()
            return row_to_entry(row) if row is not None else None

    async def is_token_complete(self, token: str, since: datetime | None = None) -> bool:
        """Return whether the event correlated with *token* is finished or failed.

        *since* restricts the search to entries recorded at or after it.
        """
        async with get_session(self._engine) as session:
            return await HistoryRepository(session).token_complete(token, since)

    async def log_maintenance_event(self, on: bool, open_id: str = "", comment: str = "") -> int:
        """Record a maintenance toggle.

        Repository, branch and revision are carried over from the most recent
        entry so the event shows what content was live when it happened.
        """
        previous = await self.latest()
        entry = HistoryEntry(
            type=HistoryEventType.MAINT,
            open_id=open_id,
            repo_url=previous.repo_url if previous else "",
            branch=previous.branch if previous else "",
            revision=previous.revision if previous else "",
            maintenance=on,
            revertible=False,
            finished=True,
            comment=comment,
        )
        return await self.append(entry)
