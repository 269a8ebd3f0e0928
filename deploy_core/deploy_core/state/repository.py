"""Repository providing access to the history table.

The repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call
``session.flush()``; the caller is responsible for committing (or relying on
the ``get_session`` context manager).
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from deploy_core.models.history import HistoryEntry, HistoryEventType, to_epoch_millis
from deploy_core.state.tables import HistoryTable

logger = logging.getLogger(__name__)

# Advisory lock key serialising appends across processes on PostgreSQL.
_HISTORY_LOCK_ID = 0x48495354


def row_to_entry(row: HistoryTable) -> HistoryEntry:
    """Convert an ORM row to the public :class:`HistoryEntry` model."""
    return HistoryEntry(
        index=row.index,
        type=HistoryEventType(row.type),
        timestamp=row.timestamp,
        open_id=row.open_id,
        repo_url=row.repo_url,
        branch=row.branch,
        revision=row.revision,
        time_live=row.time_live,
        maintenance=row.maintenance,
        revertible=row.revertible,
        finished=row.finished,
        failed=row.failed,
        comment=row.comment,
        token=row.token,
        directory=row.directory,
    )


class HistoryRepository:
    """CRUD access to the ``history`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _lock_writers(self) -> None:
        bind = self._session.get_bind()
        dialect_name = getattr(getattr(bind, "dialect", None), "name", "")
        if "postgresql" in str(dialect_name):
            await self._session.execute(
                text("SELECT pg_advisory_xact_lock(:lock_id)"),
                {"lock_id": _HISTORY_LOCK_ID},
            )
        # SQLite: single-writer semantics, no advisory lock needed.

    async def next_index(self) -> int:
        result = await self._session.execute(select(func.max(HistoryTable.index)))
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def _close_live_commit(self, now: datetime) -> None:
        """Stamp ``time_live`` on the commit that was live until *now*."""
        stmt = (
            select(HistoryTable)
            .where(
                HistoryTable.type == HistoryEventType.COMMIT.value,
                HistoryTable.time_live == 0,
                HistoryTable.failed.is_(False),
            )
            .order_by(HistoryTable.index.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        live = result.scalar_one_or_none()
        if live is None:
            return
        # A zero would read as "still live", so the minimum is 1 ms.
        live.time_live = max(1, to_epoch_millis(now) - to_epoch_millis(live.timestamp))

    async def add(self, entry: HistoryEntry) -> int:
        """Insert *entry* under the next index and return that index.

        The caller's ``index`` and ``time_live`` are ignored: the index is
        assigned here and a fresh entry is always live.
        """
        await self._lock_writers()
        index = await self.next_index()

        if entry.type == HistoryEventType.COMMIT and not entry.failed:
            await self._close_live_commit(entry.timestamp)

        row = HistoryTable(
            index=index,
            type=entry.type.value,
            timestamp=entry.timestamp,
            open_id=entry.open_id,
            repo_url=entry.repo_url,
            branch=entry.branch,
            revision=entry.revision,
            time_live=0,
            maintenance=entry.maintenance,
            revertible=entry.revertible,
            finished=entry.finished,
            failed=entry.failed,
            comment=entry.comment,
            token=entry.token,
            directory=entry.directory,
        )
        self._session.add(row)
        await self._session.flush()
        return index

    async def get(self, index: int) -> HistoryTable | None:
        return await self._session.get(HistoryTable, index)

    async def latest(self) -> HistoryTable | None:
        stmt = select(HistoryTable).order_by(HistoryTable.index.desc()).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_entries(
        self,
        *,
        limit: int | None = None,
        revertible_only: bool = False,
    ) -> list[HistoryTable]:
        """Return rows in recorded order; *limit* applies after filtering."""
        stmt = select(HistoryTable)
        if revertible_only:
            stmt = stmt.where(HistoryTable.revertible.is_(True))
        stmt = stmt.order_by(HistoryTable.index.asc())
        if limit is not None and limit > 0:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def token_complete(self, token: str, since: datetime | None = None) -> bool:
        """Return whether an entry carrying *token* reached a terminal state."""
        stmt = select(func.count()).select_from(HistoryTable).where(HistoryTable.token == token)
        stmt = stmt.where((HistoryTable.finished.is_(True)) | (HistoryTable.failed.is_(True)))
        if since is not None:
            stmt = stmt.where(HistoryTable.timestamp >= since)
        result = await self._session.execute(stmt)
        return (result.scalar_one() or 0) > 0
