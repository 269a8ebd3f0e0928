"""Site-wide maintenance ("site down") switch.

Every call records a history event with the resulting state, including
calls that do not change anything.
"""

from __future__ import annotations

import asyncio
import logging

from deploy_core.history.log import HistoryLog

logger = logging.getLogger(__name__)


class MaintenanceToggle:
    """Binary maintenance state guarded by a lock."""

    def __init__(self, history: HistoryLog, *, initially_on: bool = False) -> None:
        self._history = history
        self._on = initially_on
        self._lock = asyncio.Lock()

    def is_on(self) -> bool:
        return self._on

    async def _set(self, on: bool | None, comment: str, open_id: str) -> bool:
        async with self._lock:
            if on is not None and on != self._on:
                logger.info("%s maintenance page", "Starting" if on else "Stopping")
                self._on = on
            state = self._on
            await self._history.log_maintenance_event(state, open_id=open_id, comment=comment)
        return state

    async def start(self, comment: str = "", open_id: str = "") -> bool:
        """Turn maintenance on.  Returns the resulting state."""
        return await self._set(True, comment, open_id)

    async def stop(self, comment: str = "", open_id: str = "") -> bool:
        """Turn maintenance off.  Returns the resulting state."""
        return await self._set(False, comment, open_id)

    async def record_current(self, comment: str = "", open_id: str = "") -> bool:
        """Log the current state without changing it."""
        return await self._set(None, comment, open_id)
