"""History query and token-completion endpoints.

``GET /system/history`` returns the node's history as a JSON array in
recorded order (camelCase keys, epoch-millisecond timestamps).
``GET /system/history/{token}[/{since}]`` answers the plain-text ``true`` or
``false`` that :meth:`HistoryClient.wait_for_token` polls for.
"""

from __future__ import annotations

import logging

from deploy_core.models.history import from_epoch_millis
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from deploy_api.dependencies import HistoryDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system/history", tags=["history"])


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("")
async def get_history(
    history: HistoryDep,
    settings: SettingsDep,
    limit: int | None = Query(default=None, description="Maximum entries; non-positive means all."),
    filter: bool = Query(default=False, description="Only revertible entries."),  # noqa: A002
) -> JSONResponse:
    """Return history entries in recorded order."""
    if limit is not None and limit > settings.max_history_limit:
        limit = settings.max_history_limit
    entries = await history.query(limit=limit, revertible_only=filter)
    return JSONResponse(content=[entry.to_wire() for entry in entries])


async def _token_complete(history: HistoryDep, token: str, since: int | None) -> PlainTextResponse:
    complete = await history.is_token_complete(token, from_epoch_millis(since) if since is not None else None)
    logger.debug("Token %s complete=%s", token, complete)
    return PlainTextResponse("true" if complete else "false")


@router.get("/{token}", response_class=PlainTextResponse)
async def is_token_complete(history: HistoryDep, token: str) -> PlainTextResponse:
    """Return ``true`` once the event tagged *token* has finished or failed."""
    return await _token_complete(history, token, None)


@router.get("/{token}/{since}", response_class=PlainTextResponse)
async def is_token_complete_since(history: HistoryDep, token: str, since: int) -> PlainTextResponse:
    """Like :func:`is_token_complete`, ignoring entries older than *since* (epoch ms)."""
    return await _token_complete(history, token, since)
