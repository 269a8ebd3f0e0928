"""Trigger endpoint that asks the whole cluster to update."""

from __future__ import annotations

import logging

from deploy_core.models.protocol import ProtocolKind, ProtocolMessage
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse

from deploy_api.dependencies import ChannelDep, NodeSettingsDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["update"])


@router.get("/update", response_class=PlainTextResponse)
async def trigger_update(
    channel: ChannelDep,
    settings: NodeSettingsDep,
    branch: str | None = Query(default=None),
    sha: str | None = Query(default=None),
    comment: str | None = Query(default=None),
    uuid: str | None = Query(default=None, description="Correlation token for wait-for-token polling."),
) -> PlainTextResponse:
    """Broadcast ``UPDATE repo=<configured repository>`` and answer ``ok``."""
    if not settings.repo_url:
        raise HTTPException(status_code=409, detail="No repository configured for this node")

    params = {"repo": settings.repo_url}
    for key, value in (("branch", branch), ("sha", sha), ("comment", comment), ("uuid", uuid)):
        if value:
            params[key] = value

    logger.debug("Sending update message")
    await channel.send(ProtocolMessage(kind=ProtocolKind.UPDATE, parameters=params))
    return PlainTextResponse("ok")
