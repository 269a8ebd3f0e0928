"""Access logging for the node API.

Every request produces one ``deploy_api.access`` record whose ``request``
extra carries the structured fields picked up by
:class:`~deploy_api.middleware.json_formatter.JSONFormatter`.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("deploy_api.access")

CORRELATION_HEADER = "X-Correlation-ID"

_MASKED_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})

# Waiting clients poll these once per second.
_POLL_PREFIX = "/system/history/"


def _level_for(path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    if path.startswith(_POLL_PREFIX):
        return logging.DEBUG
    return logging.INFO


def _request_fields(request: Request, status_code: int, started: float, correlation_id: str) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "duration_ms": round((time.monotonic() - started) * 1000, 2),
        "client": request.client.host if request.client else None,
        "correlation_id": correlation_id,
        "headers": {k: "***" if k.lower() in _MASKED_HEADERS else v for k, v in request.headers.items()},
    }
    # Update triggers carry the token that operators later wait on.
    token = request.query_params.get("uuid")
    if token:
        fields["token"] = token
    return fields


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of each request.

    The ``X-Correlation-ID`` request header is reused (or a UUID4 generated)
    and echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        started = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            logger.log(
                _level_for(request.url.path, status_code),
                "%s %s -> %d",
                request.method,
                request.url.path,
                status_code,
                extra={"request": _request_fields(request, status_code, started, correlation_id)},
            )
