"""FastAPI application entry-point for a content-deploy node."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from deploy_core.config import load_settings
from deploy_core.errors import RemoteQueryError
from deploy_core.messaging.channel import LoopbackGroup
from deploy_core.node import ContentNode
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from deploy_api import __version__
from deploy_api.config import APISettings
from deploy_api.dependencies import clear_node, get_settings, init_node
from deploy_api.middleware.logging import RequestLoggingMiddleware
from deploy_api.routers import history, update

logger = logging.getLogger(__name__)


def configure_structured_logging(node_id: str) -> None:
    """Replace the root handlers with a single JSON-emitting stream handler."""
    from deploy_api.middleware.json_formatter import JSONFormatter, NodeLogFilter

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    handler.addFilter(NodeLogFilter(node_id))
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)
    logger.info("Structured JSON logging enabled")


def build_standalone_node() -> ContentNode:
    """Create a node on a private loopback group from ``DEPLOY_*`` settings."""
    settings = load_settings()
    channel = LoopbackGroup().join(settings.node_id)
    return ContentNode(settings, channel)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup the node (passed to :func:`create_app` or built from the
    environment) creates its history tables, clones its checkout when a
    repository is configured and starts consuming the cluster channel.
    On shutdown it leaves the channel and disposes its engine.
    """
    settings: APISettings = get_settings()
    node: ContentNode = app.state.node or build_standalone_node()

    if settings.structured_logging or node.settings.structured_logging:
        configure_structured_logging(node.settings.node_id)

    init_node(node)
    await node.start()
    logger.info("Content node %s serving on %s:%d", node.channel.local_address, settings.host, settings.port)

    yield

    await node.stop()
    clear_node()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(node: ContentNode | None = None) -> FastAPI:
    """Build the FastAPI application serving *node*."""
    settings = get_settings()
    app = FastAPI(
        title="content-deploy",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.node = node

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(history.router)
    app.include_router(update.router)

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(RemoteQueryError)
    async def remote_query_error_handler(request: Request, exc: RemoteQueryError) -> JSONResponse:
        logger.warning("RemoteQueryError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": "Invalid request"})

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal database error"})

    return app


# Module-level application instance used by ``uvicorn deploy_api.main:app``.
app = create_app()
