"""Shared fixtures for deploy_api tests.

The app runs against a real history log on a temporary SQLite database and
a recording channel, injected through dependency overrides so no lifespan
or node start-up is needed.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio
from deploy_core.config import Settings
from deploy_core.history.log import HistoryLog
from deploy_core.models.protocol import ProtocolMessage
from deploy_core.state.database import create_tables, dispose_engine, get_engine
from httpx import ASGITransport, AsyncClient

from deploy_api.config import APISettings
from deploy_api.dependencies import get_channel, get_history_log, get_node_settings, get_settings
from deploy_api.main import create_app


class RecordingChannel:
    """Captures broadcasts instead of sending them."""

    local_address = "node-test"

    def __init__(self) -> None:
        self.sent: list[ProtocolMessage] = []

    async def send(self, message: ProtocolMessage) -> None:
        self.sent.append(message)

    async def receive(self):
        return
        yield

    async def close(self) -> None:
        return None


@pytest_asyncio.fixture
async def history(tmp_path: Path):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}")
    await create_tables(engine)
    yield HistoryLog(engine)
    await dispose_engine(engine)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def api_settings() -> APISettings:
    return APISettings(max_history_limit=1000)


@pytest.fixture
def node_settings(tmp_path: Path) -> Settings:
    return Settings(content_root=tmp_path / "content", repo_url="git@example.com:site.git")


@pytest.fixture
def app(history, channel, api_settings, node_settings):
    application = create_app()
    application.dependency_overrides[get_history_log] = lambda: history
    application.dependency_overrides[get_channel] = lambda: channel
    application.dependency_overrides[get_settings] = lambda: api_settings
    application.dependency_overrides[get_node_settings] = lambda: node_settings
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncClient:
    """Async httpx client bound to the test app through ASGITransport."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
