"""Application lifespan against a real node on a loopback channel."""

from __future__ import annotations

import pytest
from deploy_core.config import Settings
from deploy_core.messaging.channel import LoopbackGroup
from deploy_core.messaging.codec import decode_message
from deploy_core.models.history import HistoryEntry, HistoryEventType
from deploy_core.models.protocol import ProtocolKind
from deploy_core.node import ContentNode
from httpx import ASGITransport, AsyncClient

from deploy_api.dependencies import get_node, get_node_settings
from deploy_api.main import create_app


@pytest.fixture
def group() -> LoopbackGroup:
    return LoopbackGroup()


@pytest.fixture
def node(tmp_path, group) -> ContentNode:
    settings = Settings(
        node_id="node-a",
        content_root=tmp_path / "content",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'history.db'}",
    )
    return ContentNode(settings, group.join("node-a"))


class TestLifespan:
    @pytest.mark.asyncio
    async def test_starts_and_stops_node(self, node):
        app = create_app(node)

        async with app.router.lifespan_context(app):
            assert node.running
            assert get_node() is node

        assert not node.running
        with pytest.raises(RuntimeError, match="not initialised"):
            get_node()

    @pytest.mark.asyncio
    async def test_serves_node_history(self, node):
        app = create_app(node)

        async with app.router.lifespan_context(app):
            await node.history.append(HistoryEntry(type=HistoryEventType.COMMIT, token="tok-1", finished=True))
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                body = (await client.get("/system/history")).json()
                complete = (await client.get("/system/history/tok-1")).text

        assert [e["index"] for e in body] == [1]
        assert complete == "true"

    @pytest.mark.asyncio
    async def test_update_without_repository_is_rejected(self, node, group):
        observer = group.join("observer")
        app = create_app(node)

        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                resp = await client.get("/update")

        assert resp.status_code == 409
        await observer.close()
        assert [d async for d in observer.receive()] == []

    @pytest.mark.asyncio
    async def test_update_reaches_cluster(self, node, group):
        observer = group.join("observer")
        app = create_app(node)
        app.dependency_overrides[get_node_settings] = lambda: node.settings.model_copy(
            update={"repo_url": "git@example.com:site.git"}
        )

        async with app.router.lifespan_context(app):
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                resp = await client.get("/update", params={"uuid": "tok-9"})

        assert resp.text == "ok"
        await observer.close()
        first = [decode_message(d.payload, d.source) async for d in observer.receive()][0]
        assert first.kind == ProtocolKind.UPDATE
        assert first.source == "node-a"
        assert first.parameters == {"repo": "git@example.com:site.git", "uuid": "tok-9"}
