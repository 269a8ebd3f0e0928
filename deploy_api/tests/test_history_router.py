"""Tests for the /system/history endpoints."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from deploy_core.models.history import HistoryEntry, HistoryEventType, to_epoch_millis

from deploy_api.config import APISettings

T0 = datetime(2026, 4, 1, 9, 30, tzinfo=UTC)


async def _seed(history, count: int = 5, revertible: tuple[int, ...] = (1, 3, 4)) -> None:
    for i in range(1, count + 1):
        await history.append(
            HistoryEntry(
                type=HistoryEventType.COMMIT,
                timestamp=T0 + timedelta(minutes=i),
                open_id="alice",
                branch="master",
                revision=f"rev{i}",
                revertible=i in revertible,
                finished=True,
                token=f"tok-{i}",
                directory=f"/srv/content/renderedContent_{i}",
            )
        )


class TestGetHistory:
    @pytest.mark.asyncio
    async def test_empty(self, client):
        resp = await client.get("/system/history")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json() == []

    @pytest.mark.asyncio
    async def test_wire_format(self, client, history):
        await _seed(history, count=1)

        (item,) = (await client.get("/system/history")).json()

        assert item["index"] == 1
        assert item["openId"] == "alice"
        assert item["timestamp"] == to_epoch_millis(T0 + timedelta(minutes=1))
        assert item["timeLive"] == 0
        assert "token" not in item
        assert "directory" not in item

    @pytest.mark.asyncio
    async def test_recorded_order(self, client, history):
        await _seed(history)
        body = (await client.get("/system/history")).json()
        assert [e["index"] for e in body] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_limit_and_filter(self, client, history):
        await _seed(history)

        body = (await client.get("/system/history", params={"limit": 2, "filter": "true"})).json()

        assert [e["index"] for e in body] == [1, 3]

    @pytest.mark.asyncio
    async def test_non_positive_limit_means_all(self, client, history):
        await _seed(history)
        body = (await client.get("/system/history", params={"limit": 0})).json()
        assert len(body) == 5

    @pytest.mark.asyncio
    async def test_limit_clamped(self, app, client, history):
        from deploy_api.dependencies import get_settings

        app.dependency_overrides[get_settings] = lambda: APISettings(max_history_limit=2)
        await _seed(history)

        body = (await client.get("/system/history", params={"limit": 50})).json()

        assert len(body) == 2

    @pytest.mark.asyncio
    async def test_invalid_limit(self, client):
        resp = await client.get("/system/history", params={"limit": "many"})
        assert resp.status_code == 422


class TestTokenCompletion:
    @pytest.mark.asyncio
    async def test_complete(self, client, history):
        await _seed(history, count=2)

        resp = await client.get("/system/history/tok-2")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text == "true"

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        resp = await client.get("/system/history/tok-unknown")
        assert resp.text == "false"

    @pytest.mark.asyncio
    async def test_pending_token(self, client, history):
        await history.append(HistoryEntry(type=HistoryEventType.COMMIT, token="tok-p", finished=False))
        assert (await client.get("/system/history/tok-p")).text == "false"

    @pytest.mark.asyncio
    async def test_since(self, client, history):
        await _seed(history, count=1)
        recorded = to_epoch_millis(T0 + timedelta(minutes=1))

        assert (await client.get(f"/system/history/tok-1/{recorded}")).text == "true"
        assert (await client.get(f"/system/history/tok-1/{recorded + 1}")).text == "false"

    @pytest.mark.asyncio
    async def test_invalid_since(self, client):
        resp = await client.get("/system/history/tok-1/yesterday")
        assert resp.status_code == 422
