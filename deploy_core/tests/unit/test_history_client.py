"""Unit tests for deploy_core.history.client using httpx.MockTransport."""

from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest
from deploy_core.errors import RemoteQueryError, TimedOut
from deploy_core.history.client import HistoryClient, history_url
from deploy_core.models.history import HistoryEntry, HistoryEventType

SITE = "https://site.example.com"


class FakeClock:
    """Monotonic clock advanced only by the injected sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _client(handler, clock: FakeClock | None = None, **kwargs) -> HistoryClient:
    clock = clock or FakeClock()
    return HistoryClient(
        httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=clock.sleep,
        clock=clock,
        **kwargs,
    )


class TestHistoryUrl:
    def test_appends_path(self):
        assert history_url("https://a.example.com/") == "https://a.example.com/system/history"

    def test_keeps_existing_path(self):
        assert history_url("https://a.example.com/system/history") == "https://a.example.com/system/history"


# ---------------------------------------------------------------------------
# wait_for_token
# ---------------------------------------------------------------------------


class TestWaitForToken:
    def test_returns_when_remote_says_true(self):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, text="true\n")

        _client(handler).wait_for_token(SITE, "tok-1")
        assert len(calls) == 1
        assert calls[0].url.path == "/system/history/tok-1"

    def test_polls_until_true(self):
        answers = iter(["false", "false", "true"])
        clock = FakeClock()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=next(answers))

        _client(handler, clock, poll_interval=1.0).wait_for_token(SITE, "tok", timeout=60)
        assert clock.sleeps == [1.0, 1.0]

    def test_since_in_path(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(200, text="true")

        _client(handler).wait_for_token(SITE, "tok", since=1700000000000)
        assert seen == ["/system/history/tok/1700000000000"]

    def test_error_status_raises_with_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="Update aborted")

        with pytest.raises(RemoteQueryError, match="Update aborted") as exc_info:
            _client(handler).wait_for_token(SITE, "tok")
        assert exc_info.value.status_code == 500

    def test_error_status_without_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        with pytest.raises(RemoteQueryError, match="Command failed!"):
            _client(handler).wait_for_token(SITE, "tok")

    def test_error_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, text="down")

        with pytest.raises(RemoteQueryError):
            _client(handler).wait_for_token(SITE, "tok")
        assert len(calls) == 1

    def test_times_out(self):
        calls = []
        clock = FakeClock()

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, text="false")

        with pytest.raises(TimedOut):
            _client(handler, clock, poll_interval=1.0).wait_for_token(SITE, "tok", timeout=3)
        assert len(calls) == 3
        assert clock.now == pytest.approx(3.0)

    def test_transport_error_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RemoteQueryError, match="connection refused"):
            _client(handler).wait_for_token(SITE, "tok")


# ---------------------------------------------------------------------------
# get_history
# ---------------------------------------------------------------------------


def _wire_entries() -> list[dict]:
    entries = [
        HistoryEntry(
            index=1,
            type=HistoryEventType.COMMIT,
            timestamp=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
            open_id="alice",
            repo_url="git@example.com:site.git",
            branch="master",
            revision="abc123",
            revertible=True,
            finished=True,
        ),
        HistoryEntry(index=2, type=HistoryEventType.MAINT, maintenance=True, finished=True),
    ]
    return [e.to_wire() for e in entries]


class TestGetHistory:
    def test_parses_entries(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_wire_entries())

        entries = _client(handler).get_history(SITE)
        assert [e.index for e in entries] == [1, 2]
        assert entries[0].open_id == "alice"
        assert entries[0].timestamp == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        assert entries[1].type == HistoryEventType.MAINT

    def test_sends_limit_and_filter(self):
        seen: list[httpx.URL] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(200, json=[])

        _client(handler).get_history(SITE, limit=5, revertible_only=True)
        assert seen[0].params["limit"] == "5"
        assert seen[0].params["filter"] == "true"

    def test_omits_default_params(self):
        seen: list[httpx.URL] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(200, json=[])

        _client(handler).get_history(SITE)
        assert "limit" not in seen[0].params
        assert "filter" not in seen[0].params

    def test_non_200_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, json=[])

        with pytest.raises(RemoteQueryError, match="502"):
            _client(handler).get_history(SITE)

    def test_wrong_content_type_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})

        with pytest.raises(RemoteQueryError, match="content type"):
            _client(handler).get_history(SITE)

    def test_non_list_body_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": "nope"})

        with pytest.raises(RemoteQueryError, match="Malformed"):
            _client(handler).get_history(SITE)

    def test_bearer_token_header(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        _client(handler, token="s3cret").get_history(SITE)
        assert seen[0].headers["Authorization"] == "Bearer s3cret"
