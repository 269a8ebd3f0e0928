"""Unit tests for deploy_core.models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from deploy_core.commands.cluster_state import ClusterState
from deploy_core.models.history import (
    HistoryEntry,
    HistoryEventType,
    from_epoch_millis,
    to_epoch_millis,
)
from deploy_core.models.protocol import CommandContext, ProtocolKind, ProtocolMessage


class TestEpochMillis:
    def test_known_value(self):
        assert to_epoch_millis(datetime(2026, 1, 1, tzinfo=UTC)) == 1767225600000

    def test_naive_treated_as_utc(self):
        assert to_epoch_millis(datetime(2026, 1, 1)) == 1767225600000

    def test_inverse(self):
        assert from_epoch_millis(1767225600123) == datetime(2026, 1, 1, 0, 0, 0, 123000, tzinfo=UTC)


class TestHistoryEntryWire:
    def _entry(self) -> HistoryEntry:
        return HistoryEntry(
            index=7,
            type=HistoryEventType.COMMIT,
            timestamp=datetime(2026, 1, 1, tzinfo=UTC),
            open_id="alice",
            repo_url="git@example.com:site.git",
            branch="master",
            revision="abc",
            time_live=1500,
            revertible=True,
            finished=True,
            comment="hello",
            token="secret-token",
            directory="/srv/content/renderedContent_7",
        )

    def test_camel_case_keys(self):
        wire = self._entry().to_wire()
        assert set(wire) == {
            "index",
            "type",
            "timestamp",
            "openId",
            "repoUrl",
            "branch",
            "revision",
            "timeLive",
            "maintenance",
            "revertible",
            "finished",
            "failed",
            "comment",
        }

    def test_timestamp_in_millis(self):
        wire = self._entry().to_wire()
        assert wire["timestamp"] == 1767225600000
        assert wire["type"] == "COMMIT"

    def test_internal_fields_not_serialised(self):
        wire = self._entry().to_wire()
        assert "token" not in wire
        assert "directory" not in wire

    def test_parse_wire_form(self):
        parsed = HistoryEntry.model_validate(self._entry().to_wire())
        assert parsed.timestamp == datetime(2026, 1, 1, tzinfo=UTC)
        assert parsed.open_id == "alice"
        assert parsed.time_live == 1500
        assert parsed.token is None

    def test_null_strings_become_empty(self):
        entry = HistoryEntry.model_validate({"type": "MAINT", "timestamp": 0, "openId": None, "comment": None})
        assert entry.open_id == ""
        assert entry.comment == ""

    def test_negative_time_live_rejected(self):
        with pytest.raises(ValueError):
            HistoryEntry(time_live=-1)

    def test_is_terminal(self):
        assert HistoryEntry(finished=True).is_terminal
        assert HistoryEntry(failed=True).is_terminal
        assert not HistoryEntry().is_terminal


class TestCommandContext:
    def test_exposes_message(self):
        msg = ProtocolMessage(kind=ProtocolKind.UPDATE, parameters={"branch": "b"}, source="n2")
        ctx = CommandContext(source="n2", message=msg)
        assert ctx.kind == ProtocolKind.UPDATE
        assert ctx.parameters == {"branch": "b"}


class TestClusterState:
    def test_drifted_peers(self):
        cluster = ClusterState()
        cluster.record_state("a", branch="master", revision="r1")
        cluster.record_state("b", branch="master", revision="r2")
        cluster.record_state("c", branch="release", revision="r1")
        cluster.record_state("d")

        assert [p.node for p in cluster.drifted_peers("master", "r1")] == ["b", "c"]
        assert len(cluster) == 4
