"""Unit tests for deploy_core.messaging."""

from __future__ import annotations

import json

import pytest
from deploy_core.errors import UnknownCommandError
from deploy_core.messaging import LoopbackGroup, decode_message, encode_message, encode_text_line
from deploy_core.models.protocol import ProtocolKind, ProtocolMessage


class TestDecode:
    def test_json_envelope(self):
        payload = json.dumps(
            {"kind": "UPDATE", "parameters": {"repo": "git@example.com:site.git", "branch": "master"}, "source": "n2"}
        )

        msg = decode_message(payload.encode())

        assert msg.kind == ProtocolKind.UPDATE
        assert msg.param("branch") == "master"
        assert msg.source == "n2"

    def test_transport_source_used_when_missing(self):
        msg = decode_message(b'{"kind": "CURRENT_STATE"}', source="node-7")
        assert msg.source == "node-7"
        assert msg.parameters == {}

    def test_text_line(self):
        msg = decode_message("UPDATE repo=git%40example.com%3Asite.git comment=nightly%20sync", source="n1")

        assert msg.kind == ProtocolKind.UPDATE
        assert msg.parameters == {"repo": "git@example.com:site.git", "comment": "nightly sync"}
        assert msg.source == "n1"

    def test_text_line_without_parameters(self):
        assert decode_message("current_state").kind == ProtocolKind.CURRENT_STATE

    @pytest.mark.parametrize("payload", ["REBOOT now=true", '{"kind": "REBOOT"}', '{"parameters": {}}'])
    def test_unknown_kind(self, payload):
        with pytest.raises(UnknownCommandError):
            decode_message(payload)

    @pytest.mark.parametrize("payload", ["", "   ", "UPDATE repo", '["UPDATE"]', '{"kind": "UPDATE", "parameters": []}'])
    def test_malformed(self, payload):
        with pytest.raises(ValueError):
            decode_message(payload)

    def test_unknown_command_is_not_a_value_error(self):
        # The dispatcher reports the two cases differently.
        with pytest.raises(UnknownCommandError) as exc_info:
            decode_message("NOPE")
        assert not isinstance(exc_info.value, ValueError)


class TestEncode:
    def test_json_envelope_decodes_back(self):
        msg = ProtocolMessage(kind=ProtocolKind.MAINTENANCE, parameters={"state": "on"}, source="n1")
        assert decode_message(encode_message(msg)) == msg

    def test_text_line_quotes_values(self):
        msg = ProtocolMessage(kind=ProtocolKind.UPDATE, parameters={"comment": "a b&c"})
        assert encode_text_line(msg) == "UPDATE comment=a%20b%26c"
        assert decode_message(encode_text_line(msg)).parameters == {"comment": "a b&c"}


class TestProtocolMessage:
    def test_frozen(self):
        msg = ProtocolMessage(kind=ProtocolKind.SYNC)
        with pytest.raises(Exception):
            msg.source = "other"  # type: ignore[misc]

    def test_with_parameters_copies(self):
        msg = ProtocolMessage(kind=ProtocolKind.UPDATE, parameters={"branch": "a"})
        derived = msg.with_parameters(branch="b", sha="123")
        assert msg.parameters == {"branch": "a"}
        assert derived.parameters == {"branch": "b", "sha": "123"}


class TestLoopbackGroup:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_member_including_sender(self):
        group = LoopbackGroup()
        a = group.join("a")
        b = group.join("b")

        await a.send(ProtocolMessage(kind=ProtocolKind.CURRENT_STATE))
        await a.close()
        await b.close()

        received_a = [decode_message(d.payload, d.source) async for d in a.receive()]
        received_b = [decode_message(d.payload, d.source) async for d in b.receive()]
        assert [m.source for m in received_a] == ["a"]
        assert [m.source for m in received_b] == ["a"]

    def test_duplicate_address_rejected(self):
        group = LoopbackGroup()
        group.join("a")
        with pytest.raises(ValueError):
            group.join("a")
