"""Wire encoding of protocol messages.

Messages go out as a JSON envelope::

    {"kind": "UPDATE", "parameters": {"repo": "git@..."}, "source": "node-1"}

For compatibility with simple senders (shell scripts, the ``/update``
endpoint of older nodes) a single text line is accepted as well::

    UPDATE repo=git%40example.com%3Asite.git comment=nightly%20sync

Parameter values in the text form are percent-decoded.  Unknown kinds are
rejected with :class:`UnknownCommandError` in both forms, before any
dispatching happens.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote, unquote

from pydantic import ValidationError

from deploy_core.errors import UnknownCommandError
from deploy_core.models.protocol import ProtocolKind, ProtocolMessage


def _parse_kind(value: Any) -> ProtocolKind:
    try:
        return ProtocolKind(str(value).strip().upper())
    except ValueError as exc:
        raise UnknownCommandError(f"Unknown command kind: {value!r}") from exc


def encode_message(message: ProtocolMessage) -> bytes:
    """Serialise *message* to its JSON envelope."""
    return message.model_dump_json().encode("utf-8")


def encode_text_line(message: ProtocolMessage) -> str:
    """Render *message* in the single-line text form."""
    params = " ".join(f"{key}={quote(value, safe='')}" for key, value in message.parameters.items())
    return f"{message.kind.value} {params}".strip()


def _decode_text_line(text: str) -> tuple[ProtocolKind, dict[str, str]]:
    head, _, rest = text.partition(" ")
    kind = _parse_kind(head)
    params: dict[str, str] = {}
    for token in rest.split():
        key, sep, value = token.partition("=")
        if not sep or not key:
            raise ValueError(f"Malformed parameter {token!r} in {kind.value} message")
        params[unquote(key)] = unquote(value)
    return kind, params


def decode_message(payload: bytes | str, source: str = "") -> ProtocolMessage:
    """Parse a channel payload into a :class:`ProtocolMessage`.

    *source* (the transport-level sender) is used when the payload does not
    name one itself.

    Raises
    ------
    UnknownCommandError
        If the payload names a kind outside :class:`ProtocolKind`.
    ValueError
        If the payload is otherwise malformed.
    """
    text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    text = text.strip()
    if not text:
        raise ValueError("Empty message payload")

    if text[0] in "{[":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("Message envelope must be a JSON object")
        kind = _parse_kind(data.get("kind"))
        raw_params = data.get("parameters") or {}
        if not isinstance(raw_params, dict):
            raise ValueError("Message parameters must be a JSON object")
        params = {str(k): "" if v is None else str(v) for k, v in raw_params.items()}
        sender = data.get("source") or source
    else:
        kind, params = _decode_text_line(text)
        sender = source

    try:
        return ProtocolMessage(kind=kind, parameters=params, source=str(sender))
    except ValidationError as exc:
        raise ValueError(f"Invalid {kind.value} message: {exc}") from exc
