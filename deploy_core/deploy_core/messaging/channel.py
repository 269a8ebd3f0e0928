"""Group-messaging transport used by the command dispatcher.

Real deployments plug in a reliable multicast/broadcast transport that
satisfies :class:`ClusterChannel`.  :class:`LoopbackGroup` is an in-process
implementation: every member of the group receives every message sent by
any member, including its own, in send order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from deploy_core.messaging.codec import encode_message
from deploy_core.models.protocol import ProtocolMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delivery:
    """A raw payload as handed over by the transport."""

    source: str
    payload: bytes


class ClusterChannel(Protocol):
    """Structural interface for cluster transports."""

    @property
    def local_address(self) -> str:
        """Identifier of this node on the channel."""
        ...

    async def send(self, message: ProtocolMessage) -> None:
        """Broadcast *message* to all members of the group."""
        ...

    def receive(self) -> AsyncIterator[Delivery]:
        """Yield deliveries until the channel is closed."""
        ...

    async def close(self) -> None:
        """Leave the group; pending ``receive`` iterations end."""
        ...


_CLOSED = object()


class LoopbackGroup:
    """In-process broadcast group."""

    def __init__(self) -> None:
        self._members: dict[str, asyncio.Queue[object]] = {}

    @property
    def members(self) -> list[str]:
        return list(self._members)

    def join(self, address: str) -> LoopbackChannel:
        if address in self._members:
            raise ValueError(f"Address already in group: {address}")
        self._members[address] = asyncio.Queue()
        logger.debug("%s joined loopback group", address)
        return LoopbackChannel(self, address)

    def _leave(self, address: str) -> None:
        queue = self._members.pop(address, None)
        if queue is not None:
            queue.put_nowait(_CLOSED)

    def _broadcast(self, delivery: Delivery) -> None:
        for queue in self._members.values():
            queue.put_nowait(delivery)

    def _queue(self, address: str) -> asyncio.Queue[object] | None:
        return self._members.get(address)


class LoopbackChannel:
    """One member's view of a :class:`LoopbackGroup`."""

    def __init__(self, group: LoopbackGroup, address: str) -> None:
        self._group = group
        self._address = address
        self._queue = group._queue(address)

    @property
    def local_address(self) -> str:
        return self._address

    async def send(self, message: ProtocolMessage) -> None:
        if not message.source:
            message = message.model_copy(update={"source": self._address})
        logger.debug("%s sending %s", self._address, message.kind.value)
        self._group._broadcast(Delivery(self._address, encode_message(message)))

    async def send_raw(self, payload: bytes) -> None:
        """Broadcast an already encoded payload."""
        self._group._broadcast(Delivery(self._address, payload))

    async def receive(self) -> AsyncIterator[Delivery]:
        if self._queue is None:
            return
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            assert isinstance(item, Delivery)  # noqa: S101
            yield item

    async def close(self) -> None:
        self._group._leave(self._address)
