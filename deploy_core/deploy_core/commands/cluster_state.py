"""What this node has heard about its peers.

Convergence is best effort: nodes report their state on request and after
every update, and drift is only logged, never corrected automatically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeerState:
    """Last known state of one peer."""

    node: str
    branch: str = ""
    revision: str = ""
    maintenance: bool = False
    status: str = ""
    last_outcome: str = ""
    last_token: str = ""
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ClusterState:
    """Mapping of node id to :class:`PeerState`."""

    def __init__(self) -> None:
        self._peers: dict[str, PeerState] = {}

    def __len__(self) -> int:
        return len(self._peers)

    def get(self, node: str) -> PeerState | None:
        return self._peers.get(node)

    def peers(self) -> list[PeerState]:
        return sorted(self._peers.values(), key=lambda p: p.node)

    def record_state(
        self,
        node: str,
        *,
        branch: str = "",
        revision: str = "",
        maintenance: bool = False,
        status: str = "",
    ) -> PeerState:
        current = self._peers.get(node) or PeerState(node=node)
        updated = replace(
            current,
            branch=branch,
            revision=revision,
            maintenance=maintenance,
            status=status,
            updated_at=datetime.now(UTC),
        )
        self._peers[node] = updated
        return updated

    def record_outcome(
        self,
        node: str,
        *,
        outcome: str,
        token: str = "",
        branch: str = "",
        revision: str = "",
    ) -> PeerState:
        """Record the result of an update run reported by *node*.

        A successful run also moves the peer's known branch and revision.
        """
        current = self._peers.get(node) or PeerState(node=node)
        changes: dict[str, object] = {
            "last_outcome": outcome,
            "last_token": token,
            "updated_at": datetime.now(UTC),
        }
        if outcome == "done":
            if branch:
                changes["branch"] = branch
            if revision:
                changes["revision"] = revision
        updated = replace(current, **changes)  # type: ignore[arg-type]
        self._peers[node] = updated
        return updated

    def drifted_peers(self, branch: str, revision: str) -> list[PeerState]:
        """Peers whose known branch or revision differs from the given one."""
        return [
            peer
            for peer in self.peers()
            if (peer.branch and peer.branch != branch) or (peer.revision and peer.revision != revision)
        ]
