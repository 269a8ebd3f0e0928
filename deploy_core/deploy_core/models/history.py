"""History entry model for the deployment audit trail.

The wire representation (``/system/history``) uses camelCase keys and epoch
milliseconds for ``timestamp``; :meth:`HistoryEntry.to_wire` and the
field validators below convert in both directions.  ``token`` and
``directory`` are internal bookkeeping and never leave the node.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# Operator recorded for system-triggered events.
AUTO_OPERATOR = "AUTO"


class HistoryEventType(str, Enum):
    """What kind of change a history entry records."""

    COMMIT = "COMMIT"
    MAINT = "MAINT"


def to_epoch_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def from_epoch_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


class HistoryEntry(BaseModel):
    """One append-only record of a deployment or maintenance event.

    ``index`` is assigned by the history log at append time; entries built
    before appending carry ``index=0``.  ``time_live`` of ``0`` means the
    revision is still live and its age must be computed on read.
    """

    model_config = ConfigDict(populate_by_name=True)

    index: int = Field(default=0, ge=0)
    type: HistoryEventType = HistoryEventType.COMMIT
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    open_id: str = Field(default="", alias="openId")
    repo_url: str = Field(default="", alias="repoUrl")
    branch: str = ""
    revision: str = ""
    time_live: int = Field(default=0, ge=0, alias="timeLive")
    maintenance: bool = False
    revertible: bool = False
    finished: bool = False
    failed: bool = False
    comment: str = ""

    token: str | None = Field(default=None, exclude=True)
    directory: str | None = Field(default=None, exclude=True)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: Any) -> Any:
        if isinstance(v, bool):
            return v
        if isinstance(v, int | float):
            return from_epoch_millis(int(v))
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @field_validator("open_id", "repo_url", "branch", "revision", "comment", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_serializer("timestamp")
    def _serialise_timestamp(self, v: datetime) -> int:
        return to_epoch_millis(v)

    @property
    def is_terminal(self) -> bool:
        return self.finished or self.failed

    def effective_time_live(self, now: datetime | None = None) -> int:
        """Return how long (ms) this entry's revision was or has been live.

        Only commits are ever live; other entries report ``0``.
        """
        if self.type is not HistoryEventType.COMMIT:
            return 0
        if self.time_live:
            return self.time_live
        now = now or datetime.now(UTC)
        return max(0, to_epoch_millis(now) - to_epoch_millis(self.timestamp))

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready camelCase representation."""
        return self.model_dump(mode="json", by_alias=True)
