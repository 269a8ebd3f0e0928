"""SQLAlchemy 2.0 ORM table definitions for the node's history store.

All tables use the ``Mapped`` / ``mapped_column`` declaration style.  The
``Base`` declarative base is exported for ``create_all`` and the repository
layer.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware ``DateTime`` that also comes back aware from SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all history-store tables."""


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class HistoryTable(Base):
    """Append-only deployment and maintenance history.

    ``index`` is assigned by the repository (max + 1 under a writer lock),
    not by the database, so indices are gap-free.  Only ``finished``,
    ``failed`` and ``time_live`` are ever updated after insert.
    """

    __tablename__ = "history"

    index: Mapped[int] = mapped_column("idx", Integer, primary_key=True, autoincrement=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    open_id: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    repo_url: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    branch: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    revision: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    time_live: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    maintenance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revertible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finished: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    failed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    token: Mapped[str | None] = mapped_column(String(128), nullable=True)
    directory: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    __table_args__ = (
        Index("ix_history_token", "token"),
        Index("ix_history_type_live", "type", "time_live"),
    )
