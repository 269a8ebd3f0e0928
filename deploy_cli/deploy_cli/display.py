"""Rich output formatting for the content-deploy CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*).
"""

from __future__ import annotations

from datetime import UTC, datetime

from deploy_core.models.history import HistoryEntry, HistoryEventType
from rich.console import Console
from rich.markup import escape
from rich.table import Table


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_time_live(millis: int) -> str:
    """Render a duration in milliseconds as ``1d2h3m4s5ms``.

    Larger units are omitted while they are zero, so ``5000`` renders as
    ``5s0ms`` and ``42`` as ``42ms``.
    """
    text = f"{millis % 1000}ms"
    remaining = millis // 1000
    for size, unit in ((60, "s"), (60, "m"), (24, "h")):
        if remaining <= 0:
            return text
        text = f"{remaining % size}{unit}{text}"
        remaining //= size
    if remaining > 0:
        text = f"{remaining}d{text}"
    return text


def _time_live_cell(entry: HistoryEntry, now: datetime) -> str:
    # Maintenance rows have no revision that could be live.
    if entry.type is not HistoryEventType.COMMIT:
        return "-"
    return format_time_live(entry.effective_time_live(now))


def _flag(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


def display_history(
    console: Console,
    entries: list[HistoryEntry],
    *,
    now: datetime | None = None,
) -> None:
    """Render history entries as a table, oldest first.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    entries:
        Entries in recorded order.
    now:
        Reference time for the age of the live revision.  Defaults to the
        current time.
    """
    if not entries:
        console.print("[yellow]No history to show[/yellow]")
        return

    now = now or datetime.now(UTC)

    table = Table(title="History", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Index", style="dim", justify="right")
    table.add_column("Type", style="bold")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("User")
    table.add_column("Repository")
    table.add_column("Branch", style="cyan")
    table.add_column("Revision")
    table.add_column("Time Live", justify="right")
    table.add_column("Maint", justify="center")
    table.add_column("Revert", justify="center")
    table.add_column("Done", justify="center")
    table.add_column("Fail", justify="center")
    table.add_column("Comment")

    for entry in entries:
        stamp = entry.timestamp.astimezone(UTC)
        table.add_row(
            str(entry.index),
            entry.type.value,
            stamp.strftime("%m/%d/%Y"),
            stamp.strftime("%H:%M"),
            escape(entry.open_id),
            escape(entry.repo_url),
            escape(entry.branch),
            entry.revision,
            _time_live_cell(entry, now),
            _flag(entry.maintenance),
            _flag(entry.revertible),
            _flag(entry.finished),
            "[red]yes[/red]" if entry.failed else "[dim]no[/dim]",
            escape(entry.comment),
        )

    console.print(table)
