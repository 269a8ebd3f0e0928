"""content-deploy CLI application -- Typer-based operator interface.

Provides commands for inspecting a site's deployment history, blocking
until a tagged update completes, and serving a node's HTTP API.  Human
readable output goes to *stderr* via Rich.

Exit codes: ``0`` success, ``1`` invalid arguments, ``2`` timed out,
``3`` remote or runtime error.
"""

from __future__ import annotations

import re

import typer
from deploy_core.config import load_settings
from deploy_core.errors import RemoteQueryError, TimedOut
from deploy_core.history.client import HistoryClient
from rich.console import Console
from rich.markup import escape

from deploy_cli.display import display_history

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="content-deploy",
    help="content-deploy - cluster-wide git content deployment",
    no_args_is_help=True,
)
console = Console(stderr=True)

_URI_PATTERN = re.compile(r"^https?://\S+$")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _site_uri(site: str) -> str:
    """Return *site* as an absolute URL, defaulting to ``https``."""
    if "://" not in site:
        site = f"https://{site}"
    if not _URI_PATTERN.match(site):
        console.print(f"[red]Invalid value for site parameter: {escape(site)}[/red]")
        raise typer.Exit(code=1)
    return site.rstrip("/")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def history(
    site: str = typer.Argument(..., help="Base URL of the site."),
    limit: int = typer.Option(-1, "-n", "--limit", help="Maximum entries to show; non-positive shows all."),
    revertible: bool = typer.Option(False, "-r", "--revertible", help="Only show revertible entries."),
    token: str | None = typer.Option(None, "--token", envvar="DEPLOY_TOKEN", help="Bearer token for the site."),
) -> None:
    """List the deployment history of a site."""
    site_uri = _site_uri(site)
    console.print(f"Showing history for [bold]{escape(site_uri)}[/bold]:")

    with HistoryClient(token=token) as client:
        try:
            entries = client.get_history(site_uri, limit=limit, revertible_only=revertible)
        except RemoteQueryError as exc:
            console.print(f"[red]{escape(str(exc))}[/red]")
            raise typer.Exit(code=3) from exc

    display_history(console, entries)


@app.command()
def wait(
    site: str = typer.Argument(..., help="Base URL of the site."),
    token: str = typer.Argument(..., help="Correlation token of the awaited update."),
    since: int | None = typer.Option(None, "--since", help="Ignore history older than this (epoch ms)."),
    timeout: float | None = typer.Option(
        None, "--timeout", min=0.0, help="Seconds to wait before giving up [default: DEPLOY_HISTORY_WAIT_TIMEOUT]."
    ),
    poll_interval: float | None = typer.Option(
        None, "--poll-interval", min=0.0, help="Seconds between polls [default: DEPLOY_HISTORY_POLL_INTERVAL]."
    ),
    auth_token: str | None = typer.Option(None, "--auth-token", envvar="DEPLOY_TOKEN", help="Bearer token."),
) -> None:
    """Block until the update tagged TOKEN has finished or failed on a site."""
    site_uri = _site_uri(site)
    if timeout is None or poll_interval is None:
        settings = load_settings()
        timeout = settings.history_wait_timeout if timeout is None else timeout
        poll_interval = settings.history_poll_interval if poll_interval is None else poll_interval

    with HistoryClient(token=auth_token, poll_interval=poll_interval) as client:
        try:
            client.wait_for_token(site_uri, token, since=since, timeout=timeout)
        except TimedOut as exc:
            console.print(f"[yellow]{escape(str(exc))}[/yellow]")
            raise typer.Exit(code=2) from exc
        except RemoteQueryError as exc:
            console.print(f"[red]Command failed: {escape(str(exc))}[/red]")
            raise typer.Exit(code=3) from exc

    console.print(f"[green]{escape(token)} completed.[/green]")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", envvar="API_HOST", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", envvar="API_PORT", help="HTTP port."),
    log_level: str = typer.Option("info", "--log-level", help="uvicorn log level."),
) -> None:
    """Run this node's HTTP API (history and update endpoints)."""
    import uvicorn

    console.print(f"Serving content node on [bold]{host}:{port}[/bold]")
    uvicorn.run("deploy_api.main:app", host=host, port=port, log_level=log_level)
