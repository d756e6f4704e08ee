"""CLI commands for running the webhook listener.

This module provides Typer commands for serving the listener and for
computing signatures when replaying deliveries by hand.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..configuration import DEFAULT_CONFIG_PATH, Settings, load_settings
from ..errors import MissingConfigError, PushRelayError
from .security import expected_signature
from .service import FullUpdateJob, webhook_server

app = typer.Typer(help="Run the GitHub push webhook listener")
console = Console()


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _resolve_job(import_path: str) -> FullUpdateJob:
    """Resolve ``module:function`` to the full update callable."""
    module_name, sep, attribute = import_path.partition(":")
    if not sep or not module_name or not attribute:
        raise typer.BadParameter("Job must be given as 'module:function'", param_hint="--job")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"Cannot import {module_name}: {exc}", param_hint="--job") from exc
    job = getattr(module, attribute, None)
    if not callable(job):
        raise typer.BadParameter(f"{import_path} is not callable", param_hint="--job")
    return job


def _config_path(config: Optional[Path]) -> Optional[Path]:
    """Use ``config`` if given, else the default settings file when present."""
    if config is not None:
        return config
    return DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None


async def _serve(settings: Settings, job: FullUpdateJob) -> Optional[PushRelayError]:
    """Run until the listener shuts down. Returns the update failure, if any."""
    server = webhook_server(settings, job)
    await server.start()
    try:
        await server.wait_closed()
    finally:
        await server.stop()
    return server.failure


# ---------------------------------------------------------------------------
# CLI Commands
# ---------------------------------------------------------------------------


@app.command("serve")
def serve(
    job: str = typer.Option(
        ...,
        "--job",
        "-j",
        help="Full update callable as module:function",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"JSON settings file (default: {DEFAULT_CONFIG_PATH} if present)",
    ),
    port: Optional[int] = typer.Option(
        None,
        "--port",
        "-p",
        help="Port to listen on (overrides settings)",
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    """Serve the webhook listener until an update fails.

    Example:
        $ pushrelay webhook serve --job mypublisher.full:run --config settings.json
    """
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(_config_path(config), overrides={"listen_port": port})
    except (MissingConfigError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}", style="bold")
        raise typer.Exit(1)

    job_fn = _resolve_job(job)

    table = Table(title="Webhook Listener")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Address", f"{settings.listen_host}:{settings.listen_port}")
    table.add_row("Source ref", settings.expected_ref)
    table.add_row("Dry run", str(settings.dry_run))
    table.add_row("Periodic update", f"every {settings.update_interval_seconds}s")
    table.add_row("Rolling log", str(settings.log_dir / settings.log_file))
    console.print(table)

    failure = asyncio.run(_serve(settings, job_fn))
    if failure is not None:
        console.print("[red]✗[/red] Full update failed, listener stopped")
        console.print_json(data=failure.to_dict())
        raise typer.Exit(1)


@app.command("sign")
def sign(
    body_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Request body"),
    secret: str = typer.Option(
        ...,
        "--secret",
        "-s",
        envvar="PUSHRELAY_SECRET",
        help="Webhook secret",
    ),
) -> None:
    """Print the X-Hub-Signature header value for a request body."""
    console.print(expected_signature(secret, body_file.read_bytes()), highlight=False)


__all__ = ["app"]
