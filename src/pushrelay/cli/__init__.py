"""Command line entry points for pushrelay."""

from typer import Typer

from ..webhook.cli import app as webhook_app


cli = Typer(help="pushrelay command line tools")
cli.add_typer(webhook_app, name="webhook")

__all__ = ["cli", "webhook_app"]
