"""CLI application setup using Typer."""

from passgate.cli.main import app

__all__ = ["app"]
