"""CLI typer app."""

from __future__ import annotations

import typer

__all__ = ["app", "preset"]


app = typer.Typer(name="scpanel", no_args_is_help=True)
app.add_typer(preset := typer.Typer(no_args_is_help=True), name="preset")
