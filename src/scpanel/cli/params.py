"""Parameter types for the scpanel commandline."""

from __future__ import annotations

import pathlib
import typing

import click
import typer
from typing_extensions import Annotated, Self

from scpanel import catalog, paths
from scpanel.cli import comms

if typing.TYPE_CHECKING:
    import os


__all__ = [
    "CatalogFile",
    "MaxParallel",
    "ScriptPath",
    "StopOnFirstFailure",
    "catalog_script",
]


class ScriptPath(click.Path):
    """An existing script file, normalized to an absolute path."""

    name = "ScriptPath"

    def __init__(self: Self) -> None:
        """Only accept existing files."""
        super().__init__(exists=True, file_okay=True, dir_okay=False, readable=True)

    def convert(
        self: Self,
        value: str | os.PathLike[str],
        param: click.Parameter | None,
        ctx: click.Context | None,
    ) -> pathlib.Path:
        """Normalize on top of path validation."""
        _ = super().convert(value, param, ctx)
        return pathlib.Path(paths.normalize_path(value))


CatalogFile = Annotated[
    pathlib.Path,
    typer.Option(
        "--catalog",
        envvar="SCPANEL_CATALOG",
        file_okay=True,
        dir_okay=False,
        help="Catalog file holding scripts, workflow and presets.",
    ),
]

StopOnFirstFailure = Annotated[
    typing.Optional[bool],  # noqa: UP007  # typer needs to see the Optional
    typer.Option(
        "--stop-on-first-failure/--keep-going",
        help="Stop admitting nodes after the first failure.",
        show_default=False,
    ),
]

MaxParallel = Annotated[
    typing.Optional[int],  # noqa: UP007  # typer needs to see the Optional
    typer.Option(min=1, help="Maximum number of scripts running at once."),
]


def catalog_script(this: catalog.Catalog, ref: str) -> catalog.ScriptEntry:
    """Find a script in the catalog or exit with a helpful message."""
    if (entry := this.find_script(ref)) is None:
        ucomm = comms.Communicator()
        ucomm.report_fail(f"'{ref}' is not in the catalog.")
        ucomm.next_step(
            f"""
            add it with

            ```bash
            scpanel add {ref}
            ```
            """
        )
        raise typer.Exit(code=2)
    return entry
