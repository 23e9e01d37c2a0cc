"""
scpanel commands for managing the script catalog.

Also runs single scripts outside of any workflow.
"""

from __future__ import annotations

import asyncio
import pathlib

import pendulum
import rich.table
import typer
from typing_extensions import Annotated

from scpanel import catalog, paths, runner
from scpanel.cli import comms, params, userdata
from scpanel.cli.app import app

__all__ = ["add", "change_path", "list_scripts", "remove", "run"]


@app.command()
def add(
    path: Annotated[pathlib.Path, typer.Argument(click_type=params.ScriptPath())],
    name: Annotated[str, typer.Option(help="Display name.")] = "",
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Add the script at PATH to the catalog."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    if (existing := this.find_script(str(path))) is not None:
        ucomm.report_success(f"'{existing.name}' is already in the catalog")
        return
    entry = this.add_script(str(path), name=name or None)
    ucomm.report_success(f"added '{entry.name}'")
    if len(this.scripts) > 1:
        ucomm.next_step(
            """
            make scripts depend on each other with

            ```bash
            scpanel link SOURCE TARGET
            ```
            """
        )


@app.command()
def remove(
    script: Annotated[str, typer.Argument(help="Name or path of the script.")],
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Remove SCRIPT from the catalog, together with its workflow links."""
    this = catalog.Catalog(catalog_file)
    entry = params.catalog_script(this, script)
    this.remove_script(entry.path)
    comms.Communicator().report_success(f"removed '{entry.name}'")


@app.command("change-path")
def change_path(
    script: Annotated[str, typer.Argument(help="Name or path of the script.")],
    new_path: Annotated[pathlib.Path, typer.Argument(click_type=params.ScriptPath())],
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Point SCRIPT at another file, keeping its place in the workflow."""
    this = catalog.Catalog(catalog_file)
    entry = params.catalog_script(this, script)
    updated = this.change_path(entry.path, str(new_path))
    comms.Communicator().report_success(
        f"'{entry.name}' now runs {updated.path} as '{updated.name}'"
    )


def modified(path: pathlib.Path) -> str:
    """Last modification time of a script, empty if it is missing."""
    if not path.is_file():
        return ""
    return pendulum.from_timestamp(path.stat().st_mtime, tz="local").format(
        "YYYY-MM-DD HH:mm:ss"
    )


@app.command("list")
def list_scripts(
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """List the scripts in the catalog."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    scripts = sorted(this.scripts, key=lambda entry: entry.name.casefold())
    if not scripts:
        ucomm.next_step(
            """
            the catalog is empty, add scripts with

            ```bash
            scpanel add PATH
            ```
            """
        )
        return
    table = rich.table.Table()
    table.add_column("Name", no_wrap=True)
    table.add_column("Modified", no_wrap=True)
    table.add_column("Path", overflow="fold")
    for entry in scripts:
        script_path = pathlib.Path(entry.path)
        table.add_row(
            entry.name,
            modified(script_path) or "[red]missing[/]",
            entry.path,
        )
    ucomm.console.print(table)


@app.command()
def run(
    script: Annotated[str, typer.Argument(help="Name or path of the script.")],
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Run a single script and stream its output."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    if (entry := this.find_script(script)) is None:
        entry = catalog.ScriptEntry(
            name=paths.display_name(script), path=paths.normalize_path(script)
        )
    if not pathlib.Path(entry.path).is_file():
        ucomm.report_fail(f"Script file not found: {entry.path}")
        raise typer.Exit(code=2)

    ucomm.log(f">>> Starting script: {entry.name}")
    ucomm.log(f">>> Path: {entry.path}")
    exit_code = asyncio.run(runner.run_script(entry.path, ucomm.log, name=entry.name))
    ucomm.log(f">>> Finished with exit code: {exit_code}")
    ucomm.report_exit(exit_code, f"Last run exit code: {exit_code}")
    if exit_code != 0:
        raise typer.Exit(code=1)
