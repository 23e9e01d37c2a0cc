"""scpanel preset subcommands: named snapshots of the workflow."""

from __future__ import annotations

import typer
from typing_extensions import Annotated

from scpanel import catalog
from scpanel.cli import comms, params, userdata
from scpanel.cli.app import preset
from scpanel.errors import WorkflowError

__all__ = ["delete_preset", "list_presets", "load_preset", "save_preset"]


@preset.command("save")
def save_preset(
    name: Annotated[str, typer.Argument()],
    overwrite: Annotated[
        bool, typer.Option(help="Replace a preset with the same name.")
    ] = False,
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Save the current workflow and run parameters as preset NAME."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    try:
        saved = this.save_preset(name, overwrite=overwrite)
    except WorkflowError as err:
        ucomm.report_fail(str(err))
        if this.find_preset(name) is not None and not overwrite:
            ucomm.next_step(
                f"""
                overwrite it with

                ```bash
                scpanel preset save --overwrite "{name}"
                ```
                """
            )
        raise typer.Exit(code=2) from err
    ucomm.report_success(
        f"saved preset '{saved.name}' with {len(saved.workflow_edges)} link(s)"
    )


@preset.command("load")
def load_preset(
    name: Annotated[str, typer.Argument()],
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Replace the current workflow and run parameters with preset NAME."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    try:
        loaded = this.load_preset(name)
    except WorkflowError as err:
        ucomm.report_fail(str(err))
        raise typer.Exit(code=2) from err
    ucomm.report_success(f"loaded preset '{loaded.name}'")


@preset.command("delete")
def delete_preset(
    name: Annotated[str, typer.Argument()],
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Delete preset NAME."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    try:
        deleted = this.delete_preset(name)
    except WorkflowError as err:
        ucomm.report_fail(str(err))
        raise typer.Exit(code=2) from err
    ucomm.report_success(f"deleted preset '{deleted.name}'")


@preset.command("list")
def list_presets(
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """List saved presets."""
    ucomm = comms.Communicator()
    for item in catalog.Catalog(catalog_file).presets:
        failure = "stop on first failure" if item.stop_on_first_failure else "keep going"
        ucomm.log(
            f"{item.name}: {len(item.workflow_edges)} link(s), "
            f"max parallel {item.max_parallel}, {failure}"
        )
