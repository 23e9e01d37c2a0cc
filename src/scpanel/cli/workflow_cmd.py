"""
scpanel commands for editing, previewing and running the workflow.

The workflow is a set of links between catalog scripts. Links are added one
at a time and a link that would create a cycle is rejected right away.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import typing

import typer
from typing_extensions import Annotated

from scpanel import catalog, graph, scheduler
from scpanel.cli import comms, params, userdata
from scpanel.cli.app import app
from scpanel.errors import EdgeRejectedError
from scpanel.runner import LogChannel
from scpanel.tui import WorkflowMonitor

__all__ = [
    "clear_workflow",
    "link",
    "preview",
    "run_workflow",
    "settings",
    "unlink",
]


@app.command()
def link(
    source: Annotated[str, typer.Argument(help="Script that has to succeed first.")],
    target: Annotated[str, typer.Argument(help="Script that depends on SOURCE.")],
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Make TARGET depend on SOURCE."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    first = params.catalog_script(this, source)
    then = params.catalog_script(this, target)
    editor = this.editor()
    try:
        editor.insert_edge(first.path, then.path)
    except EdgeRejectedError as err:
        ucomm.report_fail(str(err))
        raise typer.Exit(code=2) from err
    this.set_edges(editor.edges)
    ucomm.report_success(f"Link added: {first.name} -> {then.name}")


@app.command()
def unlink(
    source: Annotated[str, typer.Argument(help="Script the link starts at.")],
    target: Annotated[
        typing.Optional[str],  # noqa: UP007  # typer needs to see the Optional
        typer.Argument(help="Script the link ends at, all links of SOURCE if omitted."),
    ] = None,
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Remove the link from SOURCE to TARGET."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    first = params.catalog_script(this, source)
    editor = this.editor()
    if target is None:
        removed = editor.clear_outgoing(first.path)
        if not removed:
            ucomm.report_fail(f"'{first.name}' has no outgoing links.")
            raise typer.Exit(code=2)
        this.set_edges(editor.edges)
        ucomm.report_success(f"Removed {removed} link(s) from {first.name}")
        return
    then = params.catalog_script(this, target)
    if not editor.remove_edge(first.path, then.path):
        ucomm.report_fail(f"There is no link {first.name} -> {then.name}.")
        raise typer.Exit(code=2)
    this.set_edges(editor.edges)
    ucomm.report_success(f"Link removed: {first.name} -> {then.name}")


@app.command("clear-workflow")
def clear_workflow(
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Remove all workflow links."""
    catalog.Catalog(catalog_file).clear_workflow()
    comms.Communicator().report_success("All links cleared.")


@app.command()
def preview(
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Show the order the workflow would run in."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    workflow = graph.build(this.edges)
    if not workflow.nodes:
        ucomm.console.print("No workflow links defined.")
        return
    if not graph.is_acyclic(workflow):
        ucomm.report_fail(graph.INVALID_PREVIEW)
        raise typer.Exit(code=2)
    name_of = this.namer()
    for step in graph.preview(workflow, name_of):
        ucomm.log(step.display)
    ucomm.console.print()
    for i, stage in enumerate(graph.stages(workflow), start=1):
        ucomm.log(f"stage {i}: {', '.join(name_of(node) for node in stage)}")


@app.command()
def settings(
    stop_on_first_failure: params.StopOnFirstFailure = None,
    max_parallel: params.MaxParallel = None,
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Show or change the default run parameters."""
    options = catalog.Catalog(catalog_file).set_options(
        stop_on_first_failure=stop_on_first_failure, max_parallel=max_parallel
    )
    ucomm = comms.Communicator()
    ucomm.log(f"stop on first failure: {options.stop_on_first_failure}")
    ucomm.log(f"max parallel: {options.max_parallel}")


async def run_until_done(workflow: scheduler.Scheduler) -> scheduler.RunResult:
    """Run a workflow, turning Ctrl-C into a stop request."""
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, workflow.request_stop)
    try:
        return await workflow.run()
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.remove_signal_handler(signal.SIGINT)


@app.command("run-workflow")
def run_workflow(
    stop_on_first_failure: params.StopOnFirstFailure = None,
    max_parallel: params.MaxParallel = None,
    monitor: Annotated[
        bool, typer.Option(help="Follow the run in the terminal monitor.")
    ] = False,
    catalog_file: params.CatalogFile = userdata.CATALOG_FILE,
) -> None:
    """Run the workflow, in dependency order."""
    this = catalog.Catalog(catalog_file)
    ucomm = comms.Communicator()
    state = this.state
    options = scheduler.RunOptions(
        stop_on_first_failure=(
            state.stop_on_first_failure
            if stop_on_first_failure is None
            else stop_on_first_failure
        ),
        max_parallel=state.max_parallel if max_parallel is None else max_parallel,
    )

    workflow = graph.build(state.workflow_edges)
    if not workflow.nodes:
        ucomm.report_fail("No workflow links defined.")
        ucomm.next_step(
            """
            define links first with

            ```bash
            scpanel link SOURCE TARGET
            ```
            """
        )
        raise typer.Exit(code=2)
    if not graph.is_acyclic(workflow):
        ucomm.report_fail("Workflow contains a cycle. Fix links with 'scpanel unlink'.")
        raise typer.Exit(code=2)

    name_of = this.namer()
    channel = LogChannel()
    run = scheduler.Scheduler(
        graph=workflow, options=options, sink=channel, name_of=name_of
    )
    if monitor:
        result = WorkflowMonitor(run, channel).run()
    else:
        channel.subscribe(ucomm.log)
        result = asyncio.run(run_until_done(run))

    if result is None:
        ucomm.report_fail("Workflow aborted before it finished.")
        ucomm.report_states(run.states, name_of)
        raise typer.Exit(code=1)
    ucomm.report_states(result.states, name_of)
    ucomm.report_exit(result.exit_code, f"Last run exit code: {result.exit_code}")
    if not result.succeeded:
        raise typer.Exit(code=1)
