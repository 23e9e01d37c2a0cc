"""Terminal monitor following a workflow run."""

from __future__ import annotations

import typing

import rich.text
import textual.app
from textual import containers, widgets
from typing_extensions import Self

from scpanel.scheduler import NodeState, RunResult, Scheduler

if typing.TYPE_CHECKING:
    import pendulum

    from scpanel.runner import LogChannel

__all__ = ["WorkflowMonitor"]

STATE_STYLES = {
    NodeState.PENDING: "dim",
    NodeState.RUNNING: "bold cyan",
    NodeState.SUCCESS: "green",
    NodeState.FAILED: "bold red",
    NodeState.SKIPPED: "yellow",
}


def format_time(moment: pendulum.DateTime | None) -> str:
    """Short wall clock time, empty if not there yet."""
    if moment is None:
        return ""
    return moment.format("HH:mm:ss")


def state_text(state: NodeState) -> rich.text.Text:
    """Colored node state."""
    return rich.text.Text(state.value, style=STATE_STYLES[state])


class WorkflowMonitor(textual.app.App[typing.Optional[RunResult]]):  # noqa: UP007  # runtime subscript
    """Run a workflow and show node states and output as they change."""

    BINDINGS: typing.ClassVar = [
        ("d", "toggle_dark", "Toggle dark mode"),
        ("s", "stop", "Stop workflow"),
        ("q", "quit_monitor", "Quit"),
    ]

    CSS: typing.ClassVar = """
    DataTable {
        height: 1fr;
    }
    Log {
        height: 2fr;
    }
    """

    def __init__(self: Self, workflow: Scheduler, channel: LogChannel) -> None:
        """Monitor 'workflow', showing the lines pushed to 'channel'."""
        super().__init__()
        self.workflow = workflow
        self.channel = channel
        self.result: RunResult | None = None

    def compose(self: Self) -> textual.app.ComposeResult:
        """Create the app's child widgets."""
        yield widgets.Header()
        with containers.Vertical():
            yield widgets.DataTable(fixed_columns=1)
            yield widgets.Log(highlight=False)
        yield widgets.Footer()

    def on_mount(self: Self) -> None:
        """Populate the node table and start the run."""
        self.title = "scpanel"
        self.sub_title = "running"
        table = self.query_one(widgets.DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns(
            ("Script", "script"),
            ("State", "state"),
            ("Started", "started"),
            ("Finished", "finished"),
            ("Path", "path"),
        )
        for node, state in self.workflow.states.items():
            table.add_row(
                self.workflow.name_of(node),
                state_text(state),
                "",
                "",
                node,
                key=node,
            )
        self.workflow.on_transition = self.show_transition
        self.channel.subscribe(self.write_line)
        self.run_worker(self.run_workflow(), exclusive=True)

    async def run_workflow(self: Self) -> None:
        """Drive the run to completion."""
        self.result = await self.workflow.run()
        self.sub_title = "stopped" if self.result.stopped else "finished"

    def show_transition(
        self: Self,
        node: str,
        previous: NodeState,  # noqa: ARG002  # signature determined by the scheduler
        state: NodeState,
    ) -> None:
        """Update the row of a node that changed state."""
        table = self.query_one(widgets.DataTable)
        table.update_cell(node, "state", state_text(state))
        table.update_cell(
            node, "started", format_time(self.workflow.started_at.get(node))
        )
        table.update_cell(
            node, "finished", format_time(self.workflow.finished_at.get(node))
        )

    def write_line(self: Self, line: str) -> None:
        """Append a log line."""
        self.query_one(widgets.Log).write_line(line)

    def action_toggle_dark(self: Self) -> None:
        """Toggle dark theme."""
        self.theme = (
            "textual-dark" if self.theme == "textual-light" else "textual-light"
        )

    def action_stop(self: Self) -> None:
        """Stop admitting scripts and kill the running ones."""
        self.sub_title = "stopping"
        self.workflow.request_stop()

    def action_quit_monitor(self: Self) -> None:
        """Quit, handing the run result (if any) back to the caller."""
        self.exit(self.result)
