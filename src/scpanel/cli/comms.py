"""User communication utils for the scpanel commandline."""

from __future__ import annotations

import dataclasses
import textwrap
import typing

import rich.console
import rich.markdown
import rich.table

from scpanel.scheduler import NodeState

if typing.TYPE_CHECKING:
    from collections.abc import Callable, Mapping

__all__ = ["STATE_STYLES", "Communicator"]

STATE_STYLES = {
    NodeState.PENDING: "grey50",
    NodeState.RUNNING: "cyan",
    NodeState.SUCCESS: "green",
    NodeState.FAILED: "red",
    NodeState.SKIPPED: "yellow",
}


@dataclasses.dataclass
class Communicator:
    """Standardize user communication from the scpanel cli."""

    console: rich.console.Console = dataclasses.field(
        default_factory=rich.console.Console
    )

    def task(self, msg: str) -> rich.console.Status:
        """Communicate a long running task is being carried out."""
        return self.console.status(msg)

    def report_success(self, msg: str) -> None:
        """Communicate something was successfully completed."""
        self.console.print(textwrap.indent(msg, prefix=" ✅ "), soft_wrap=True)

    def report_fail(self, msg: str) -> None:
        """Communicate something failed."""
        self.console.print(
            textwrap.indent(msg, prefix=" ❌ "), style="red", soft_wrap=True
        )

    def next_step(self, msg: str) -> None:
        """Communicate that there is a likely followup step."""
        self.console.print(rich.markdown.Markdown(textwrap.dedent(msg)))

    def log(self, line: str) -> None:
        """Print a log line from a script or the engine verbatim."""
        self.console.print(line, markup=False, highlight=False, soft_wrap=True)

    def report_exit(self, exit_code: int, msg: str) -> None:
        """Communicate success or failure of a finished script."""
        if exit_code == 0:
            self.report_success(msg)
        else:
            self.report_fail(msg)

    def report_states(
        self,
        states: Mapping[str, NodeState],
        name_of: Callable[[str], str],
    ) -> None:
        """Show the final state of every node of a run."""
        table = rich.table.Table()
        table.add_column("Script", no_wrap=True)
        table.add_column("State", no_wrap=True)
        table.add_column("Path", overflow="fold")
        for node, state in states.items():
            table.add_row(
                name_of(node),
                f"[{STATE_STYLES[state]}]{state.value}[/]",
                node,
            )
        self.console.print(table)
