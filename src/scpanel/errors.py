"""Errors raised by the workflow engine and the script catalog."""

from __future__ import annotations

import typing

from typing_extensions import Self

__all__ = [
    "CycleError",
    "EdgeRejectedError",
    "EmptyWorkflowError",
    "PresetExistsError",
    "PresetNotFoundError",
    "ScriptNotFoundError",
    "WorkflowError",
]


class WorkflowError(Exception):
    """Base for everything the engine refuses to do."""

    default_msg: typing.ClassVar[str] = "Invalid workflow."

    def __str__(self: Self) -> str:
        """Construct the error message."""
        if self.args and self.args[0]:
            return str(self.args[0])
        return self.default_msg


class CycleError(WorkflowError):
    """The edge set contains at least one cycle."""

    default_msg = "Workflow contains a cycle."


class EmptyWorkflowError(WorkflowError):
    """There is nothing to run."""

    default_msg = "No valid workflow nodes found."


class EdgeRejectedError(WorkflowError):
    """An edge could not be inserted into the workflow."""

    default_msg = "Link rejected."

    def __init__(
        self: Self, source: str, target: str, *, reason: str | None = None
    ) -> None:
        """Remember which edge was rejected and why."""
        super().__init__(reason)
        self.source = source
        self.target = target
        self.reason = reason

    def __str__(self: Self) -> str:
        """Construct the error message."""
        if self.reason:
            return f"{self.default_msg[:-1]}: {self.reason}."
        return self.default_msg


class ScriptNotFoundError(WorkflowError):
    """A script is not part of the catalog (or not on disk)."""

    default_msg = "Script not found."

    def __init__(self: Self, script: str) -> None:
        """Remember what was looked for."""
        super().__init__(script)
        self.script = script

    def __str__(self: Self) -> str:
        """Construct the error message."""
        return f"Script not found: {self.script}"


class PresetNotFoundError(WorkflowError):
    """No preset with the given name."""

    def __init__(self: Self, name: str) -> None:
        """Remember which preset was looked for."""
        super().__init__(name)
        self.name = name

    def __str__(self: Self) -> str:
        """Construct the error message."""
        return f"Preset '{self.name}' does not exist."


class PresetExistsError(WorkflowError):
    """Saving would overwrite an existing preset."""

    def __init__(self: Self, name: str) -> None:
        """Remember the conflicting name."""
        super().__init__(name)
        self.name = name

    def __str__(self: Self) -> str:
        """Construct the error message."""
        return f"Preset '{self.name}' already exists."
