"""
Run a workflow graph with dependency ordering and bounded parallelism.

A single control loop owns the per-node state map and the ready queue. It
admits ready nodes while fewer than `max_parallel` processes run, waits for
whichever process finishes first, records the outcome and re-evaluates the
dependents of the finished node. Dependents of failed or skipped nodes are
skipped transitively. Stopping is cooperative for admission (a flag checked
before each admission) and forceful for processes already running.
"""

from __future__ import annotations

import asyncio
import collections
import dataclasses
import enum
import pathlib
import typing

import pendulum
from typing_extensions import Self

from scpanel import paths
from scpanel.errors import CycleError, EmptyWorkflowError
from scpanel.graph import Edge, WorkflowGraph, build, is_acyclic
from scpanel.runner import LineSink, ProcessRegistry, ScriptRunner, StopToken

if typing.TYPE_CHECKING:
    from collections.abc import Callable, Iterable

__all__ = [
    "ENGINE_FAULT",
    "MISSING_SCRIPT",
    "NodeState",
    "RunOptions",
    "RunResult",
    "Runner",
    "Scheduler",
    "run_workflow",
]

ENGINE_FAULT = -1
MISSING_SCRIPT = -1


class NodeState(enum.Enum):
    """Runtime state of one node during one run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_final(self: Self) -> bool:
        """Nothing will change this state any more."""
        return self in (NodeState.SUCCESS, NodeState.FAILED, NodeState.SKIPPED)


class Runner(typing.Protocol):
    """What the scheduler needs from a process runner."""

    async def run(self) -> int: ...

    def terminate(self) -> None: ...


Transition = typing.Callable[[str, NodeState, NodeState], None]


@dataclasses.dataclass
class RunOptions:
    """Run parameters, also stored with presets."""

    stop_on_first_failure: bool = True
    max_parallel: int = 2

    def __post_init__(self: Self) -> None:
        if self.max_parallel <= 0:
            msg = f"max_parallel must be positive, got {self.max_parallel}"
            raise ValueError(msg)


@dataclasses.dataclass
class RunResult:
    """
    Outcome of a run.

    'states' is the authoritative outcome. 'exit_code' is the exit code of
    the node that completed last and can be 0 even if other nodes failed.
    """

    exit_code: int
    states: dict[str, NodeState]
    stopped: bool = False

    def nodes_in(self: Self, state: NodeState) -> list[str]:
        """All nodes that ended in 'state'."""
        return [node for node, value in self.states.items() if value is state]

    @property
    def succeeded(self: Self) -> bool:
        """Every node ran successfully."""
        return all(value is NodeState.SUCCESS for value in self.states.values())

    @property
    def failed(self: Self) -> list[str]:
        return self.nodes_in(NodeState.FAILED)

    @property
    def skipped(self: Self) -> list[str]:
        return self.nodes_in(NodeState.SKIPPED)


def _discard(line: str) -> None:
    """Line sink that drops everything."""


@dataclasses.dataclass
class Scheduler:
    """Drive one run of a workflow graph."""

    graph: WorkflowGraph
    options: RunOptions = dataclasses.field(default_factory=RunOptions)
    sink: LineSink = _discard
    name_of: Callable[[str], str] = paths.display_name
    on_transition: Transition | None = None
    runner_factory: Callable[..., Runner] = ScriptRunner
    registry: ProcessRegistry = dataclasses.field(default_factory=ProcessRegistry)
    stop: StopToken = dataclasses.field(default_factory=StopToken)
    exit_code: int = dataclasses.field(default=0, init=False)
    started_at: dict[str, pendulum.DateTime] = dataclasses.field(
        default_factory=dict, init=False
    )
    finished_at: dict[str, pendulum.DateTime] = dataclasses.field(
        default_factory=dict, init=False
    )
    _states: dict[str, NodeState] = dataclasses.field(init=False)
    _ready: collections.deque[str] = dataclasses.field(
        default_factory=collections.deque, init=False
    )
    _running: dict[asyncio.Task[int], str] = dataclasses.field(
        default_factory=dict, init=False
    )

    def __post_init__(self: Self) -> None:
        self._states = {node: NodeState.PENDING for node in self.graph.nodes}

    @property
    def states(self: Self) -> dict[str, NodeState]:
        """Snapshot of the current per-node states."""
        return dict(self._states)

    @property
    def running_count(self: Self) -> int:
        """Number of processes currently admitted and not yet finished."""
        return len(self._running)

    def request_stop(self: Self) -> None:
        """
        Stop admitting nodes and kill running processes.

        Returns immediately, the run records the outcome of the killed
        processes as they exit.
        """
        self.sink(">>> Stop requested...")
        self.stop.request()
        self.registry.terminate_all()

    async def run(self: Self) -> RunResult:
        """
        Run the whole graph, return once every node has a final state.

        Empty and cyclic graphs are refused before any node changes state.
        """
        if not self.graph.nodes:
            raise EmptyWorkflowError
        if not is_acyclic(self.graph):
            raise CycleError

        self.sink(
            f">>> Starting workflow with {len(self.graph)} node(s), "
            f"max parallel = {self.options.max_parallel}"
        )
        try:
            await self._drive()
        except asyncio.CancelledError:
            self._abort()
            self._skip_leftovers()
            raise
        except Exception as err:  # noqa: BLE001  # an engine fault ends the run, never the caller
            self.sink(f"ERROR: {err}")
            self._abort()
            self.exit_code = ENGINE_FAULT
        else:
            if self.stop.requested:
                self.sink(">>> Workflow stopped by request.")
            else:
                self.sink(">>> Workflow execution finished.")
        self._skip_leftovers()
        return RunResult(
            exit_code=self.exit_code,
            states=self.states,
            stopped=self.stop.requested,
        )

    async def _drive(self: Self) -> None:
        self._ready.extend(self.graph.roots)
        while self._ready or self._running:
            self._admit()
            if not self._running:
                if self.stop.requested:
                    break
                continue
            done, _ = await asyncio.wait(
                self._running, return_when=asyncio.FIRST_COMPLETED
            )
            # several processes can finish together, handle them in admission order
            errors: list[BaseException] = []
            for task in [task for task in self._running if task in done]:
                node = self._running.pop(task)
                if (error := task.exception()) is not None:
                    # the node stays RUNNING until the abort marks it FAILED
                    errors.append(error)
                    continue
                self._complete(node, task.result())
            if errors:
                raise errors[0]

    def _admit(self: Self) -> None:
        while (
            not self.stop.requested
            and self._ready
            and len(self._running) < self.options.max_parallel
        ):
            node = self._ready.popleft()
            if self._states[node] is not NodeState.PENDING:
                continue
            self._set(node, NodeState.RUNNING)
            name = self.name_of(node)

            if not pathlib.Path(node).is_file():
                self._set(node, NodeState.FAILED)
                self.exit_code = MISSING_SCRIPT
                self.sink(f"ERROR: Missing file for node {name}: {node}")
                if self.options.stop_on_first_failure:
                    self.stop.request()
                    self.sink(">>> Workflow stopped on first failure.")
                self._resolve_dependents(node)
                continue

            self.sink(f">>> Starting node: {name}")
            runner = self.runner_factory(
                script=pathlib.Path(node),
                display_name=name,
                sink=self.sink,
                registry=self.registry,
                stop=self.stop,
            )
            self._running[asyncio.ensure_future(runner.run())] = node

    def _complete(self: Self, node: str, exit_code: int) -> None:
        self.exit_code = exit_code
        if exit_code == 0:
            self._set(node, NodeState.SUCCESS)
        else:
            self._set(node, NodeState.FAILED)
            self.sink(f">>> Node failed: {self.name_of(node)} (exit {exit_code})")
            if self.options.stop_on_first_failure and not self.stop.requested:
                self.stop.request()
                self.sink(">>> Workflow stopped on first failure.")
                self.registry.terminate_all()
        self._resolve_dependents(node)

    def _resolve_dependents(self: Self, node: str) -> None:
        """
        Re-evaluate the dependents of a node that just reached a final state.

        A dependent becomes ready once all its dependencies succeeded and is
        skipped as soon as all of them are final and one did not succeed.
        Skips cascade to the dependents of the skipped node.
        """
        todo = collections.deque(self.graph.outgoing[node])
        while todo:
            child = todo.popleft()
            if self._states[child] is not NodeState.PENDING:
                continue
            deps = [self._states[dep] for dep in self.graph.incoming[child]]
            if not all(state.is_final for state in deps):
                continue
            if all(state is NodeState.SUCCESS for state in deps):
                self._ready.append(child)
                continue
            self._set(child, NodeState.SKIPPED)
            self.sink(
                f">>> Skipped {self.name_of(child)} due to failed/skipped dependency."
            )
            todo.extend(self.graph.outgoing[child])

    def _abort(self: Self) -> None:
        self.registry.terminate_all()
        for task in self._running:
            task.cancel()
        self._running.clear()
        self._ready.clear()
        for node, state in self.states.items():
            if state is NodeState.RUNNING:
                self._set(node, NodeState.FAILED)

    def _skip_leftovers(self: Self) -> None:
        for node in self.graph.nodes:
            if self._states[node] is NodeState.PENDING:
                self._set(node, NodeState.SKIPPED)

    def _set(self: Self, node: str, state: NodeState) -> None:
        previous = self._states[node]
        self._states[node] = state
        if state is NodeState.RUNNING:
            self.started_at[node] = pendulum.now()
        elif state.is_final:
            self.finished_at[node] = pendulum.now()
        if self.on_transition is not None:
            self.on_transition(node, previous, state)


async def run_workflow(
    edges: Iterable[Edge],
    options: RunOptions | None = None,
    *,
    sink: LineSink = _discard,
    name_of: Callable[[str], str] = paths.display_name,
    on_transition: Transition | None = None,
) -> RunResult:
    """Build the graph for 'edges' and run it."""
    scheduler = Scheduler(
        graph=build(edges),
        options=options or RunOptions(),
        sink=sink,
        name_of=name_of,
        on_transition=on_transition,
    )
    return await scheduler.run()
