"""Run catalog scripts as external processes and stream their output."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import os
import pathlib
import threading
import typing

import psutil
from typing_extensions import Self

from scpanel import paths

if typing.TYPE_CHECKING:
    from collections.abc import Callable, Iterator

__all__ = [
    "LAUNCH_FAILED",
    "LineSink",
    "LogChannel",
    "ProcessRegistry",
    "ScriptRunner",
    "StopToken",
    "run_script",
]

LAUNCH_FAILED = -1

LineSink = typing.Callable[[str], None]

# bytes per read, lines can span any number of reads
READ_CHUNK = 2**16


@dataclasses.dataclass
class LogChannel:
    """
    Append-only, ordered collection of log lines.

    Usable directly as a line sink. Subscribers see every line pushed after
    they subscribed, in order. Pushing is safe from any thread.
    """

    _lines: list[str] = dataclasses.field(default_factory=list)
    _subscribers: list[LineSink] = dataclasses.field(default_factory=list)
    _lock: threading.Lock = dataclasses.field(default_factory=threading.Lock)

    def __call__(self: Self, line: str) -> None:
        self.push(line)

    def __len__(self: Self) -> int:
        return len(self._lines)

    def __iter__(self: Self) -> Iterator[str]:
        return iter(self.lines)

    @property
    def lines(self: Self) -> list[str]:
        """Copy of everything pushed so far."""
        with self._lock:
            return list(self._lines)

    def push(self: Self, line: str) -> None:
        """Append a line and hand it to all subscribers."""
        with self._lock:
            self._lines.append(line)
            subscribers = list(self._subscribers)
        for subscriber in subscribers:
            subscriber(line)

    def subscribe(self: Self, sink: LineSink) -> None:
        """Forward future lines to another sink as well."""
        with self._lock:
            self._subscribers.append(sink)


class StopToken:
    """Cooperative cancellation flag shared by a run and its runners."""

    def __init__(self: Self) -> None:
        self._event = threading.Event()

    @property
    def requested(self: Self) -> bool:
        """Whether a stop has been requested."""
        return self._event.is_set()

    def request(self: Self) -> None:
        """Ask everyone holding this token to stop."""
        self._event.set()


@dataclasses.dataclass
class ProcessRegistry:
    """
    Runners with a live process.

    Owned by whoever makes the termination decision (the scheduler) and
    handed to each runner, which registers itself while its process lives.
    """

    _live: set[ScriptRunner] = dataclasses.field(default_factory=set)
    _lock: threading.Lock = dataclasses.field(default_factory=threading.Lock)

    def __len__(self: Self) -> int:
        with self._lock:
            return len(self._live)

    def add(self: Self, runner: ScriptRunner) -> None:
        """Track a runner."""
        with self._lock:
            self._live.add(runner)

    def discard(self: Self, runner: ScriptRunner) -> None:
        """Stop tracking a runner."""
        with self._lock:
            self._live.discard(runner)

    def terminate_all(self: Self) -> int:
        """
        Kill every live process, return how many were asked to stop.

        Does not wait for anything to exit.
        """
        with self._lock:
            running = list(self._live)
        for runner in running:
            runner.terminate()
        return len(running)


@dataclasses.dataclass(eq=False)
class ScriptRunner:
    """
    Run one script through the system shell.

    The working directory is the script's directory. Standard error is merged
    into standard output and every non-blank line goes to 'sink', prefixed
    with the display name so output of concurrent scripts stays attributable.
    """

    script: pathlib.Path
    display_name: str
    sink: LineSink
    registry: ProcessRegistry | None = None
    stop: StopToken | None = None
    process: asyncio.subprocess.Process | None = dataclasses.field(
        default=None, init=False
    )

    @property
    def shell_args(self: Self) -> list[str]:
        """Command line running the script in a command shell."""
        if os.name == "nt":
            return [os.environ.get("COMSPEC", "cmd.exe"), "/c", str(self.script)]
        return ["/bin/sh", str(self.script)]

    @property
    def cwd(self: Self) -> pathlib.Path:
        """The directory containing the script."""
        return self.script.parent

    @property
    def prefix(self: Self) -> str:
        """Prefix for every output line of this script."""
        return f"[{self.display_name}] "

    def populate_default_kwargs(
        self: Self, popen_options: dict[str, typing.Any]
    ) -> dict[str, typing.Any]:
        popen_options.setdefault("stdin", asyncio.subprocess.DEVNULL)
        popen_options.setdefault("stdout", asyncio.subprocess.PIPE)
        popen_options.setdefault("stderr", asyncio.subprocess.STDOUT)
        popen_options.setdefault("cwd", self.cwd)
        return popen_options

    async def run(self: Self) -> int:
        """Run to completion, return the exit code."""
        if self.registry is not None:
            self.registry.add(self)
        try:
            try:
                self.process = await asyncio.create_subprocess_exec(  # noqa: S603  # running the user's own scripts is the point
                    *self.shell_args, **self.populate_default_kwargs({})
                )
            except OSError as err:
                self.sink(
                    f"ERROR: Failed to start process for {self.display_name}: {err}"
                )
                return LAUNCH_FAILED
            if self.stop is not None and self.stop.requested:
                self.terminate()
            await self._pump_output()
            return await self.process.wait()
        finally:
            if self.registry is not None:
                self.registry.discard(self)

    async def _pump_output(self: Self) -> None:
        if self.process is None or self.process.stdout is None:
            return
        pending = bytearray()
        while chunk := await self.process.stdout.read(READ_CHUNK):
            *complete, rest = chunk.split(b"\n")
            for part in complete:
                pending.extend(part)
                self._emit(bytes(pending))
                pending.clear()
            pending.extend(rest)
        if pending:
            self._emit(bytes(pending))

    def _emit(self: Self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if line.strip():
            self.sink(self.prefix + line)

    def terminate(self: Self) -> None:
        """Kill the process and everything it spawned, ignoring failures."""
        if self.process is None or self.process.returncode is not None:
            return
        with contextlib.suppress(psutil.Error):
            parent = psutil.Process(self.process.pid)
            family = [*parent.children(recursive=True), parent]
            for proc in family:
                with contextlib.suppress(psutil.Error):
                    proc.kill()


async def run_script(
    script: str | os.PathLike[str],
    sink: Callable[[str], None],
    name: str | None = None,
) -> int:
    """Run a single script outside of any workflow."""
    path = pathlib.Path(paths.normalize_path(script))
    runner = ScriptRunner(
        script=path, display_name=name or paths.display_name(path), sink=sink
    )
    return await runner.run()
