"""Test running single scripts as external processes."""

from __future__ import annotations

import asyncio
import typing

import psutil
import pytest

from scpanel import runner

if typing.TYPE_CHECKING:
    import pathlib

    from .conftest import ScriptFactory

pytestmark = pytest.mark.posix


def test_output_and_exit_code(make_script: ScriptFactory) -> None:
    """Stdout and stderr are merged, prefixed and stripped of blank lines."""
    script = make_script(
        "noisy",
        """
        echo hello
        echo oops 1>&2
        echo
        exit 3
        """,
    )
    lines: list[str] = []
    exit_code = asyncio.run(runner.run_script(script, lines.append))
    assert exit_code == 3
    assert lines == ["[noisy] hello", "[noisy] oops"]


def test_custom_name(make_script: ScriptFactory) -> None:
    """The prefix uses the given display name."""
    script = make_script("greet", "echo hi")
    lines: list[str] = []
    assert asyncio.run(runner.run_script(script, lines.append, name="Greeter")) == 0
    assert lines == ["[Greeter] hi"]


def test_very_long_line(make_script: ScriptFactory) -> None:
    """A line far longer than one read arrives whole, the exit code is kept."""
    script = make_script(
        "chatty",
        """
        head -c 2000000 /dev/zero | tr '\\0' x
        echo
        echo done
        """,
    )
    lines: list[str] = []
    assert asyncio.run(runner.run_script(script, lines.append)) == 0
    assert len(lines) == 2
    assert lines[0] == "[chatty] " + "x" * 2_000_000
    assert lines[1] == "[chatty] done"


def test_unterminated_last_line(make_script: ScriptFactory) -> None:
    """Output without a final newline is still delivered."""
    script = make_script("shy", "printf 'first\\r\\nno newline'")
    lines: list[str] = []
    assert asyncio.run(runner.run_script(script, lines.append)) == 0
    assert lines == ["[shy] first", "[shy] no newline"]


def test_runs_in_script_dir(
    make_script: ScriptFactory, script_dir: pathlib.Path
) -> None:
    """Relative paths in a script refer to its own directory."""
    (script_dir / "marker.txt").write_text("found me\n")
    script = make_script("reader", "cat marker.txt")
    lines: list[str] = []
    assert asyncio.run(runner.run_script(script, lines.append)) == 0
    assert lines == ["[reader] found me"]


def test_launch_failure(
    make_script: ScriptFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A process that can not be started is reported, not raised."""
    monkeypatch.setattr(
        runner.ScriptRunner,
        "shell_args",
        property(lambda self: ["/nonexistent/shell", str(self.script)]),
    )
    registry = runner.ProcessRegistry()
    lines: list[str] = []
    this = runner.ScriptRunner(
        script=make_script("broken"),
        display_name="broken",
        sink=lines.append,
        registry=registry,
    )
    assert asyncio.run(this.run()) == runner.LAUNCH_FAILED
    assert lines[0].startswith("ERROR: Failed to start process for broken:")
    assert len(registry) == 0


def test_registry_tracks_live_process(make_script: ScriptFactory) -> None:
    """A runner is registered exactly while its process lives."""
    registry = runner.ProcessRegistry()
    seen: list[int] = []

    def sink(line: str) -> None:  # noqa: ARG001  # only counting
        seen.append(len(registry))

    this = runner.ScriptRunner(
        script=make_script("short", "echo one"),
        display_name="short",
        sink=sink,
        registry=registry,
    )
    assert asyncio.run(this.run()) == 0
    assert seen == [1]
    assert len(registry) == 0


def test_terminate_kills_tree(make_script: ScriptFactory) -> None:
    """Killing a runner also kills what its shell started."""
    script = make_script(
        "sleeper",
        """
        echo started
        sleep 30
        """,
    )
    registry = runner.ProcessRegistry()
    channel = runner.LogChannel()

    async def scenario() -> int:
        this = runner.ScriptRunner(
            script=script, display_name="sleeper", sink=channel, registry=registry
        )
        task = asyncio.ensure_future(this.run())
        while this.process is None or not psutil.Process(this.process.pid).children():
            await asyncio.sleep(0.05)
        assert registry.terminate_all() == 1
        return await asyncio.wait_for(task, timeout=10)

    assert asyncio.run(scenario()) != 0
    assert channel.lines == ["[sleeper] started"]


def test_stop_requested_before_start(make_script: ScriptFactory) -> None:
    """A runner started after a stop request is killed right away."""
    stop = runner.StopToken()
    stop.request()
    this = runner.ScriptRunner(
        script=make_script("late", "exec sleep 30"),
        display_name="late",
        sink=runner.LogChannel(),
        stop=stop,
    )

    async def scenario() -> int:
        return await asyncio.wait_for(this.run(), timeout=10)

    assert asyncio.run(scenario()) != 0


def test_stop_token() -> None:
    """A request sticks."""
    stop = runner.StopToken()
    assert not stop.requested
    stop.request()
    stop.request()
    assert stop.requested


def test_log_channel() -> None:
    """Subscribers see lines pushed after subscribing, in order."""
    channel = runner.LogChannel()
    channel("first")
    late: list[str] = []
    channel.subscribe(late.append)
    channel.push("second")
    channel("third")
    assert channel.lines == ["first", "second", "third"]
    assert list(channel) == channel.lines
    assert len(channel) == 3
    assert late == ["second", "third"]
