"""Fixtures for CLI tests."""

from __future__ import annotations

import typing

import pytest
import typer.testing

from scpanel import cli

if typing.TYPE_CHECKING:
    import pathlib

    import click.testing

Invoke = typing.Callable[..., "click.testing.Result"]


@pytest.fixture(scope="session")
def runner() -> typer.testing.CliRunner:
    """One cli runner is enough."""
    return typer.testing.CliRunner()


@pytest.fixture
def invoke(runner: typer.testing.CliRunner, catalog_file: pathlib.Path) -> Invoke:
    """Run scpanel commands against a scratch catalog."""

    def invoke(*args: str) -> click.testing.Result:
        return runner.invoke(
            cli.app,
            [*args, "--catalog", str(catalog_file)],
            env={"COLUMNS": "250"},
        )

    return invoke


@pytest.fixture
def linked(invoke: Invoke, diamond: dict[str, str]) -> dict[str, str]:
    """Provide a catalog with x, y, z, w and the links x -> (y, z) -> w."""
    for path in diamond.values():
        invoke("add", path)
    for source, target in ["xy", "xz", "yw", "zw"]:
        invoke("link", source, target)
    return diamond
