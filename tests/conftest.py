"""Common fixtures."""

from __future__ import annotations

import os
import pathlib
import textwrap
import typing

import pytest

from scpanel import catalog

ScriptFactory = typing.Callable[..., pathlib.Path]


def pytest_collection_modifyitems(
    session: pytest.Session,  # noqa: ARG001  # signature determined by pytest
    config: pytest.Config,  # noqa: ARG001  # signature determined by pytest
    items: list[pytest.Item],
) -> None:
    """Skip tests that run scripts through /bin/sh where there is none."""
    if os.name != "nt":
        return
    skip_me = pytest.mark.skip(reason="needs a POSIX shell")
    for item in items:
        if "posix" in item.keywords:
            item.add_marker(skip_me)


@pytest.fixture
def script_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    """Directory the example scripts are written to."""
    path = tmp_path / "scripts"
    path.mkdir()
    return path


@pytest.fixture
def make_script(script_dir: pathlib.Path) -> ScriptFactory:
    """Write small shell scripts, the body defaults to a successful no-op."""

    def make(name: str, body: str = "exit 0") -> pathlib.Path:
        path = script_dir / f"{name}.sh"
        path.write_text("#!/bin/sh\n" + textwrap.dedent(body).strip() + "\n")
        return path

    return make


@pytest.fixture
def catalog_file(tmp_path: pathlib.Path) -> pathlib.Path:
    """Location of a catalog that does not exist yet."""
    return tmp_path / "data" / "catalog.yaml"


@pytest.fixture
def empty_catalog(catalog_file: pathlib.Path) -> catalog.Catalog:
    """Provide a catalog with nothing in it."""
    return catalog.Catalog(catalog_file)


@pytest.fixture
def diamond(make_script: ScriptFactory) -> dict[str, str]:
    """Scripts x, y, z, w for the workflow x -> (y, z) -> w."""
    return {name: str(make_script(name)) for name in "xyzw"}
