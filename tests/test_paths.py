"""Test script path normalization and naming."""

from __future__ import annotations

import pathlib

import pytest

from scpanel import paths


def test_normalize_relative(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Relative paths are resolved against the working directory."""
    monkeypatch.chdir(tmp_path)
    assert paths.normalize_path("sub/../run.sh") == str(tmp_path / "run.sh")


def test_normalize_user(tmp_path: pathlib.Path) -> None:
    """A leading '~' expands to the home directory."""
    home = pathlib.Path.home()
    assert paths.normalize_path("~/run.sh") == str(home / "run.sh")
    assert paths.normalize_path(tmp_path) == str(tmp_path)


def test_same_path_ignores_case(tmp_path: pathlib.Path) -> None:
    """Node identity does not depend on capitalization."""
    assert paths.same_path(tmp_path / "Build.SH", tmp_path / "build.sh")
    assert paths.same_path(tmp_path / "a" / ".." / "b.sh", tmp_path / "b.sh")
    assert not paths.same_path(tmp_path / "a.sh", tmp_path / "b.sh")


def test_display_name() -> None:
    """Underscores in the stem become spaces."""
    assert paths.display_name("/opt/jobs/build_all.sh") == "build all"
    assert paths.display_name("deploy.bat") == "deploy"


def test_display_name_blank_stem() -> None:
    """Fall back to the file name when the stem has nothing readable."""
    assert paths.display_name("/opt/jobs/__.sh") == "__.sh"
