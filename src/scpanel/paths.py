"""Script path normalization and node identity."""

from __future__ import annotations

import os
import pathlib

__all__ = ["display_name", "normalize_path", "path_key", "same_path"]


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Absolute, user-expanded path with '.' and '..' collapsed."""
    return os.path.abspath(pathlib.Path(path).expanduser())


def path_key(path: str | os.PathLike[str]) -> str:
    """
    Case-insensitive identity of a script path.

    Two paths with the same key refer to the same workflow node.
    """
    return normalize_path(path).casefold()


def same_path(first: str | os.PathLike[str], second: str | os.PathLike[str]) -> bool:
    """Check whether two paths identify the same node."""
    return path_key(first) == path_key(second)


def display_name(path: str | os.PathLike[str]) -> str:
    """Human readable name derived from the script file name."""
    this = pathlib.Path(path)
    name = this.stem.replace("_", " ")
    return name if name.strip() else this.name
