"""Run a catalog of scripts one by one or as a dependency-ordered workflow."""

from __future__ import annotations

from scpanel import catalog, editor, errors, graph, paths, runner, scheduler

__all__ = ["catalog", "editor", "errors", "graph", "paths", "runner", "scheduler"]
