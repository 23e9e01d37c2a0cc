"""
Interactive workflow editing with edit-time cycle safety.

The `EdgeEditor` is the mutable counterpart of `scpanel.graph.WorkflowGraph`:
edges are added one at a time and every insertion that would close a cycle
is rejected by a reachability search, so the editor never holds a cyclic
edge set.
"""

from __future__ import annotations

import dataclasses
import typing

from typing_extensions import Self

from scpanel import graph, paths
from scpanel.errors import EdgeRejectedError

if typing.TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = ["EdgeEditor"]


@dataclasses.dataclass
class EdgeEditor:
    """Mutable adjacency of a workflow under construction."""

    _names: dict[str, str] = dataclasses.field(default_factory=dict)
    _outgoing: dict[str, list[str]] = dataclasses.field(default_factory=dict)

    @classmethod
    def from_edges(
        cls: type[Self], edges: Iterable[graph.Edge], nodes: Iterable[str] = ()
    ) -> Self:
        """Start from a persisted edge list, dropping anything invalid."""
        editor = cls()
        for node in nodes:
            editor.add_node(node)
        editor.seed(edges)
        return editor

    @property
    def nodes(self: Self) -> list[str]:
        """Known nodes in the order they were added."""
        return list(self._names.values())

    @property
    def edges(self: Self) -> list[graph.Edge]:
        """Current edges, grouped by source."""
        return [
            graph.Edge(self._names[source], self._names[target])
            for source, targets in self._outgoing.items()
            for target in targets
        ]

    def add_node(self: Self, path: str) -> str:
        """Register a node, return its identity key."""
        key = paths.path_key(path)
        if key not in self._names:
            self._names[key] = paths.normalize_path(path)
            self._outgoing[key] = []
        return key

    def has_edge(self: Self, source: str, target: str) -> bool:
        """Check if 'target' directly depends on 'source'."""
        return paths.path_key(target) in self._outgoing.get(
            paths.path_key(source), []
        )

    def has_path(self: Self, start: str, goal: str) -> bool:
        """Depth first search from 'start' along outgoing edges for 'goal'."""
        goal_key = paths.path_key(goal)
        stack = [paths.path_key(start)]
        visited: set[str] = set()
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            if current == goal_key:
                return True
            stack.extend(self._outgoing.get(current, []))
        return False

    def would_create_cycle(self: Self, source: str, target: str) -> bool:
        """Adding source -> target closes a cycle iff target already reaches source."""
        return self.has_path(target, source)

    def insert_edge(self: Self, source: str, target: str) -> graph.Edge:
        """
        Add the dependency source -> target.

        Raises `EdgeRejectedError` for self-loops and for edges that would
        create a cycle. Inserting an existing edge changes nothing.
        """
        if not source.strip() or not target.strip():
            raise EdgeRejectedError(source, target, reason="missing node")
        if paths.same_path(source, target):
            raise EdgeRejectedError(
                source, target, reason="a script can not depend on itself"
            )
        if self.has_edge(source, target):
            return graph.Edge(self._name(source), self._name(target))
        if self.would_create_cycle(source, target):
            raise EdgeRejectedError(source, target, reason="this would create a cycle")
        source_key = self.add_node(source)
        target_key = self.add_node(target)
        self._outgoing[source_key].append(target_key)
        return graph.Edge(self._names[source_key], self._names[target_key])

    def remove_edge(self: Self, source: str, target: str) -> bool:
        """Remove an edge, return whether it existed."""
        if not self.has_edge(source, target):
            return False
        self._outgoing[paths.path_key(source)].remove(paths.path_key(target))
        return True

    def toggle_edge(self: Self, source: str, target: str) -> bool:
        """
        Remove the edge if present, insert it otherwise.

        Returns True if the edge exists afterwards.
        """
        if self.remove_edge(source, target):
            return False
        self.insert_edge(source, target)
        return True

    def clear(self: Self) -> None:
        """Remove all edges, keep the nodes."""
        for targets in self._outgoing.values():
            targets.clear()

    def clear_outgoing(self: Self, source: str) -> int:
        """Remove all edges starting at 'source', return how many."""
        targets = self._outgoing.get(paths.path_key(source), [])
        removed = len(targets)
        targets.clear()
        return removed

    def seed(self: Self, edges: Iterable[graph.Edge]) -> list[graph.Edge]:
        """
        Insert many edges, tolerating bad ones.

        Blank, self-looping and cycle closing edges are skipped and returned.
        """
        skipped = []
        for edge in edges:
            try:
                self.insert_edge(edge.source, edge.target)
            except EdgeRejectedError:
                skipped.append(edge)
        return skipped

    def snapshot(self: Self) -> graph.WorkflowGraph:
        """Freeze the current edges into a graph for preview or a run."""
        return graph.build(self.edges)

    def _name(self: Self, path: str) -> str:
        return self._names.get(paths.path_key(path), paths.normalize_path(path))
