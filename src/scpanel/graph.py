"""
Workflow graph model.

A workflow is a set of directed edges between script paths. Each run (or
preview) builds a fresh, read-only `WorkflowGraph` from the current edge
set with `build`; the editor and the catalog are the only places where
edges change.
"""

from __future__ import annotations

import collections
import dataclasses
import typing

import networkx as nx
from typing_extensions import Self

from scpanel import paths
from scpanel.errors import CycleError

if typing.TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Mapping

__all__ = [
    "INVALID_PREVIEW",
    "Edge",
    "PreviewStep",
    "WorkflowGraph",
    "build",
    "edges_from_chain",
    "execution_order",
    "is_acyclic",
    "normalize_edges",
    "preview",
    "stages",
    "topological_order",
]

INVALID_PREVIEW = "Invalid workflow: cycle detected."


@dataclasses.dataclass(frozen=True)
class Edge:
    """'source' must complete successfully before 'target' may start."""

    source: str
    target: str

    @property
    def is_blank(self: Self) -> bool:
        """Either end is missing."""
        return not self.source.strip() or not self.target.strip()

    @property
    def is_self_loop(self: Self) -> bool:
        """Both ends identify the same node."""
        return paths.same_path(self.source, self.target)

    def key(self: Self) -> tuple[str, str]:
        """Case-insensitive identity of the edge."""
        return (paths.path_key(self.source), paths.path_key(self.target))

    def normalized(self: Self) -> Edge:
        """Copy with both ends normalized."""
        return Edge(paths.normalize_path(self.source), paths.normalize_path(self.target))


@dataclasses.dataclass(frozen=True)
class WorkflowGraph:
    """Nodes and adjacency of a workflow, immutable for the duration of a run."""

    nodes: tuple[str, ...]
    incoming: Mapping[str, tuple[str, ...]]
    outgoing: Mapping[str, tuple[str, ...]]

    def __len__(self: Self) -> int:
        return len(self.nodes)

    def __iter__(self: Self) -> Iterator[str]:
        return iter(self.nodes)

    def __contains__(self: Self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return self.find(path) is not None

    @property
    def edges(self: Self) -> list[Edge]:
        """All edges, grouped by source in node order."""
        return [
            Edge(source, target)
            for source in self.nodes
            for target in self.outgoing[source]
        ]

    @property
    def roots(self: Self) -> list[str]:
        """Nodes without dependencies."""
        return [node for node in self.nodes if not self.incoming[node]]

    def find(self: Self, path: str) -> str | None:
        """Look up the node spelling for a path, ignoring case."""
        key = paths.path_key(path)
        for node in self.nodes:
            if paths.path_key(node) == key:
                return node
        return None

    def to_networkx(self: Self) -> nx.DiGraph:
        """Convert to a networkx digraph (for analysis, never for running)."""
        dag = nx.DiGraph()
        dag.add_nodes_from(self.nodes)
        dag.add_edges_from((edge.source, edge.target) for edge in self.edges)
        return dag


def normalize_edges(edges: Iterable[Edge]) -> list[Edge]:
    """
    Clean up an edge list the way the editor and the catalog expect it.

    Drops edges with a blank end and self-loops, normalizes paths and removes
    case-insensitive duplicates. The first occurrence wins, order is kept.
    """
    seen: set[tuple[str, str]] = set()
    result = []
    for edge in edges:
        if edge.is_blank or edge.is_self_loop:
            continue
        if (key := edge.key()) in seen:
            continue
        seen.add(key)
        result.append(edge.normalized())
    return result


def build(edges: Iterable[Edge]) -> WorkflowGraph:
    """
    Build the graph for a run from an arbitrary edge list.

    Malformed input (blank ends, self-loops, duplicates) is filtered rather
    than rejected. The result does not depend on the order of the input:
    nodes and adjacency lists are sorted by identity and every node is
    spelled the same way no matter which duplicate came first.
    """
    spelling: dict[str, str] = {}
    pairs: set[tuple[str, str]] = set()
    for raw in edges:
        if raw.is_blank or raw.is_self_loop:
            continue
        edge = raw.normalized()
        for end in (edge.source, edge.target):
            key = paths.path_key(end)
            if key not in spelling or end < spelling[key]:
                spelling[key] = end
        pairs.add(edge.key())

    order = sorted(spelling)
    incoming: dict[str, list[str]] = {spelling[key]: [] for key in order}
    outgoing: dict[str, list[str]] = {spelling[key]: [] for key in order}
    for source_key, target_key in sorted(pairs):
        source, target = spelling[source_key], spelling[target_key]
        outgoing[source].append(target)
        incoming[target].append(source)

    return WorkflowGraph(
        nodes=tuple(spelling[key] for key in order),
        incoming={node: tuple(deps) for node, deps in incoming.items()},
        outgoing={node: tuple(succ) for node, succ in outgoing.items()},
    )


def edges_from_chain(chain: Iterable[str]) -> list[Edge]:
    """Turn a flat ordered list of paths into edges between neighbours."""
    items = list(chain)
    return [
        Edge(paths.normalize_path(first), paths.normalize_path(second))
        for first, second in zip(items, items[1:])
        if first.strip() and second.strip()
    ]


def topological_order(graph: WorkflowGraph) -> list[str]:
    """
    Linearize the graph with Kahn's algorithm.

    If the result is shorter than the graph, the graph has a cycle and the
    result must not be used as an order.
    """
    indegree = {node: len(graph.incoming[node]) for node in graph.nodes}
    queue = collections.deque(node for node in graph.nodes if indegree[node] == 0)
    ordered = []
    while queue:
        node = queue.popleft()
        ordered.append(node)
        for child in graph.outgoing[node]:
            indegree[child] -= 1
            if indegree[child] == 0:
                queue.append(child)
    return ordered


def is_acyclic(graph: WorkflowGraph) -> bool:
    """Check the graph can be run at all."""
    return len(topological_order(graph)) == len(graph)


def execution_order(graph: WorkflowGraph) -> list[str]:
    """Complete order of the nodes, never a partial one."""
    ordered = topological_order(graph)
    if len(ordered) != len(graph):
        raise CycleError
    return ordered


def stages(graph: WorkflowGraph) -> list[list[str]]:
    """
    Group nodes into generations that could start together.

    With unlimited parallelism every generation starts once the previous one
    succeeded.
    """
    if not is_acyclic(graph):
        raise CycleError
    return [
        sorted(generation, key=paths.path_key)
        for generation in nx.topological_generations(graph.to_networkx())
    ]


@dataclasses.dataclass(frozen=True)
class PreviewStep:
    """One line of the execution preview."""

    position: int
    path: str
    name: str
    depends_on: int
    valid: bool = True

    @classmethod
    def invalid(cls: type[Self]) -> Self:
        """The single line standing in for a cyclic workflow."""
        return cls(position=0, path="", name="", depends_on=0, valid=False)

    @property
    def display(self: Self) -> str:
        if not self.valid:
            return INVALID_PREVIEW
        return f"{self.position}. {self.name}  (depends on: {self.depends_on})"


def preview(
    graph: WorkflowGraph, name_of: Callable[[str], str] = paths.display_name
) -> list[PreviewStep]:
    """
    Numbered execution preview, empty for an empty graph.

    A cyclic graph has no order and previews as one invalid step.
    """
    if not is_acyclic(graph):
        return [PreviewStep.invalid()]
    return [
        PreviewStep(
            position=i,
            path=node,
            name=name_of(node),
            depends_on=len(graph.incoming[node]),
        )
        for i, node in enumerate(execution_order(graph), start=1)
    ]
