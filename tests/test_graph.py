"""Test building, ordering and previewing workflow graphs."""

from __future__ import annotations

import pathlib

import pytest

from scpanel import graph
from scpanel.errors import CycleError


@pytest.fixture
def nodes(tmp_path: pathlib.Path) -> dict[str, str]:
    """Paths for x, y, z, w (the files need not exist)."""
    return {name: str(tmp_path / f"{name}.sh") for name in "xyzw"}


@pytest.fixture
def diamond_edges(nodes: dict[str, str]) -> list[graph.Edge]:
    """The edges x -> (y, z) -> w."""
    x, y, z, w = (nodes[name] for name in "xyzw")
    return [graph.Edge(x, y), graph.Edge(x, z), graph.Edge(y, w), graph.Edge(z, w)]


def test_build_adjacency(
    nodes: dict[str, str], diamond_edges: list[graph.Edge]
) -> None:
    """Incoming and outgoing lists mirror each other."""
    workflow = graph.build(diamond_edges)
    assert len(workflow) == 4
    assert workflow.roots == [nodes["x"]]
    assert workflow.outgoing[nodes["x"]] == (nodes["y"], nodes["z"])
    assert workflow.incoming[nodes["w"]] == (nodes["y"], nodes["z"])
    assert workflow.incoming[nodes["x"]] == ()
    assert sorted(workflow.edges, key=graph.Edge.key) == sorted(
        diamond_edges, key=graph.Edge.key
    )


def test_build_filters_malformed(nodes: dict[str, str]) -> None:
    """Blank ends, self-loops and duplicates never reach the graph."""
    x, y = nodes["x"], nodes["y"]
    workflow = graph.build(
        [
            graph.Edge(x, y),
            graph.Edge(x.upper(), y),
            graph.Edge(x, y),
            graph.Edge(x, ""),
            graph.Edge("  ", y),
            graph.Edge(y, y.upper()),
        ]
    )
    assert len(workflow) == 2
    assert len(workflow.edges) == 1
    assert workflow.find(y.upper()) == workflow.find(y)
    assert x.upper() in workflow


def test_build_ignores_input_order(diamond_edges: list[graph.Edge]) -> None:
    """The same edge set always gives the same graph."""
    shuffled = [diamond_edges[2], diamond_edges[0], diamond_edges[3], diamond_edges[1]]
    assert graph.build(diamond_edges) == graph.build(shuffled)
    assert graph.build(diamond_edges) == graph.build(reversed(diamond_edges))


def test_topological_order(
    nodes: dict[str, str], diamond_edges: list[graph.Edge]
) -> None:
    """Every edge points forward in the order."""
    order = graph.execution_order(graph.build(diamond_edges))
    assert order == [nodes[name] for name in "xyzw"]
    position = {node: i for i, node in enumerate(order)}
    for edge in diamond_edges:
        assert position[edge.source] < position[edge.target]


def test_cycle_detected(nodes: dict[str, str]) -> None:
    """A cycle leaves nodes out of the order and is refused."""
    x, y, z = nodes["x"], nodes["y"], nodes["z"]
    workflow = graph.build(
        [graph.Edge(z, x), graph.Edge(x, y), graph.Edge(y, x)]
    )
    assert graph.topological_order(workflow) == [z]
    assert not graph.is_acyclic(workflow)
    with pytest.raises(CycleError):
        graph.execution_order(workflow)
    with pytest.raises(CycleError):
        graph.stages(workflow)


def test_preview_cycle(nodes: dict[str, str]) -> None:
    """A cyclic workflow previews as a single invalid line."""
    x, y = nodes["x"], nodes["y"]
    steps = graph.preview(graph.build([graph.Edge(x, y), graph.Edge(y, x)]))
    assert [step.display for step in steps] == [graph.INVALID_PREVIEW]
    assert steps[0].display == "Invalid workflow: cycle detected."
    assert not steps[0].valid


def test_empty_graph() -> None:
    """Nothing to order is not an error here."""
    workflow = graph.build([])
    assert graph.is_acyclic(workflow)
    assert graph.execution_order(workflow) == []
    assert graph.preview(workflow) == []


def test_stages(nodes: dict[str, str], diamond_edges: list[graph.Edge]) -> None:
    """Y and Z can start together."""
    assert graph.stages(graph.build(diamond_edges)) == [
        [nodes["x"]],
        [nodes["y"], nodes["z"]],
        [nodes["w"]],
    ]


def test_preview(diamond_edges: list[graph.Edge]) -> None:
    """Preview lines are numbered and show the dependency count."""
    steps = graph.preview(graph.build(diamond_edges))
    assert [step.display for step in steps] == [
        "1. x  (depends on: 0)",
        "2. y  (depends on: 1)",
        "3. z  (depends on: 1)",
        "4. w  (depends on: 2)",
    ]


def test_preview_names(diamond_edges: list[graph.Edge]) -> None:
    """Catalog names replace file names when given."""
    steps = graph.preview(graph.build(diamond_edges), lambda path: path[-4:])
    assert steps[0].name == "x.sh"


def test_edges_from_chain(nodes: dict[str, str]) -> None:
    """Neighbours in a chain become edges, blanks are dropped."""
    x, y, z = nodes["x"], nodes["y"], nodes["z"]
    assert graph.edges_from_chain([x, y, z]) == [graph.Edge(x, y), graph.Edge(y, z)]
    assert graph.edges_from_chain([x]) == []
    assert graph.edges_from_chain([x, "", y]) == []


def test_to_networkx(diamond_edges: list[graph.Edge]) -> None:
    """The networkx view has the same shape."""
    dag = graph.build(diamond_edges).to_networkx()
    assert dag.number_of_nodes() == 4
    assert dag.number_of_edges() == 4
