"""The script catalog, the current workflow and saved workflow presets."""

from __future__ import annotations

import dataclasses
import pathlib
import typing

import cattrs
import yaml
from cattrs.preconf.pyyaml import make_converter
from typing_extensions import Self

from scpanel import paths
from scpanel.editor import EdgeEditor
from scpanel.errors import (
    EmptyWorkflowError,
    PresetExistsError,
    PresetNotFoundError,
    ScriptNotFoundError,
    WorkflowError,
)
from scpanel.graph import Edge, edges_from_chain, normalize_edges
from scpanel.scheduler import RunOptions

if typing.TYPE_CHECKING:
    from collections.abc import Callable, Iterable

__all__ = [
    "DEFAULT_MAX_PARALLEL",
    "Catalog",
    "CatalogState",
    "ScriptEntry",
    "WorkflowPreset",
    "dump_state",
    "load_state",
]

DEFAULT_MAX_PARALLEL = 2

CONVERTER = make_converter()


@dataclasses.dataclass
class ScriptEntry:
    """A script known to the catalog."""

    name: str = ""
    path: str = ""


@dataclasses.dataclass
class WorkflowPreset:
    """A named snapshot of a workflow and its run parameters."""

    name: str
    workflow_edges: list[Edge] = dataclasses.field(default_factory=list)
    stop_on_first_failure: bool = True
    max_parallel: int = DEFAULT_MAX_PARALLEL

    @property
    def options(self: Self) -> RunOptions:
        """Run parameters stored with this preset."""
        return RunOptions(
            stop_on_first_failure=self.stop_on_first_failure,
            max_parallel=self.max_parallel,
        )


@dataclasses.dataclass
class CatalogState:
    """Everything that is persisted between sessions."""

    scripts: list[ScriptEntry] = dataclasses.field(default_factory=list)
    workflow_edges: list[Edge] = dataclasses.field(default_factory=list)
    workflow_presets: list[WorkflowPreset] = dataclasses.field(default_factory=list)
    stop_on_first_failure: bool = True
    max_parallel: int = DEFAULT_MAX_PARALLEL

    @property
    def options(self: Self) -> RunOptions:
        """Current run parameters."""
        return RunOptions(
            stop_on_first_failure=self.stop_on_first_failure,
            max_parallel=self.max_parallel,
        )


def _normalize_scripts(scripts: Iterable[ScriptEntry]) -> list[ScriptEntry]:
    seen: set[str] = set()
    result = []
    for entry in scripts:
        if not entry.path.strip():
            continue
        normalized = paths.normalize_path(entry.path)
        if (key := paths.path_key(normalized)) in seen:
            continue
        seen.add(key)
        name = entry.name if entry.name.strip() else paths.display_name(normalized)
        result.append(ScriptEntry(name=name, path=normalized))
    return result


def _positive_or_default(value: int) -> int:
    return value if value > 0 else DEFAULT_MAX_PARALLEL


def _normalize_presets(presets: Iterable[WorkflowPreset]) -> list[WorkflowPreset]:
    seen: set[str] = set()
    result = []
    for preset in presets:
        name = preset.name.strip()
        if not name or name.casefold() in seen:
            continue
        seen.add(name.casefold())
        result.append(
            WorkflowPreset(
                name=name,
                workflow_edges=normalize_edges(preset.workflow_edges),
                stop_on_first_failure=preset.stop_on_first_failure,
                max_parallel=_positive_or_default(preset.max_parallel),
            )
        )
    return result


def normalize_state(state: CatalogState) -> CatalogState:
    """Clean up a state that was read from disk or edited by hand."""
    return CatalogState(
        scripts=_normalize_scripts(state.scripts),
        workflow_edges=normalize_edges(state.workflow_edges),
        workflow_presets=_normalize_presets(state.workflow_presets),
        stop_on_first_failure=state.stop_on_first_failure,
        max_parallel=_positive_or_default(state.max_parallel),
    )


def load_state(text: str) -> CatalogState:
    """
    Read a persisted state, never failing.

    Understands two legacy layouts: a plain list of scripts at the top level,
    and a 'chain_paths' list (a simple chain of scripts) instead of
    'workflow_edges'. Anything unreadable gives an empty state with defaults.
    """
    try:
        data = yaml.safe_load(text)
        match data:
            case None:
                return CatalogState()
            case list():
                scripts = CONVERTER.structure(data, list[ScriptEntry])
                return normalize_state(CatalogState(scripts=scripts))
            case dict():
                if data.get("workflow_edges") is None:
                    data["workflow_edges"] = CONVERTER.unstructure(
                        edges_from_chain(data.get("chain_paths") or [])
                    )
                return normalize_state(CONVERTER.structure(data, CatalogState))
            case _:
                return CatalogState()
    except (
        yaml.YAMLError,
        cattrs.BaseValidationError,
        AttributeError,
        KeyError,
        TypeError,
        ValueError,
    ):
        return CatalogState()


def dump_state(state: CatalogState) -> str:
    """Serialize a state, keeping the order of scripts, edges and presets."""
    return CONVERTER.dumps(state, sort_keys=False)


@dataclasses.dataclass
class Catalog:
    """File backed catalog of scripts and workflows."""

    path: pathlib.Path

    @property
    def state(self: Self) -> CatalogState:
        """Read the state from file."""
        if not self.path.exists():
            return CatalogState()
        return load_state(self.path.read_text(encoding="utf-8"))

    @state.setter
    def state(self: Self, state: CatalogState) -> None:
        """Store the state to file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(dump_state(state), encoding="utf-8")

    @property
    def scripts(self: Self) -> list[ScriptEntry]:
        """All known scripts."""
        return self.state.scripts

    @property
    def edges(self: Self) -> list[Edge]:
        """The current workflow."""
        return self.state.workflow_edges

    @property
    def presets(self: Self) -> list[WorkflowPreset]:
        """All saved presets."""
        return self.state.workflow_presets

    @property
    def options(self: Self) -> RunOptions:
        """Current run parameters."""
        return self.state.options

    def find_script(self: Self, ref: str) -> ScriptEntry | None:
        """Find a script by path or, failing that, by name (ignoring case)."""
        scripts = self.scripts
        key = paths.path_key(ref)
        for entry in scripts:
            if paths.path_key(entry.path) == key:
                return entry
        for entry in scripts:
            if entry.name.casefold() == ref.strip().casefold():
                return entry
        return None

    def require_script(self: Self, ref: str) -> ScriptEntry:
        """Find a script or raise `ScriptNotFoundError`."""
        if (entry := self.find_script(ref)) is None:
            raise ScriptNotFoundError(ref)
        return entry

    def name_of(self: Self, path: str) -> str:
        """Catalog name of a script path, derived from the file name if unknown."""
        return self.namer()(path)

    def namer(self: Self) -> Callable[[str], str]:
        """Name lookup over a snapshot of the scripts, for use during a run."""
        names = {paths.path_key(entry.path): entry.name for entry in self.scripts}

        def name_of(path: str) -> str:
            return names.get(paths.path_key(path)) or paths.display_name(path)

        return name_of

    def add_script(self: Self, path: str, name: str | None = None) -> ScriptEntry:
        """Add a script, or return the existing entry for the same path."""
        state = self.state
        normalized = paths.normalize_path(path)
        for entry in state.scripts:
            if paths.same_path(entry.path, normalized):
                return entry
        entry = ScriptEntry(
            name=name or paths.display_name(normalized), path=normalized
        )
        state.scripts.append(entry)
        self.state = state
        return entry

    def remove_script(self: Self, ref: str) -> ScriptEntry:
        """Remove a script and every workflow link touching it."""
        entry = self.require_script(ref)
        state = self.state
        state.scripts = [
            i for i in state.scripts if not paths.same_path(i.path, entry.path)
        ]
        state.workflow_edges = [
            edge
            for edge in state.workflow_edges
            if not paths.same_path(edge.source, entry.path)
            and not paths.same_path(edge.target, entry.path)
        ]
        self.state = state
        return entry

    def change_path(self: Self, ref: str, new_path: str) -> ScriptEntry:
        """Point a script at another file, carrying its workflow links along."""
        old = self.require_script(ref)
        normalized = paths.normalize_path(new_path)
        state = self.state
        updated = ScriptEntry(name=paths.display_name(normalized), path=normalized)
        state.scripts = [
            updated if paths.same_path(i.path, old.path) else i for i in state.scripts
        ]

        def moved(end: str) -> str:
            return normalized if paths.same_path(end, old.path) else end

        state.workflow_edges = [
            Edge(moved(edge.source), moved(edge.target))
            for edge in state.workflow_edges
        ]
        self.state = normalize_state(state)
        return updated

    def editor(self: Self) -> EdgeEditor:
        """Editor holding the current workflow and all catalog scripts."""
        state = self.state
        return EdgeEditor.from_edges(
            state.workflow_edges, nodes=[entry.path for entry in state.scripts]
        )

    def set_edges(self: Self, edges: Iterable[Edge]) -> None:
        """Replace the current workflow."""
        state = self.state
        state.workflow_edges = normalize_edges(edges)
        self.state = state

    def clear_workflow(self: Self) -> None:
        """Remove every workflow link."""
        self.set_edges([])

    def set_options(
        self: Self,
        *,
        stop_on_first_failure: bool | None = None,
        max_parallel: int | None = None,
    ) -> RunOptions:
        """Change the current run parameters, return the result."""
        state = self.state
        if stop_on_first_failure is not None:
            state.stop_on_first_failure = stop_on_first_failure
        if max_parallel is not None:
            state.max_parallel = RunOptions(max_parallel=max_parallel).max_parallel
        self.state = state
        return state.options

    def find_preset(self: Self, name: str) -> WorkflowPreset | None:
        """Look up a preset by name, ignoring case."""
        for preset in self.presets:
            if preset.name.casefold() == name.strip().casefold():
                return preset
        return None

    def save_preset(self: Self, name: str, *, overwrite: bool = False) -> WorkflowPreset:
        """
        Save the current workflow and run parameters under 'name'.

        An existing preset with the same name (ignoring case) is only replaced
        with 'overwrite', and keeps its original spelling.
        """
        if not name.strip():
            msg = "Enter a preset name."
            raise WorkflowError(msg)
        state = self.state
        if not state.workflow_edges:
            msg = "Create workflow links first, then save a preset."
            raise EmptyWorkflowError(msg)
        preset = WorkflowPreset(
            name=name.strip(),
            workflow_edges=list(state.workflow_edges),
            stop_on_first_failure=state.stop_on_first_failure,
            max_parallel=state.max_parallel,
        )
        for i, existing in enumerate(state.workflow_presets):
            if existing.name.casefold() == preset.name.casefold():
                if not overwrite:
                    raise PresetExistsError(existing.name)
                preset.name = existing.name
                state.workflow_presets[i] = preset
                break
        else:
            state.workflow_presets.append(preset)
        self.state = state
        return preset

    def load_preset(self: Self, name: str) -> WorkflowPreset:
        """Make a preset the current workflow, including its run parameters."""
        if (preset := self.find_preset(name)) is None:
            raise PresetNotFoundError(name)
        state = self.state
        state.workflow_edges = list(preset.workflow_edges)
        state.stop_on_first_failure = preset.stop_on_first_failure
        state.max_parallel = preset.max_parallel
        self.state = state
        return preset

    def delete_preset(self: Self, name: str) -> WorkflowPreset:
        """Forget a preset."""
        if (preset := self.find_preset(name)) is None:
            raise PresetNotFoundError(name)
        state = self.state
        state.workflow_presets = [
            i
            for i in state.workflow_presets
            if i.name.casefold() != preset.name.casefold()
        ]
        self.state = state
        return preset
