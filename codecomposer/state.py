"""State models for the composer workflow graph."""

import uuid
from typing import Any, Optional

from pydantic import BaseModel, Field, TypeAdapter, model_validator
from typing_extensions import TypedDict

from codecomposer.constants import EMPTY_DIFF


class FileMetadata(BaseModel):
    """One file touched by a composition run.

    Attributes:
        id: Stable identifier for the record within its run
        path: Workspace-relative (or absolute) canonical path
        original: Content captured at first read ("" when the file is new)
        existed: Whether the file was on disk when original was captured
        code: Proposed full content (None until the writer produced it)
        diff: "+additions,-deletions" derived from original and code
        description: One-line explanation of the change
        language: Language reported by the writer
        dependencies: New packages this file needs
        accepted: True once written to disk
        rejected: True once discarded
        problems: Findings from verification
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    path: str
    original: str = ""
    existed: bool = False
    code: Optional[str] = None
    diff: str = EMPTY_DIFF
    description: str = ""
    language: str = ""
    dependencies: list[str] = Field(default_factory=list)
    accepted: Optional[bool] = None
    rejected: Optional[bool] = None
    problems: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _single_decision(self) -> "FileMetadata":
        if self.accepted and self.rejected:
            raise ValueError(f"{self.path} cannot be both accepted and rejected")
        return self

    @property
    def has_code(self) -> bool:
        return bool(self.code)

    @property
    def is_decided(self) -> bool:
        return bool(self.accepted or self.rejected)


class RunError(BaseModel):
    """Terminal or recoverable error recorded on a run."""

    message: str
    node: Optional[str] = None
    fatal: bool = True


class PlanExecuteState(TypedDict, total=False):
    """The state object passed through the composer workflow.

    Attributes:
        messages: Chronological role-tagged conversation entries
        files: Path -> FileMetadata, one record per path
        dependencies: New package names proposed in this run (deduplicated)
        project_details: Free-text project description, fetched once per run
        implementation_plan: Latest plan text from the planner
        error: Set when the run ended abnormally
        route: Next node chosen by the graph driver
        replans: Number of write -> find recoveries in this run
        node: Graph node or host operation that produced this snapshot
    """

    messages: list[dict[str, Any]]
    files: dict[str, FileMetadata]
    dependencies: list[str]
    project_details: Optional[str]
    implementation_plan: Optional[str]
    error: Optional[RunError]
    route: Optional[str]
    replans: int
    node: Optional[str]


STATE_KEYS = frozenset(PlanExecuteState.__annotations__)

_state_adapter = TypeAdapter(PlanExecuteState)


def fresh_state() -> PlanExecuteState:
    """Return an empty state for a new thread (or a cleared one)."""
    return PlanExecuteState(
        messages=[],
        files={},
        dependencies=[],
        project_details=None,
        implementation_plan=None,
        error=None,
        route=None,
        replans=0,
        node=None,
    )


def dump_state(state: PlanExecuteState) -> dict[str, Any]:
    """Serialize a state into JSON-safe primitives."""
    return _state_adapter.dump_python(state, mode="json")


def load_state(data: dict[str, Any]) -> PlanExecuteState:
    """Rebuild a state from dump_state() output, filling missing keys."""
    state = fresh_state()
    state.update(_state_adapter.validate_python(data or {}))
    return state


def merge_patch(state: PlanExecuteState, patch: dict[str, Any]) -> PlanExecuteState:
    """Shallow per-field merge of a node's patch into a new state."""
    merged = dict(state)
    merged.update({key: value for key, value in patch.items() if key in STATE_KEYS})
    return PlanExecuteState(**merged)


def merge_dependencies(existing: list[str], new: list[str]) -> list[str]:
    """Union two dependency lists, keeping first-seen order."""
    merged = list(existing)
    for dep in new:
        if dep and dep not in merged:
            merged.append(dep)
    return merged
