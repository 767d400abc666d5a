"""Result types and run context shared by the agent nodes."""

from dataclasses import dataclass, field
from typing import Any, Callable, Union

from codecomposer.errors import CompositionCancelled

Emit = Callable[[str, dict[str, Any]], None]


@dataclass
class Continue:
    """Advance along the node's default edge after merging patch."""

    patch: dict[str, Any] = field(default_factory=dict)


@dataclass
class Redirect:
    """Jump to a named node (the write -> find recovery edge)."""

    node: str
    patch: dict[str, Any] = field(default_factory=dict)
    reason: str = ""


@dataclass
class Fatal:
    """End the run with an error."""

    error: str


NodeResult = Union[Continue, Redirect, Fatal]


def _discard(kind: str, payload: dict[str, Any]) -> None:
    pass


def _never() -> bool:
    return False


@dataclass
class RunContext:
    """Per-run collaborators handed to every agent.

    Attributes:
        thread_id: Thread the run belongs to
        emit: Pushes a (kind, payload) notification to the host
        cancelled: Returns True once the run was cancelled
    """

    thread_id: str
    emit: Emit = _discard
    cancelled: Callable[[], bool] = _never

    def check_cancelled(self) -> None:
        """Raise CompositionCancelled if the run was cancelled."""
        if self.cancelled():
            raise CompositionCancelled(self.thread_id)


def format_messages(messages: list[dict[str, Any]]) -> str:
    """Render a conversation oldest to newest as plain text for prompts."""
    lines = []
    for message in messages:
        content = message.get("content", "")
        if not isinstance(content, str):
            # Structured blocks: keep only text parts
            content = "\n".join(
                block.get("text", "") for block in content
                if isinstance(block, dict) and block.get("type") == "text"
            )
        if not content:
            continue
        role = message.get("role", "user").capitalize()
        lines.append(f"{role}: {content}")
    return "\n\n".join(lines)
