"""Pytest configuration and fixtures."""

import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from codecomposer.agents.base import RunContext
from codecomposer.checkpoint import CHECKPOINT_DB, open_checkpointer
from codecomposer.config import Config
from codecomposer.graph import ComposerGraph
from codecomposer.utils.ignore import IgnoreRules


class FakeLLM:
    """Scripted stand-in for LLM.

    completions are returned by complete() in order ({"content": ""} once
    exhausted); each stream() call consumes the next list of chunks.
    """

    def __init__(self):
        self.completions: list[dict[str, Any]] = []
        self.streams: list[list[str]] = []
        self.complete_calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []
        self.on_chunk: Optional[Callable[[int, str], None]] = None

    def complete(self, messages, tools=None, temperature=None, max_tokens=None):
        self.complete_calls.append({"messages": list(messages), "tools": tools})
        if self.completions:
            return self.completions.pop(0)
        return {"role": "assistant", "content": ""}

    def stream(self, messages, tools=None, temperature=None, max_tokens=None):
        self.stream_calls.append({"messages": list(messages), "tools": tools})
        chunks = self.streams.pop(0) if self.streams else []
        for index, chunk in enumerate(chunks):
            if self.on_chunk:
                self.on_chunk(index, chunk)
            yield chunk


class Recorder:
    """Collects (kind, payload) notifications emitted by agents."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def __call__(self, kind: str, payload: dict) -> None:
        self.events.append((kind, payload))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]


def make_file_block(
    path: str,
    code: str,
    language: str = "python",
    description: str = "Update file",
    dependencies: str = "No new dependencies",
) -> str:
    return (
        "===FILE_START===\n"
        f"Path: {path}\n"
        f"Language: {language}\n"
        f"Description: {description}\n"
        f"Dependencies: {dependencies}\n"
        "Code:\n"
        f"{code}\n"
        "===FILE_END==="
    )


def make_plan(files: list[tuple[str, str]], dependencies: Optional[list[str]] = None) -> str:
    lines = [
        "Sure, here is the plan.",
        "",
        "### Implementation Plan",
        "1. Make the change.",
        "",
        "### Required File Changes",
    ]
    for path, analysis in files:
        lines.append(f"- File: `{path}`")
        lines.append(f"- Analysis: {analysis}")
    if dependencies:
        lines.append("")
        lines.append("### New Dependencies")
        lines.extend(f"- `{dep}`" for dep in dependencies)
    lines.append("")
    lines.append("Would you like me to proceed with these changes?")
    return "\n".join(lines)


def chunked(text: str, size: int = 7) -> list[str]:
    return [text[i:i + size] for i in range(0, len(text), size)]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_project(temp_dir):
    """Create a test project structure."""
    workspace = temp_dir / "workspace"
    workspace.mkdir()

    # Create some files
    (workspace / "src").mkdir()
    (workspace / "src" / "main.py").write_text("def hello():\n    return 'world'\n")
    (workspace / "src" / "utils.py").write_text("def add(a, b):\n    return a + b\n")

    (workspace / "tests").mkdir()
    (workspace / "tests" / "test_main.py").write_text(
        "def test_hello():\n    from src.main import hello\n    assert hello() == 'world'\n"
    )

    (workspace / "README.md").write_text("# Test Project\n")

    yield workspace


@pytest.fixture
def state_dir(temp_dir):
    """Checkpoint directory kept outside the workspace."""
    path = temp_dir / "state"
    path.mkdir()
    return path


@pytest.fixture
def mock_config(state_dir):
    """Create a mock configuration."""
    return Config(
        anthropic_api_key="test_key",
        default_model="anthropic:claude-sonnet-4-5",
        checkpoint_dir=state_dir,
    )


@pytest.fixture
def ignore_rules(test_project):
    """Create ignore rules for the test project."""
    return IgnoreRules(test_project)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def run_context(recorder):
    return RunContext(thread_id="thread-1", emit=recorder)


@pytest.fixture
def checkpointer(state_dir):
    """SQLite checkpointer in the state directory."""
    saver = open_checkpointer(state_dir / CHECKPOINT_DB)
    yield saver
    saver.conn.close()


@pytest.fixture
def graph(test_project, fake_llm, checkpointer, mock_config):
    return ComposerGraph(test_project, fake_llm, checkpointer, mock_config)
