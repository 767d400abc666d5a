"""Find/Plan agent: grounds a request in the workspace and names target files."""

import logging
from typing import Any, Generator, Optional

from codecomposer.agents.base import Continue, NodeResult, RunContext, format_messages
from codecomposer.constants import (
    DEFAULT_SCAN_DEPTH,
    EVENT_ERROR,
    EVENT_MESSAGE_FINISH,
    EVENT_MESSAGE_STREAM,
    MAX_TOOL_ITERATIONS,
    PROJECT_DETAIL_FILES,
    PROJECT_DETAILS_MAX_CHARS,
)
from codecomposer.llm import LLM
from codecomposer.parsing import PlanParser
from codecomposer.records import FileRecords
from codecomposer.state import FileMetadata, PlanExecuteState
from codecomposer.tools.bindings import ToolBox
from codecomposer.tools.file_index import FileEntry, FileIndex
from codecomposer.tools.read_write import ReadWrite

logger = logging.getLogger(__name__)

PLANNER_PROMPT = """You are a seasoned software architect and technical lead.
Analyze the codebase and write a concise, high-level, end-to-end implementation plan for the user's request. Be professional, succinct and conversational.

You have access to these tools:
- semantic_search_codebase: find code relevant to a topic.
- read_file: read the exact contents of a file. Use it for dependency manifests (package.json, pyproject.toml, requirements.txt), configuration files, or files you already know the path to.

Always gather information with the tools before recommending anything. Never assume a dependency is available: read the dependency manifests before suggesting a new one, and never suggest a dependency the project already has.

**Project Details:**
{project_details}

**Rules:**
1. Do not write code or give code examples.
2. Do not mention tool names to the user.
3. Do not repeat yourself.

**RESPONSE FORMAT (follow exactly):**
[Brief acknowledgment of the request]

### Implementation Plan
[Numbered list of technical steps]

### Required File Changes
- File: `[exact file path]`
- Analysis: [single line description of the change]

### New Dependencies
- [package-name]@[version]

Format rules:
1. Every file that must be created or modified appears under "### Required File Changes".
2. File and Analysis go on separate lines, the path in backticks, the analysis on one line.
3. No nested lists and no empty lines between entries.
4. Only include "### New Dependencies" when verified new dependencies are needed, names only.

----

**Files previously worked on or provided by the user (investigate these first):**
{active_files}

----

**Workspace Files:**
{workspace_files}"""

PLANNER_REQUEST = """Use the following conversation, sorted oldest to newest, to guide your plan.
Focus on the latest ask, but use the whole conversation as context: I might be building on a previous plan.
Don't be too eager to choose files based on older or out of context asks.

Conversation:
{conversation}"""


class PlannerAgent:
    """Produces an implementation plan and the set of files to change."""

    def __init__(
        self,
        llm: LLM,
        toolbox: ToolBox,
        file_index: FileIndex,
        read_write: ReadWrite,
        scan_depth: int = DEFAULT_SCAN_DEPTH,
        max_tool_iterations: int = MAX_TOOL_ITERATIONS,
    ):
        """Initialize the planner.

        Args:
            llm: Model client
            toolbox: read_file / semantic_search_codebase bindings
            file_index: Workspace listing
            read_write: Workspace file access
            scan_depth: Directory depth of the workspace listing
            max_tool_iterations: Tool-calling rounds before the final answer
        """
        self.llm = llm
        self.toolbox = toolbox
        self.file_index = file_index
        self.read_write = read_write
        self.scan_depth = scan_depth
        self.max_tool_iterations = max_tool_iterations

    def invoke(self, state: PlanExecuteState, ctx: RunContext) -> NodeResult:
        """Run one planning pass.

        Model and tool errors are not caught here; the graph driver turns
        them into a fatal run error.

        Args:
            state: Current conversation state
            ctx: Run context

        Returns:
            Continue with messages, files, dependencies, plan and project details
        """
        entries = self.file_index.scan(self.scan_depth)
        logger.debug(self.file_index.summarize(entries))
        project_details = state.get("project_details") or self.load_project_details()
        messages = self._prepare_messages(state, entries, project_details)

        parser = PlanParser()
        buffer = ""
        for chunk in self._generate(messages, ctx):
            ctx.check_cancelled()
            buffer += chunk
            parser.feed(chunk)
            ctx.emit(EVENT_MESSAGE_STREAM, {"content": buffer})
        parser.finish()

        conversation = list(state.get("messages") or [])
        conversation.append({"role": "assistant", "content": buffer})
        ctx.emit(EVENT_MESSAGE_FINISH, {"messages": conversation})

        records = FileRecords()
        for change in parser.files.values():
            path = self.read_write.relative(change.path)
            existed, original, error = self.read_write.snapshot(path)
            if original is None:
                # Every targeted file needs a restorable snapshot
                logger.warning("Not targeting %s in thread %s: %s", path, ctx.thread_id, error)
                ctx.emit(EVENT_ERROR, {"error": f"Cannot edit {path}: {error}"})
                continue
            records.add_if_absent(FileMetadata(
                path=path,
                description=change.analysis,
                original=original,
                existed=existed,
            ))

        logger.info(
            "Plan for thread %s targets %d file(s), %d new dependencies",
            ctx.thread_id, len(records), len(parser.dependencies),
        )

        return Continue({
            "messages": conversation,
            "files": records.to_dict(),
            "dependencies": list(parser.dependencies),
            "implementation_plan": buffer,
            "project_details": project_details,
            "error": None,
        })

    def load_project_details(self) -> str:
        """Read the project description from AGENTS.md or README.md."""
        for filename in PROJECT_DETAIL_FILES:
            success, content, _ = self.read_write.read(filename)
            if success and content.strip():
                return content.strip()[:PROJECT_DETAILS_MAX_CHARS]
        return "Not available."

    def _generate(
        self, messages: list[dict[str, Any]], ctx: RunContext
    ) -> Generator[str, None, None]:
        """Tool-calling rounds followed by the streamed final answer."""
        tools = self.toolbox.get_tools()
        used_tools = False

        for _ in range(self.max_tool_iterations):
            ctx.check_cancelled()
            response = self.llm.complete(messages, tools=tools)

            if not response.get("tool_calls"):
                break

            tool_results = {}
            for tool_call in response["tool_calls"]:
                logger.debug("Planner calling %s(%s)", tool_call["name"], tool_call["arguments"])
                tool_results[tool_call["id"]] = self.toolbox.execute(
                    tool_call["name"], tool_call["arguments"]
                )

            self._add_tool_results_to_messages(messages, response, tool_results)
            used_tools = True

        # Re-run to stream the final answer; tool definitions must accompany tool blocks
        yield from self.llm.stream(messages, tools=tools if used_tools else None)

    def _add_tool_results_to_messages(
        self,
        messages: list[dict[str, Any]],
        response: dict[str, Any],
        tool_results: dict[str, str],
    ) -> None:
        """Append an assistant tool_use turn and the matching tool_result turn."""
        content = []
        if response.get("content"):
            content.append({"type": "text", "text": response["content"]})

        for tool_call in response["tool_calls"]:
            content.append({
                "type": "tool_use",
                "id": tool_call["id"],
                "name": tool_call["name"],
                "input": tool_call["arguments"] if isinstance(tool_call["arguments"], dict) else {},
            })

        messages.append({"role": "assistant", "content": content})
        messages.append({
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": tool_call["id"],
                    "content": tool_results[tool_call["id"]],
                }
                for tool_call in response["tool_calls"]
            ],
        })

    def _prepare_messages(
        self,
        state: PlanExecuteState,
        entries: list[FileEntry],
        project_details: Optional[str],
    ) -> list[dict[str, Any]]:
        conversation = state.get("messages") or []

        active = list((state.get("files") or {}).keys())
        for message in conversation:
            for path in message.get("context_files") or []:
                if path not in active:
                    active.append(path)

        system = PLANNER_PROMPT.format(
            project_details=project_details or "Not available.",
            active_files="\n".join(f"- {path}" for path in active) or "None",
            workspace_files="\n".join(f"- {entry.path}" for entry in entries) or "None",
        )

        return [
            {"role": "system", "content": system},
            {"role": "user", "content": PLANNER_REQUEST.format(
                conversation=format_messages(conversation)
            )},
        ]
