"""Write agent: streams a full rewrite of each target file, one at a time."""

import logging
from typing import Any, Optional

from codecomposer.agents.base import Continue, NodeResult, Redirect, RunContext, format_messages
from codecomposer.constants import EVENT_ERROR, EVENT_FILES, FILE_SEPARATOR
from codecomposer.errors import GenerationError, NoFilesChangedError
from codecomposer.llm import LLM
from codecomposer.parsing import FileBlockParser
from codecomposer.records import FileRecords
from codecomposer.state import FileMetadata, PlanExecuteState, RunError, merge_dependencies
from codecomposer.tools.read_write import ReadWrite
from codecomposer.utils.git import GitSnapshot

logger = logging.getLogger(__name__)

WRITER_PROMPT = """You are a senior software developer focused on writing clean, maintainable code.

STRICT OUTPUT FORMAT:
===FILE_START===
Path: [Full file path]
Language: [Programming language]
Description: [One line description of changes]
Dependencies: [Comma separated new dependencies, or "No new dependencies"]
Code:
[Complete file code]
===FILE_END===

Validation rules:
1. The file block contains exactly the fields Path, Language, Description, Dependencies and Code.
2. Path is the full file path you were given.
3. Description is a single line.
4. Code is the complete, working file; never a fragment or a diff.
5. No explanatory text outside the file block.

Principles:
1. Write simple, readable code that follows the existing patterns and conventions.
2. Make minimal, focused changes; keep existing code and comments unless the change requires removing them.
3. Handle errors and edge cases, and keep imports and exports consistent with the other files.
{rules}
------

Project details:
{project_details}

------

Previous conversation and latest request:
{request}

------

Files available to create or modify:
{available_files}

{processed_files}"""

CURRENT_FILE = """Current file:
File:
{path}

Code (blank if it must be created):
{code}"""


class CodeWriter:
    """Generates code for the planner's target files sequentially.

    Each file gets its own prompt and parser; later prompts list the files
    already written in this run.
    """

    def __init__(
        self,
        llm: LLM,
        read_write: ReadWrite,
        git: Optional[GitSnapshot] = None,
        rules: Optional[list[str]] = None,
    ):
        """Initialize the writer.

        Args:
            llm: Model client (timeout and retries fixed on the client)
            read_write: Workspace file access
            git: Optional HEAD snapshot used as a diff baseline
            rules: Extra project rules appended to the prompt
        """
        self.llm = llm
        self.read_write = read_write
        self.git = git
        self.rules = rules or []

    def invoke(self, state: PlanExecuteState, ctx: RunContext) -> NodeResult:
        """Write every target file.

        Args:
            state: Current conversation state (files hold the placeholders)
            ctx: Run context

        Returns:
            Continue with updated files and dependencies, or Redirect to
            "find" when a generation failed or nothing was produced
        """
        records = FileRecords(state.get("files"))
        dependencies = list(state.get("dependencies") or [])
        request = format_messages(state.get("messages") or [])
        produced: list[FileMetadata] = []

        for path in records.paths():
            ctx.check_cancelled()
            target = records.get(path)
            messages = self._build_messages(state, records, target, produced, request)
            parser = FileBlockParser(self.read_write.project_root, self.git)

            for chunk in self.llm.stream(messages):
                ctx.check_cancelled()
                parsed = parser.parse(chunk)
                if parsed is None:
                    continue

                if not parsed.code:
                    error = GenerationError(parsed.path or path)
                    logger.warning("Empty code block for %s, re-planning", parsed.path or path)
                    ctx.emit(EVENT_ERROR, {"error": str(error)})
                    return Redirect(
                        "find",
                        {"error": RunError(message=str(error), node="write", fatal=False)},
                        reason=str(error),
                    )

                canonical = self.read_write.relative(parsed.path)
                if canonical in records and all(f.path != canonical for f in produced):
                    updated = records.replace(
                        canonical,
                        code=parsed.code,
                        language=parsed.language,
                        description=parsed.description or records.get(canonical).description,
                        dependencies=parsed.dependencies,
                    )
                    produced.append(updated)
                    dependencies = merge_dependencies(dependencies, parsed.dependencies)
                    ctx.emit(EVENT_FILES, {"files": _dump_files(records)})
                else:
                    logger.warning("Ignoring code for %s: not a target of this run", parsed.path)

                # One block per target file
                break
            else:
                if parser.has_open_block:
                    logger.warning(
                        "Output for %s ended inside an unclosed file block (truncated?)", path
                    )
                else:
                    logger.warning("No file block in the output for %s", path)

        if not produced:
            error = NoFilesChangedError()
            logger.error("No files have been changed for thread %s", ctx.thread_id)
            ctx.emit(EVENT_ERROR, {"error": str(error)})
            return Redirect(
                "find",
                {"error": RunError(message=str(error), node="write", fatal=False)},
                reason=str(error),
            )

        return Continue({"files": records.to_dict(), "dependencies": dependencies})

    def _build_messages(
        self,
        state: PlanExecuteState,
        records: FileRecords,
        target: FileMetadata,
        produced: list[FileMetadata],
        request: str,
    ) -> list[dict[str, Any]]:
        available = f"\n\n{FILE_SEPARATOR}\n\n".join(
            f"{FILE_SEPARATOR}\nFile: {record.path}\nCode:\n{record.code or record.original}"
            for record in records
            if record.path != target.path
        )

        processed = ""
        if produced:
            processed = "Files already processed:\n" + "\n".join(
                f"File: {record.path}\nChanges: {record.description}" for record in produced
            )

        rules = ""
        if self.rules:
            rules = "\nUse the following rules to guide your code writing:\n" + "\n".join(
                f"- {rule}" for rule in self.rules
            ) + "\n"

        system = WRITER_PROMPT.format(
            rules=rules,
            project_details=state.get("project_details") or "Not available.",
            request=request,
            available_files=available,
            processed_files=processed,
        )

        return [
            {"role": "system", "content": system},
            {"role": "user", "content": CURRENT_FILE.format(
                path=target.path,
                code=target.code or target.original,
            )},
        ]


def _dump_files(records: FileRecords) -> list[dict[str, Any]]:
    return [record.model_dump(mode="json") for record in records]
