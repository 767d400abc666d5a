"""Verify agent: deterministic checks on generated files."""

import ast
import json
import logging
from pathlib import PurePosixPath

from codecomposer.agents.base import Continue, NodeResult, RunContext
from codecomposer.constants import EVENT_FILES, LANGUAGE_MAP
from codecomposer.records import FileRecords
from codecomposer.state import FileMetadata, PlanExecuteState
from codecomposer.tools.read_write import ReadWrite

logger = logging.getLogger(__name__)


class Verifier:
    """Re-derives diffs and records problems; never calls the model."""

    def __init__(self, read_write: ReadWrite):
        self.read_write = read_write

    def invoke(self, state: PlanExecuteState, ctx: RunContext) -> NodeResult:
        records = FileRecords(state.get("files"))

        for record in records.with_code():
            ctx.check_cancelled()
            problems = self.check(record)
            if problems:
                logger.info("%s: %d problem(s) found", record.path, len(problems))
            # Passing code again recomputes the diff from (original, code)
            records.replace(record.path, code=record.code, problems=problems)

        ctx.emit(EVENT_FILES, {"files": [r.model_dump(mode="json") for r in records]})
        return Continue({"files": records.to_dict()})

    def check(self, record: FileMetadata) -> list[str]:
        """Return human-readable problems for one generated file."""
        problems = []

        if not self.read_write.is_inside(record.path):
            problems.append(f"{record.path} is outside the workspace")

        language = (record.language or "").lower()
        suffix_language = LANGUAGE_MAP.get(PurePosixPath(record.path).suffix.lower())

        if "python" in (language, suffix_language):
            try:
                ast.parse(record.code, filename=record.path)
            except SyntaxError as e:
                problems.append(f"{record.path}:{e.lineno}: syntax error: {e.msg}")
            except ValueError as e:
                problems.append(f"{record.path}: {e}")
        elif "json" in (language, suffix_language):
            try:
                json.loads(record.code)
            except json.JSONDecodeError as e:
                problems.append(f"{record.path}:{e.lineno}: invalid JSON: {e.msg}")

        return problems
