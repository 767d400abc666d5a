"""Incremental parsers for streamed model output.

Two parsers share the same primitives:

- FileBlockParser turns the code writer's ===FILE_START=== / ===FILE_END===
  blocks into ParsedFile records, emitting each record exactly once.
- PlanParser pulls the "Required File Changes" and "New Dependencies"
  sections out of the planner's answer, leaving only plan prose behind.

Both accumulate every chunk into a buffer so that delimiters split across
chunk boundaries are still recognized.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Pattern, Union

from codecomposer.constants import (
    DEPENDENCIES_HEADER,
    FILE_CHANGES_HEADER,
    FILE_END,
    FILE_CODE_PATTERN,
    FILE_ENTRY_PATTERN,
    FILE_FIELD_PATTERNS,
    FILE_START,
    LINE_SECTION_MARKER,
    NO_DEPENDENCY_VALUES,
    PACKAGE_NAME_PATTERN,
    SECTION_MARKER,
)
from codecomposer.utils.diffs import compute_diff_stat
from codecomposer.utils.git import GitSnapshot

logger = logging.getLogger(__name__)

Marker = Union[str, Pattern[str]]


def _find(marker: Marker, text: str, pos: int = 0) -> Optional[tuple[int, int]]:
    if isinstance(marker, str):
        start = text.find(marker, pos)
        return (start, start + len(marker)) if start != -1 else None
    match = marker.search(text, pos)
    return match.span() if match else None


def extract_section(
    buffer: str,
    start: Marker,
    end: Marker,
    allow_eof: bool = False,
    consume_end: bool = False,
) -> tuple[Optional[str], str]:
    """Cut the first closed section out of buffer.

    A section runs from the end of the start marker to the beginning of the
    next end marker. When allow_eof is set, the end of the buffer also closes
    the section.

    Args:
        buffer: Text to search
        start: Literal string or compiled pattern opening the section
        end: Literal string or compiled pattern closing the section
        allow_eof: Treat end of buffer as a closing marker
        consume_end: Remove the end marker from the remainder as well

    Returns:
        Tuple of (section text or None, remainder). The remainder is the
        buffer unchanged when no closed section was found.
    """
    start_span = _find(start, buffer)
    if start_span is None:
        return None, buffer

    end_span = _find(end, buffer, start_span[1])
    if end_span is None:
        if not allow_eof:
            return None, buffer
        end_span = (len(buffer), len(buffer))

    section = buffer[start_span[1]:end_span[0]]
    resume = end_span[1] if consume_end else end_span[0]
    return section, buffer[:start_span[0]] + buffer[resume:]


def extract_fields(text: str, field_patterns: dict[str, Pattern[str]]) -> dict[str, str]:
    """Extract labeled fields from text; missing fields default to ""."""
    fields = {}
    for name, pattern in field_patterns.items():
        match = pattern.search(text)
        fields[name] = match.group(1).strip() if match else ""
    return fields


def clean_path(raw: str) -> str:
    """Canonicalize a model-reported path (strip quotes, backticks, ./)."""
    path = raw.strip().strip("`'\"").strip()
    while path.startswith("./"):
        path = path[2:]
    return path


def parse_dependency_list(value: str) -> list[str]:
    """Split a comma separated dependency field, dropping "none" placeholders."""
    deps = []
    for item in value.split(","):
        dep = item.strip().strip("`'\"").strip()
        if dep.lower().rstrip(".") in NO_DEPENDENCY_VALUES:
            continue
        if dep not in deps:
            deps.append(dep)
    return deps


def package_name(line: str) -> Optional[str]:
    """Leading package token of a dependency bullet ("- `lodash`@4" -> "lodash").

    Placeholder bullets such as "- None" or "- No new dependencies" yield None.
    """
    cleaned = re.sub(r"^[-*•]\s*", "", line.strip())
    if cleaned.strip("`'\"").rstrip(".").lower() in NO_DEPENDENCY_VALUES:
        return None
    match = PACKAGE_NAME_PATTERN.match(cleaned)
    if not match or match.group(1).lower() in NO_DEPENDENCY_VALUES:
        return None
    return match.group(1)


@dataclass
class ParsedFile:
    """A closed file block from the code writer."""

    path: str = ""
    language: str = ""
    description: str = ""
    code: str = ""
    dependencies: list[str] = field(default_factory=list)
    diff: Optional[str] = None


class FileBlockParser:
    """Stateful parser for one target file's streamed output.

    Use a fresh instance per file: the buffer is never shared between targets.
    """

    def __init__(self, workspace: Path, git: Optional[GitSnapshot] = None):
        self.workspace = workspace
        self.git = git
        self.buffer = ""

    def parse(self, chunk: str) -> Optional[ParsedFile]:
        """Feed a chunk; return a record if a block closed, otherwise None."""
        self.buffer += chunk
        return self._next_record()

    @property
    def has_open_block(self) -> bool:
        """True while a block has started but not yet ended."""
        return FILE_START in self.buffer

    def _next_record(self) -> Optional[ParsedFile]:
        section, remainder = extract_section(self.buffer, FILE_START, FILE_END, consume_end=True)
        if section is None:
            return None

        self.buffer = remainder

        # Header fields are only read above the Code: line
        code_match = FILE_CODE_PATTERN.search(section)
        header = section[:code_match.start()] if code_match else section
        fields = extract_fields(header, FILE_FIELD_PATTERNS)

        record = ParsedFile(
            path=clean_path(fields["path"]),
            language=fields["language"],
            description=fields["description"],
            code=code_match.group(1).strip("\r\n").rstrip() if code_match else "",
            dependencies=parse_dependency_list(fields["dependencies"]),
        )

        if record.code and record.diff is None:
            record.diff = compute_diff_stat(self._baseline(record.path), record.code, record.path)

        return record

    def _baseline(self, path: str) -> str:
        if not path:
            return ""

        file_path = Path(path)
        if not file_path.is_absolute():
            file_path = self.workspace / file_path

        if not file_path.exists():
            return ""

        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Unable to read diff baseline %s: %s", file_path, e)

        if self.git:
            committed = self.git.head_content(path)
            if committed is not None:
                return committed

        return ""


@dataclass
class FileChange:
    """A target file named by the planner."""

    path: str
    analysis: str


class PlanParser:
    """Incrementally extracts file targets and new dependencies from a plan.

    feed() only removes sections already terminated by the next "###"
    heading; finish() also accepts the end of the text as a terminator.
    """

    def __init__(self):
        self.buffer = ""
        self.files: dict[str, FileChange] = {}
        self.dependencies: list[str] = []

    def feed(self, chunk: str) -> None:
        self.buffer += chunk
        self._process(allow_eof=False)

    def finish(self) -> None:
        self._process(allow_eof=True)

    @property
    def plan_text(self) -> str:
        return self.buffer.strip()

    def _process(self, allow_eof: bool) -> None:
        while True:
            section, remainder = extract_section(
                self.buffer, FILE_CHANGES_HEADER, SECTION_MARKER, allow_eof=allow_eof
            )
            if section is None:
                break
            self.buffer = remainder
            self._add_file_changes(section)

        while True:
            section, remainder = extract_section(
                self.buffer, DEPENDENCIES_HEADER, LINE_SECTION_MARKER, allow_eof=allow_eof
            )
            if section is None:
                break
            self.buffer = remainder
            self._add_dependencies(section)

    def _add_file_changes(self, section: str) -> None:
        for match in FILE_ENTRY_PATTERN.finditer(section.strip()):
            path = clean_path(match.group(1))
            if not path or path in self.files:
                continue
            analysis = re.sub(r"\s+", " ", match.group(2)).strip()
            self.files[path] = FileChange(path=path, analysis=analysis)

    def _add_dependencies(self, section: str) -> None:
        for line in section.splitlines():
            stripped = line.strip()
            if not stripped.startswith(("-", "*", "•")):
                continue
            name = package_name(stripped)
            if name and name not in self.dependencies:
                self.dependencies.append(name)
