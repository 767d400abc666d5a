"""Workspace listing used to ground the planner."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from codecomposer.constants import DEFAULT_SCAN_DEPTH, LANGUAGE_MAP
from codecomposer.utils.ignore import IgnoreRules

logger = logging.getLogger(__name__)


@dataclass
class FileEntry:
    """One workspace file."""

    path: str
    size: int
    language: Optional[str] = None


class FileIndex:
    """Lists the files of a workspace, honoring ignore rules."""

    def __init__(
        self,
        project_root: Path,
        ignore_rules: IgnoreRules,
        max_file_size_mb: int = 8,
    ):
        """Initialize file indexer.

        Args:
            project_root: Root directory to index
            ignore_rules: Ignore rules to apply
            max_file_size_mb: Files above this size (in MB) are left out
        """
        self.project_root = project_root
        self.ignore_rules = ignore_rules
        self.max_file_size = max_file_size_mb * 1024 * 1024

    def scan(self, max_depth: int = DEFAULT_SCAN_DEPTH) -> list[FileEntry]:
        """Walk the workspace down to max_depth directory levels.

        Returns:
            FileEntry list sorted by path
        """
        entries = []
        root = self.project_root.resolve()

        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            depth = len(current.relative_to(root).parts)

            # Prune ignored and too-deep directories before descending
            dirnames[:] = [
                d for d in dirnames
                if depth < max_depth
                and not self.ignore_rules.should_ignore_dir((current / d).relative_to(root))
            ]

            for filename in filenames:
                path = current / filename
                rel_path = path.relative_to(root)

                if self.ignore_rules.should_ignore(rel_path):
                    continue

                try:
                    size = path.stat().st_size
                except OSError:
                    continue  # Skip files we can't stat

                if size > self.max_file_size:
                    continue

                entries.append(FileEntry(
                    path=rel_path.as_posix(),
                    size=size,
                    language=self._detect_language(path),
                ))

        return sorted(entries, key=lambda entry: entry.path)

    def _detect_language(self, path: Path) -> Optional[str]:
        return LANGUAGE_MAP.get(path.suffix.lower())

    def summarize(self, entries: list[FileEntry]) -> str:
        """Generate human-readable summary of a scan.

        Args:
            entries: Result of scan()

        Returns:
            Summary string
        """
        total_size_mb = sum(entry.size for entry in entries) / (1024 * 1024)
        languages: dict[str, int] = {}
        for entry in entries:
            if entry.language:
                languages[entry.language] = languages.get(entry.language, 0) + 1

        lines = [f"Indexed {len(entries)} files ({total_size_mb:.2f} MB)"]

        if languages:
            lang_list = ", ".join(f"{lang}: {count}" for lang, count in sorted(languages.items()))
            lines.append(f"Languages: {lang_list}")

        return "\n".join(lines)
