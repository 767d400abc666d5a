"""Workspace ignore rules handling using pathspec."""

import logging
from pathlib import Path

import pathspec

from codecomposer.constants import BUILTIN_IGNORES

logger = logging.getLogger(__name__)

IGNORE_FILES = (".gitignore", ".composerignore")


class IgnoreRules:
    """Decides which workspace files are hidden from the planner.

    Combines the built-in patterns with .gitignore and .composerignore,
    later sources taking precedence.
    """

    def __init__(self, project_root: Path):
        self.project_root = project_root
        self.spec = self._build_spec()

    def _build_spec(self) -> pathspec.PathSpec:
        patterns = list(BUILTIN_IGNORES)

        for filename in IGNORE_FILES:
            ignore_path = self.project_root / filename
            if not ignore_path.exists():
                continue
            try:
                patterns.extend(ignore_path.read_text(encoding="utf-8").splitlines())
            except (IOError, UnicodeDecodeError) as e:
                logger.warning("Could not read %s: %s", ignore_path, e)

        # Filter out empty lines and comments
        patterns = [p.strip() for p in patterns if p.strip() and not p.strip().startswith("#")]

        return pathspec.PathSpec.from_lines("gitwildmatch", patterns)

    def should_ignore(self, path: Path) -> bool:
        """Check if a path should be ignored.

        Args:
            path: Path to check (can be absolute or relative)

        Returns:
            True if the path should be ignored
        """
        try:
            if path.is_absolute():
                rel_path = path.relative_to(self.project_root)
            else:
                rel_path = path
        except ValueError:
            # Path is outside project root
            return True

        return self.spec.match_file(rel_path.as_posix())

    def should_ignore_dir(self, rel_path: Path) -> bool:
        """Check a workspace-relative directory ("dir/" patterns need the slash)."""
        return self.spec.match_file(rel_path.as_posix() + "/")
