"""Read-only access to committed file versions, used as a fallback diff baseline."""

import logging
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class GitSnapshot:
    """Looks up the HEAD version of workspace files.

    Every failure (no git binary, not a repository, untracked file) degrades
    to None so callers fall back to "no prior version".
    """

    def __init__(self, project_root: Path, timeout: int = 10):
        self.project_root = project_root
        self.timeout = timeout

    def head_content(self, path: str) -> Optional[str]:
        """Return the committed content of a file, or None when unavailable."""
        file_path = Path(path)
        if file_path.is_absolute():
            try:
                file_path = file_path.resolve().relative_to(self.project_root.resolve())
            except ValueError:
                return None

        try:
            result = subprocess.run(
                ["git", "show", f"HEAD:{file_path.as_posix()}"],
                cwd=str(self.project_root),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("git unavailable for %s: %s", path, e)
            return None

        if result.returncode != 0:
            return None

        return result.stdout
