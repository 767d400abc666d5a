"""Workspace file reading, writing and deletion."""

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ReadWrite:
    """Handles file I/O operations confined to the workspace."""

    def __init__(
        self,
        project_root: Path,
        max_read_mb: int = 8,
        max_write_mb: int = 2,
    ):
        """Initialize ReadWrite tool.

        Args:
            project_root: Project root directory
            max_read_mb: Maximum file size to read (MB)
            max_write_mb: Maximum file size to write (MB)
        """
        self.project_root = project_root
        self.max_read_bytes = max_read_mb * 1024 * 1024
        self.max_write_bytes = max_write_mb * 1024 * 1024

    def read(self, path: str) -> tuple[bool, Optional[str], Optional[str]]:
        """Read a text file.

        Args:
            path: Relative or absolute path to file

        Returns:
            Tuple of (success, content, error)
        """
        file_path = self.resolve(path)

        if not self._is_safe_path(file_path):
            return False, None, f"Path outside project root: {path}"

        if not file_path.exists():
            return False, None, f"File not found: {path}"

        if not file_path.is_file():
            return False, None, f"Not a file: {path}"

        try:
            size = file_path.stat().st_size
            if size > self.max_read_bytes:
                size_mb = size / (1024 * 1024)
                max_mb = self.max_read_bytes / (1024 * 1024)
                return False, None, f"File too large: {size_mb:.2f} MB (max: {max_mb} MB)"
        except OSError as e:
            return False, None, f"Cannot stat file: {e}"

        try:
            # newline="" keeps CRLF intact so undo restores files byte for byte
            with open(file_path, "r", encoding="utf-8", newline="") as f:
                content = f.read()
            return True, content, None
        except UnicodeDecodeError:
            return False, None, "File is not valid UTF-8 text"
        except IOError as e:
            return False, None, f"Cannot read file: {e}"

    def snapshot(self, path: str) -> tuple[bool, Optional[str], Optional[str]]:
        """Capture a file's content before it is edited.

        A missing file inside the workspace is a new file with empty
        content. A file that exists but cannot be read has no usable
        snapshot, so content is None and error says why.

        Args:
            path: Relative or absolute path to file

        Returns:
            Tuple of (existed, content, error)
        """
        file_path = self.resolve(path)

        if not self._is_safe_path(file_path):
            return False, None, f"Path outside project root: {path}"

        if not file_path.exists():
            return False, "", None

        success, content, error = self.read(path)
        if not success:
            logger.debug("No snapshot of %s: %s", path, error)
        return True, content, error

    def write(self, path: str, content: str) -> tuple[bool, Optional[str]]:
        """Write content to a file, creating parent directories.

        Args:
            path: Relative or absolute path to file
            content: Content to write

        Returns:
            Tuple of (success, error)
        """
        file_path = self.resolve(path)

        if not self._is_safe_path(file_path):
            return False, f"Path outside project root: {path}"

        content_bytes = len(content.encode("utf-8"))
        if content_bytes > self.max_write_bytes:
            size_mb = content_bytes / (1024 * 1024)
            max_mb = self.max_write_bytes / (1024 * 1024)
            return False, f"Content too large: {size_mb:.2f} MB (max: {max_mb} MB)"

        file_path.parent.mkdir(parents=True, exist_ok=True)

        # Write atomically (temp file + rename)
        temp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            temp_path.replace(file_path)
            return True, None
        except IOError as e:
            if temp_path.exists():
                temp_path.unlink()
            return False, f"Cannot write file: {e}"

    def delete(self, path: str) -> tuple[bool, Optional[str]]:
        """Delete a file; deleting a missing file succeeds.

        Returns:
            Tuple of (success, error)
        """
        file_path = self.resolve(path)

        if not self._is_safe_path(file_path):
            return False, f"Path outside project root: {path}"

        try:
            file_path.unlink(missing_ok=True)
            return True, None
        except IsADirectoryError:
            return False, f"Not a file: {path}"
        except OSError as e:
            return False, f"Cannot delete file: {e}"

    def exists(self, path: str) -> bool:
        file_path = self.resolve(path)
        return self._is_safe_path(file_path) and file_path.is_file()

    def relative(self, path: str) -> str:
        """Workspace-relative POSIX form of a path when it lies inside the workspace."""
        p = Path(path)
        if not p.is_absolute():
            return p.as_posix()
        try:
            return p.resolve().relative_to(self.project_root.resolve()).as_posix()
        except ValueError:
            return p.as_posix()

    def resolve(self, path: str) -> Path:
        """Resolve a path string to an absolute Path.

        Args:
            path: Path string (relative or absolute)

        Returns:
            Absolute Path
        """
        p = Path(path)
        if p.is_absolute():
            return p
        return (self.project_root / p).resolve()

    def is_inside(self, path: str) -> bool:
        return self._is_safe_path(self.resolve(path))

    def _is_safe_path(self, path: Path) -> bool:
        """Check if a path is within project root.

        Args:
            path: Absolute path to check

        Returns:
            True if path is safe (within project root)
        """
        try:
            path.resolve().relative_to(self.project_root.resolve())
            return True
        except ValueError:
            return False
