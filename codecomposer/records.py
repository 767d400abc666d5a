"""Path-keyed store of file edit records."""

from typing import Any, Iterator, Optional

from codecomposer.constants import EMPTY_DIFF
from codecomposer.state import FileMetadata
from codecomposer.utils.diffs import compute_diff_stat


class FileRecords:
    """Ordered mapping from canonical path to FileMetadata.

    Records are never mutated in place: replace() swaps in an updated copy,
    so a state that still references the old mapping is unaffected. The
    diff of a record is recomputed whenever its original or code changes.
    """

    def __init__(self, files: Optional[dict[str, FileMetadata]] = None):
        self._files: dict[str, FileMetadata] = dict(files or {})

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: str) -> bool:
        return path in self._files

    def __iter__(self) -> Iterator[FileMetadata]:
        return iter(self._files.values())

    def get(self, path: str) -> Optional[FileMetadata]:
        return self._files.get(path)

    def paths(self) -> list[str]:
        return list(self._files)

    def add_if_absent(self, record: FileMetadata) -> bool:
        """Insert a record unless its path is already present (first one wins)."""
        if record.path in self._files:
            return False
        self._files[record.path] = record
        return True

    def replace(self, path: str, **changes: Any) -> FileMetadata:
        """Swap the record at path for an updated copy.

        Raises:
            KeyError: If no record exists for path
        """
        current = self._files[path]
        updated = current.model_copy(update=changes, deep=True)

        if "code" in changes or "original" in changes:
            if updated.code:
                updated.diff = compute_diff_stat(updated.original, updated.code, updated.path)
            else:
                updated.diff = EMPTY_DIFF

        # Re-run validation so accepted/rejected stay mutually exclusive
        updated = FileMetadata.model_validate(updated.model_dump())
        self._files[path] = updated
        return updated

    def with_code(self) -> list[FileMetadata]:
        """Records that carry generated code."""
        return [record for record in self._files.values() if record.has_code]

    def to_dict(self) -> dict[str, FileMetadata]:
        return dict(self._files)
