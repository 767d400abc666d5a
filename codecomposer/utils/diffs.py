"""Utilities for creating diffs and summarizing them as line statistics."""

import difflib
import logging
from typing import Optional

from unidiff import PatchSet

from codecomposer.constants import EMPTY_DIFF

logger = logging.getLogger(__name__)


def create_patch(original: Optional[str], modified: str, filename: str = "file") -> str:
    """Create a unified diff patch.

    Args:
        original: Original file content (None for a new file)
        modified: Modified file content
        filename: Filename to use in patch header

    Returns:
        Unified diff string, empty when the contents are identical
    """
    original_lines = normalize_line_endings(original or "").splitlines()
    modified_lines = normalize_line_endings(modified).splitlines()

    diff = list(difflib.unified_diff(
        original_lines,
        modified_lines,
        fromfile=f"a/{filename}",
        tofile=f"b/{filename}",
        lineterm="",
    ))

    if not diff:
        return ""

    return "\n".join(diff) + "\n"


def compute_diff_stat(original: Optional[str], proposed: str, path: str) -> str:
    """Summarize the change from original to proposed as "+additions,-deletions".

    Only content lines are counted; file headers and hunk markers are not.
    Failures are logged and reported as "+0,-0" so that cosmetic stats never
    block the caller.

    Args:
        original: Content before the change (None or "" for a new file)
        proposed: Proposed full content
        path: File path, used for the patch header and log messages

    Returns:
        Diff summary string
    """
    try:
        if not path:
            raise ValueError("File path is required")
        if not isinstance(proposed, str):
            raise TypeError("Proposed content must be a string")

        patch_str = create_patch(original, proposed, path)
        if not patch_str:
            return EMPTY_DIFF

        patchset = PatchSet(patch_str)
        additions = sum(patched_file.added for patched_file in patchset)
        deletions = sum(patched_file.removed for patched_file in patchset)

        return f"+{additions},-{deletions}"

    except Exception as e:
        logger.error("Error generating diff for %s: %s", path, e)
        return EMPTY_DIFF


def normalize_line_endings(content: str) -> str:
    """Normalize line endings to LF.

    Args:
        content: Content with potentially mixed line endings

    Returns:
        Content with normalized line endings
    """
    return content.replace("\r\n", "\n").replace("\r", "\n")
