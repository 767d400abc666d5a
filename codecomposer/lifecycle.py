"""Accept / reject / undo decisions for generated files."""

import logging
import threading
from typing import TYPE_CHECKING, Optional, Union

from codecomposer.errors import ThreadNotFoundError
from codecomposer.records import FileRecords
from codecomposer.state import FileMetadata, PlanExecuteState, merge_patch
from codecomposer.tools.read_write import ReadWrite

if TYPE_CHECKING:
    from codecomposer.graph import ComposerGraph

logger = logging.getLogger(__name__)

FileRef = Union[str, FileMetadata]


class FileLifecycle:
    """Applies a user decision on one file of one thread.

    The record in the thread's latest checkpoint is authoritative;
    callers identify it by path. Every operation returns (success, error)
    and persists a new checkpoint when it changed anything. Decisions on
    the same thread are serialized.
    """

    def __init__(self, read_write: ReadWrite, graph: "ComposerGraph"):
        self.read_write = read_write
        self.graph = graph
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def accept(self, file: FileRef, thread_id: str) -> tuple[bool, Optional[str]]:
        """Write the generated code to disk and mark the file accepted.

        Args:
            file: Path (or record) of the file
            thread_id: Thread holding the record

        Returns:
            Tuple of (success, error)
        """
        with self._lock_for(thread_id):
            state, records, path, error = self._load(file, thread_id)
            if error:
                return False, error

            record = records.get(path)
            if record.accepted:
                return True, None
            if record.rejected:
                return False, f"{path} was rejected"
            if not record.has_code:
                return False, f"No generated code for {path}"

            success, error = self.read_write.write(path, record.code)
            if not success:
                return False, error

            records.replace(path, accepted=True, rejected=None)
            self._persist(thread_id, state, records, "accept", path)
            logger.info("Accepted %s (%s) in thread %s", path, record.diff, thread_id)
            return True, None

    def reject(self, file: FileRef, thread_id: str) -> tuple[bool, Optional[str]]:
        """Discard the generated code; the file on disk is not touched.

        Returns:
            Tuple of (success, error)
        """
        with self._lock_for(thread_id):
            state, records, path, error = self._load(file, thread_id)
            if error:
                return False, error

            record = records.get(path)
            if record.rejected:
                return True, None
            if record.accepted:
                return False, f"{path} was already accepted, undo it first"

            records.replace(path, code=None, rejected=True, accepted=None)
            self._persist(thread_id, state, records, "reject", path)
            logger.info("Rejected %s in thread %s", path, thread_id)
            return True, None

    def undo(self, file: FileRef, thread_id: str) -> tuple[bool, Optional[str]]:
        """Restore the original content of an accepted file.

        A file that did not exist before the run is deleted instead.

        Returns:
            Tuple of (success, error)
        """
        with self._lock_for(thread_id):
            state, records, path, error = self._load(file, thread_id)
            if error:
                return False, error

            record = records.get(path)
            if not record.accepted:
                return True, None

            if record.existed:
                success, error = self.read_write.write(path, record.original)
            else:
                success, error = self.read_write.delete(path)
            if not success:
                return False, error

            records.replace(path, accepted=None)
            self._persist(thread_id, state, records, "undo", path)
            logger.info("Undid %s in thread %s", path, thread_id)
            return True, None

    def _load(
        self, file: FileRef, thread_id: str
    ) -> tuple[Optional[PlanExecuteState], Optional[FileRecords], str, Optional[str]]:
        path = self.read_write.relative(file.path if isinstance(file, FileMetadata) else file)

        state = self.graph.get_state(thread_id)
        if state is None:
            return None, None, path, str(ThreadNotFoundError(thread_id))

        records = FileRecords(state.get("files"))
        if path not in records:
            return None, None, path, f"File not found in thread {thread_id}: {path}"

        return state, records, path, None

    def _persist(
        self,
        thread_id: str,
        state: PlanExecuteState,
        records: FileRecords,
        decision: str,
        path: str,
    ) -> None:
        self.graph.save_state(thread_id, merge_patch(state, {"files": records.to_dict()}), node=decision)
        logger.debug("Checkpointed %s of %s in thread %s", decision, path, thread_id)

    def _lock_for(self, thread_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(thread_id, threading.Lock())
