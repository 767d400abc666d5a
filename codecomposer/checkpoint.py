"""Persistence for threads: a LangGraph checkpointer plus a thread registry.

Layout under the store root:

    checkpoints.sqlite   LangGraph checkpoints, keyed by thread_id
    threads.json         registry of Thread records (titles and lineage)

The checkpointer owns every state snapshot; the registry only records
what LangGraph does not track (titles, branch parents, timestamps).
"""

import json
import logging
import re
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from langgraph.checkpoint.sqlite import SqliteSaver
from langgraph.types import StateSnapshot
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

THREAD_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")
CHECKPOINT_DB = "checkpoints.sqlite"


def _now() -> datetime:
    return datetime.now()


def open_checkpointer(db_path: Path) -> SqliteSaver:
    """Return a SQLite checkpointer stored at db_path.

    The connection is shared by the threads that stream the graph, so it
    is opened with check_same_thread disabled; SqliteSaver serializes
    access itself.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    return SqliteSaver(conn)


def thread_config(thread_id: str, checkpoint_id: Optional[str] = None) -> dict[str, Any]:
    """RunnableConfig addressing a thread (or one of its checkpoints)."""
    configurable = {"thread_id": thread_id}
    if checkpoint_id:
        configurable["checkpoint_id"] = checkpoint_id
    return {"configurable": configurable}


def snapshot_id(snapshot: StateSnapshot) -> Optional[str]:
    return snapshot.config.get("configurable", {}).get("checkpoint_id")


class Thread(BaseModel):
    """An independently resumable conversation."""

    id: str
    title: str = ""
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    parent_thread_id: Optional[str] = None
    parent_checkpoint_id: Optional[str] = None


class ThreadRegistry:
    """Thread titles and lineage stored as one JSON file."""

    def __init__(self, root: Path):
        """Initialize the registry.

        Args:
            root: Per-workspace persistence directory
        """
        self.root = root
        self.threads_path = root / "threads.json"
        self._lock = threading.RLock()

    def get(self, thread_id: str) -> Optional[Thread]:
        with self._lock:
            return self._read().get(thread_id)

    def save(self, thread: Thread) -> Thread:
        """Insert or update a thread.

        Raises:
            ValueError: If the thread id is not usable as a file name
        """
        validate_thread_id(thread.id)
        with self._lock:
            threads = self._read()
            threads[thread.id] = thread
            self._write(threads)
        return thread

    def touch(self, thread_id: str) -> None:
        """Bump a thread's updated_at, registering it if needed."""
        with self._lock:
            threads = self._read()
            thread = threads.get(thread_id) or Thread(id=validate_thread_id(thread_id))
            thread.updated_at = _now()
            threads[thread_id] = thread
            self._write(threads)

    def list_threads(self) -> list[Thread]:
        """Registered threads, most recently updated first."""
        with self._lock:
            threads = list(self._read().values())
        return sorted(threads, key=lambda thread: thread.updated_at, reverse=True)

    def _read(self) -> dict[str, Thread]:
        if not self.threads_path.exists():
            return {}

        try:
            with open(self.threads_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Could not read thread registry %s: %s", self.threads_path, e)
            return {}

        threads = {}
        for item in data.get("threads", []):
            try:
                thread = Thread.model_validate(item)
            except ValidationError as e:
                logger.warning("Skipping invalid thread entry: %s", e)
                continue
            threads[thread.id] = thread
        return threads

    def _write(self, threads: dict[str, Thread]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        payload = {"threads": [thread.model_dump(mode="json") for thread in threads.values()]}

        # Write atomically (temp file + rename)
        temp_path = self.threads_path.with_suffix(".json.tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        temp_path.replace(self.threads_path)


def validate_thread_id(thread_id: str) -> str:
    """Thread ids name run transcript directories and registry keys, so they must be plain names.

    Raises:
        ValueError: If the id is empty or contains path characters
    """
    if not thread_id or not THREAD_ID_PATTERN.fullmatch(thread_id):
        raise ValueError(f"Invalid thread id: {thread_id!r}")
    return thread_id
