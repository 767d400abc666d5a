"""Run transcript logging."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class RunLogger:
    """Writes the transcript of one composition run to disk."""

    def __init__(self, log_root: Path, thread_id: str, run_id: Optional[str] = None):
        """Initialize run logger.

        Args:
            log_root: Directory holding all run transcripts
            thread_id: Thread the run belongs to
            run_id: Optional run ID (generated if not provided)
        """
        self.thread_id = thread_id
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S_%f")

        self.log_dir = log_root / "runs" / thread_id / self.run_id
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.events_path = self.log_dir / "events.ndjson"
        self.plan_path = self.log_dir / "plan.md"

    def log_event(self, node: str, kind: str, payload: Optional[dict[str, Any]] = None) -> None:
        """Append one event to the transcript.

        Args:
            node: Graph node that produced the event
            kind: Event kind (state, composer-error, ...)
            payload: Event payload; must be JSON serializable
        """
        entry = {
            "ts": datetime.now().isoformat(),
            "node": node,
            "kind": kind,
            "payload": payload or {},
        }

        try:
            with open(self.events_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except IOError as e:
            logger.warning("Could not write run transcript %s: %s", self.events_path, e)

    def save_plan(self, plan: str) -> None:
        """Save the latest implementation plan text."""
        try:
            self.plan_path.write_text(plan, encoding="utf-8")
        except IOError as e:
            logger.warning("Could not save plan %s: %s", self.plan_path, e)

    def get_log_path(self) -> str:
        """Get the path to the log directory.

        Returns:
            Absolute path to log directory
        """
        return str(self.log_dir.absolute())
