"""LangGraph orchestration of the find -> write -> verify workflow."""

import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.config import get_config, get_stream_writer
from langgraph.graph import END, StateGraph
from langgraph.types import StateSnapshot

from codecomposer.agents.base import Continue, Fatal, NodeResult, Redirect, RunContext
from codecomposer.agents.find import PlannerAgent
from codecomposer.agents.verify import Verifier
from codecomposer.agents.write import CodeWriter
from codecomposer.checkpoint import (
    CHECKPOINT_DB,
    Thread,
    ThreadRegistry,
    open_checkpointer,
    snapshot_id,
    thread_config,
    validate_thread_id,
)
from codecomposer.config import Config, default_checkpoint_dir
from codecomposer.constants import (
    EVENT_CANCELLED,
    EVENT_DONE,
    EVENT_ERROR,
    EVENT_MESSAGE_STREAM,
    EVENT_STATE,
)
from codecomposer.errors import ComposerError, CompositionCancelled
from codecomposer.lifecycle import FileLifecycle, FileRef
from codecomposer.llm import LLM
from codecomposer.state import (
    PlanExecuteState,
    RunError,
    dump_state,
    fresh_state,
    load_state,
    merge_patch,
)
from codecomposer.tools.bindings import ToolBox
from codecomposer.tools.file_index import FileIndex
from codecomposer.tools.read_write import ReadWrite
from codecomposer.tools.search import CodeSearch, LexicalSearch
from codecomposer.utils.git import GitSnapshot
from codecomposer.utils.ignore import IgnoreRules
from codecomposer.utils.logging import RunLogger

logger = logging.getLogger(__name__)


Agent = Callable[[PlanExecuteState, RunContext], NodeResult]

NODES = ("find", "write", "verify")


@dataclass
class ComposerRequest:
    """One user turn submitted to a thread."""

    thread_id: str
    input: str
    context_files: list[str] = field(default_factory=list)
    title: Optional[str] = None


@dataclass
class ComposerEvent:
    """Notification pushed to the host while a run progresses."""

    node: str
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"node": self.node, "kind": self.kind, "payload": self.payload}


class ComposerGraph:
    """Manages the LangGraph workflow and the threads it runs on."""

    def __init__(
        self,
        workspace: Path,
        llm: Optional[LLM],
        checkpointer: BaseCheckpointSaver,
        config: Config,
        search: Optional[CodeSearch] = None,
        threads: Optional[ThreadRegistry] = None,
    ):
        """Initialize the graph.

        Args:
            workspace: Workspace root directory
            llm: Model client shared by the agents (None when only threads
                and files are managed; compose then reports an error)
            checkpointer: LangGraph checkpointer holding every thread's state
            config: Configuration object
            search: Code index; defaults to lexical search over the workspace
            threads: Thread registry; defaults to one in the checkpoint directory
        """
        self.workspace = workspace
        self.config = config
        self.llm = llm
        self.checkpointer = checkpointer
        self.threads = threads or ThreadRegistry(
            config.checkpoint_dir or default_checkpoint_dir(workspace)
        )

        # Initialize tools
        self.ignore_rules = IgnoreRules(workspace)
        self.file_index = FileIndex(workspace, self.ignore_rules, config.max_read_mb)
        self.read_write = ReadWrite(workspace, config.max_read_mb, config.max_write_mb)
        self.git = GitSnapshot(workspace)
        self.search = search or LexicalSearch(self.file_index, self.read_write, config.scan_depth)
        self.toolbox = ToolBox(self.search)

        # Initialize agents
        self.planner = PlannerAgent(
            llm, self.toolbox, self.file_index, self.read_write, config.scan_depth
        )
        self.writer = CodeWriter(llm, self.read_write, self.git, config.rules)
        self.verifier = Verifier(self.read_write)

        self._active: dict[str, threading.Event] = {}
        self._active_lock = threading.Lock()

        self.graph = self.build_graph()
        self.lifecycle = FileLifecycle(self.read_write, self)

    @classmethod
    def from_config(
        cls, workspace: Path, config: Config, require_llm: bool = True
    ) -> "ComposerGraph":
        """Build the graph with an Anthropic client and a SQLite checkpointer.

        Args:
            workspace: Workspace root directory
            config: Configuration object
            require_llm: Fail when no API key is configured

        Raises:
            ValueError: If the API key is required but missing, or the model is unknown
        """
        llm = None
        if config.anthropic_api_key:
            descriptor = LLM.parse_model_string(config.default_model)
            llm = LLM(descriptor, config.anthropic_api_key, config.model_timeout, config.model_retries)
        elif require_llm:
            raise ValueError("No Anthropic API key found. Set ANTHROPIC_API_KEY in .env")

        root = config.checkpoint_dir or default_checkpoint_dir(workspace)
        checkpointer = open_checkpointer(root / CHECKPOINT_DB)
        return cls(workspace, llm, checkpointer, config, threads=ThreadRegistry(root))

    def build_graph(self):
        """Build the LangGraph workflow.

        Returns:
            Compiled StateGraph, checkpointed per thread_id
        """
        workflow = StateGraph(PlanExecuteState)

        workflow.add_node("find", self._node("find", self.planner.invoke))
        workflow.add_node("write", self._node("write", self.writer.invoke))
        workflow.add_node("verify", self._node("verify", self.verifier.invoke))

        workflow.set_entry_point("find")
        workflow.add_conditional_edges("find", _route, {"write": "write", END: END})
        workflow.add_conditional_edges(
            "write", _route, {"verify": "verify", "find": "find", END: END}
        )
        workflow.add_edge("verify", END)

        return workflow.compile(checkpointer=self.checkpointer)

    def _node(self, name: str, agent: Agent) -> Callable[[PlanExecuteState], dict]:
        """Wrap an agent so its NodeResult becomes a state patch with a route."""

        def run(state: PlanExecuteState) -> dict[str, Any]:
            ctx = self._context(name)
            ctx.check_cancelled()
            try:
                result = agent(state, ctx)
            except CompositionCancelled:
                raise
            except Exception as e:
                logger.exception("Node %s failed for thread %s", name, ctx.thread_id)
                result = Fatal(f"{type(e).__name__}: {e}")

            return {**self._interpret(name, state, result, ctx), "node": name}

        return run

    def _context(self, name: str) -> RunContext:
        """Run context for the node currently executing."""
        thread_id = get_config()["configurable"]["thread_id"]
        writer = get_stream_writer()

        def emit(kind: str, payload: dict[str, Any]) -> None:
            writer({"node": name, "kind": kind, "payload": payload})

        with self._active_lock:
            cancel = self._active.get(thread_id)
        if cancel is None:
            return RunContext(thread_id=thread_id, emit=emit)
        return RunContext(thread_id=thread_id, emit=emit, cancelled=cancel.is_set)

    def _interpret(
        self, name: str, state: PlanExecuteState, result: NodeResult, ctx: RunContext
    ) -> dict[str, Any]:
        if isinstance(result, Fatal):
            ctx.emit(EVENT_ERROR, {"error": result.error})
            return {"error": RunError(message=result.error, node=name), "route": END}

        if isinstance(result, Redirect):
            replans = (state.get("replans") or 0) + 1
            if replans > self.config.max_replans:
                message = (
                    f"Giving up after {self.config.max_replans} attempts to re-plan. "
                    f"{result.reason}".strip()
                )
                logger.error("Thread %s: %s", ctx.thread_id, message)
                ctx.emit(EVENT_ERROR, {"error": message})
                return {
                    **result.patch,
                    "error": RunError(message=message, node=name),
                    "route": END,
                    "replans": replans,
                }
            logger.info("Thread %s: %s -> %s (%s)", ctx.thread_id, name, result.node, result.reason)
            return {**result.patch, "route": result.node, "replans": replans}

        if not isinstance(result, Continue):
            raise TypeError(f"Node {name} returned {type(result).__name__}")

        return {**result.patch, "route": self._default_route(name, result.patch)}

    def _default_route(self, name: str, patch: dict[str, Any]) -> str:
        if name == "find":
            # A plan without target files is a complete answer
            return "write" if patch.get("files") else END
        if name == "write":
            return "verify"
        return END

    def compose(self, request: ComposerRequest) -> Iterator[ComposerEvent]:
        """Run the workflow for one user turn.

        Exceptions never escape: failures become composer-error events and
        the checkpointer keeps the state at the last completed node.

        Args:
            request: Thread id and user input

        Yields:
            ComposerEvent for every state change and agent notification
        """
        thread_id = request.thread_id
        run_logger: Optional[RunLogger] = None
        cancel = self._register(thread_id)
        state = fresh_state()

        try:
            if self.llm is None:
                raise ComposerError("No model configured. Set ANTHROPIC_API_KEY in .env")

            self._ensure_thread(request)
            run_logger = RunLogger(self.threads.root, thread_id)
            logger.debug("Run transcript for thread %s: %s", thread_id, run_logger.get_log_path())

            state = self.get_state(thread_id) or fresh_state()

            message: dict[str, Any] = {"role": "user", "content": request.input}
            if request.context_files:
                message["context_files"] = list(request.context_files)

            state = merge_patch(state, {
                "messages": list(state.get("messages") or []) + [message],
                "error": None,
                "route": None,
                "replans": 0,
                "node": "input",
            })
            yield self._event(run_logger, "input", EVENT_STATE, {"state": dump_state(state)})

            run_config = {
                **thread_config(thread_id),
                "recursion_limit": 3 * (self.config.max_replans + 1) + 5,
            }

            for mode, chunk in self.graph.stream(state, run_config, stream_mode=["updates", "custom"]):
                if mode == "custom":
                    yield self._event(run_logger, chunk["node"], chunk["kind"], chunk["payload"])
                else:
                    for node, patch in chunk.items():
                        if node not in NODES or not isinstance(patch, dict):
                            continue
                        state = merge_patch(state, patch)
                        if node == "find" and state.get("implementation_plan"):
                            run_logger.save_plan(state["implementation_plan"])
                        yield self._event(run_logger, node, EVENT_STATE, {"state": dump_state(state)})

                if cancel.is_set():
                    raise CompositionCancelled(thread_id)

            self.threads.touch(thread_id)
            error = state.get("error")
            yield self._event(run_logger, "done", EVENT_DONE, {
                "error": error.message if error else None,
            })

        except CompositionCancelled:
            logger.info("Composition cancelled for thread %s", thread_id)
            yield self._event(run_logger, "cancelled", EVENT_CANCELLED, {"thread_id": thread_id})

        except Exception as e:
            logger.exception("Composition failed for thread %s", thread_id)
            message = f"{type(e).__name__}: {e}"
            try:
                if self.exists(thread_id):
                    state = merge_patch(state, {"error": RunError(message=message, node="compose")})
                    self.save_state(thread_id, state, node="error")
            except (OSError, ValueError, sqlite3.Error) as persist_error:
                logger.error("Could not persist error for thread %s: %s", thread_id, persist_error)
            yield self._event(run_logger, "error", EVENT_ERROR, {"error": message})

        finally:
            self._unregister(thread_id, cancel)

    def cancel_composer(self, thread_id: Optional[str] = None) -> int:
        """Cooperatively cancel one thread's run, or every active run.

        Returns:
            Number of runs signalled
        """
        with self._active_lock:
            if thread_id is None:
                events = list(self._active.values())
            else:
                events = [self._active[thread_id]] if thread_id in self._active else []

        for event in events:
            event.set()
        return len(events)

    def accept_file(self, file: FileRef, thread_id: str) -> tuple[bool, Optional[str]]:
        return self.lifecycle.accept(file, thread_id)

    def reject_file(self, file: FileRef, thread_id: str) -> tuple[bool, Optional[str]]:
        return self.lifecycle.reject(file, thread_id)

    def undo_file(self, file: FileRef, thread_id: str) -> tuple[bool, Optional[str]]:
        return self.lifecycle.undo(file, thread_id)

    def branch_thread(
        self,
        original_thread_id: str,
        checkpoint_id: Optional[str] = None,
        new_thread_id: Optional[str] = None,
    ) -> Optional[PlanExecuteState]:
        """Fork a thread from its latest (or a given) checkpoint.

        Args:
            original_thread_id: Thread to branch from
            checkpoint_id: Checkpoint to branch at (latest when omitted)
            new_thread_id: Id for the new thread (generated when omitted)

        Returns:
            Initial state of the new thread, or None when the source
            checkpoint does not exist or the new id is unusable or taken
        """
        snapshot = self._snapshot(original_thread_id, checkpoint_id)
        if snapshot is None:
            logger.warning("Cannot branch %s: no such checkpoint", original_thread_id)
            return None

        new_thread_id = new_thread_id or uuid.uuid4().hex
        try:
            validate_thread_id(new_thread_id)
        except ValueError as e:
            logger.warning("Cannot branch into %s: %s", new_thread_id, e)
            return None
        if self.exists(new_thread_id):
            logger.warning("Cannot branch into %s: thread already exists", new_thread_id)
            return None

        parent = self.threads.get(original_thread_id)
        self.threads.save(Thread(
            id=new_thread_id,
            title=parent.title if parent else "",
            parent_thread_id=original_thread_id,
            parent_checkpoint_id=snapshot_id(snapshot),
        ))

        self.save_state(new_thread_id, load_state(snapshot.values), node="branch")
        logger.info("Branched %s -> %s", original_thread_id, new_thread_id)
        return self.get_state(new_thread_id)

    def clear_chat_history(self, thread_id: str) -> bool:
        """Checkpoint an empty state on an existing thread.

        Returns:
            True if the thread existed
        """
        if not self.exists(thread_id):
            return False
        self.save_state(thread_id, fresh_state(), node="clear")
        return True

    def get_state(
        self, thread_id: str, checkpoint_id: Optional[str] = None
    ) -> Optional[PlanExecuteState]:
        snapshot = self._snapshot(thread_id, checkpoint_id)
        return load_state(snapshot.values) if snapshot else None

    def save_state(self, thread_id: str, state: PlanExecuteState, node: str) -> None:
        """Checkpoint a change made outside a run (decision, branch, clear).

        The update is recorded as coming from the last node, so the thread
        has nothing left to run afterwards.
        """
        self.graph.update_state(
            thread_config(thread_id), {**state, "node": node}, as_node="verify"
        )
        self.threads.touch(thread_id)

    def exists(self, thread_id: str) -> bool:
        return self._snapshot(thread_id) is not None

    def list_threads(self) -> list[Thread]:
        return self.threads.list_threads()

    def history(self, thread_id: str) -> list[StateSnapshot]:
        """Checkpoints of a thread, oldest first.

        LangGraph's pre-run input checkpoints are skipped; the first
        checkpoint of each turn is the one holding the new user message.
        """
        snapshots = [
            snapshot
            for snapshot in self.graph.get_state_history(thread_config(thread_id))
            if snapshot.values and (snapshot.metadata or {}).get("source") != "input"
        ]
        return list(reversed(snapshots))

    def _snapshot(
        self, thread_id: str, checkpoint_id: Optional[str] = None
    ) -> Optional[StateSnapshot]:
        snapshot = self.graph.get_state(thread_config(thread_id, checkpoint_id))
        return snapshot if snapshot.values else None

    def _ensure_thread(self, request: ComposerRequest) -> None:
        if self.threads.get(request.thread_id) is not None:
            return
        title = request.title
        if not title and request.input.strip():
            title = request.input.strip().splitlines()[0][:60]
        self.threads.save(Thread(id=request.thread_id, title=title or ""))

    def _event(
        self, run_logger: Optional[RunLogger], node: str, kind: str, payload: dict[str, Any]
    ) -> ComposerEvent:
        if run_logger is not None and kind != EVENT_MESSAGE_STREAM:
            run_logger.log_event(node, kind, payload)
        return ComposerEvent(node=node, kind=kind, payload=payload)

    def _register(self, thread_id: str) -> threading.Event:
        event = threading.Event()
        with self._active_lock:
            self._active[thread_id] = event
        return event

    def _unregister(self, thread_id: str, event: threading.Event) -> None:
        with self._active_lock:
            if self._active.get(thread_id) is event:
                del self._active[thread_id]


def _route(state: PlanExecuteState) -> str:
    return state.get("route") or END
