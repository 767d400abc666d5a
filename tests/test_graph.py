"""End-to-end tests for ComposerGraph with a scripted model."""

import pytest

from conftest import chunked, make_file_block, make_plan

from codecomposer.checkpoint import CHECKPOINT_DB, open_checkpointer, snapshot_id
from codecomposer.config import Config
from codecomposer.constants import (
    EVENT_CANCELLED,
    EVENT_DONE,
    EVENT_ERROR,
    EVENT_FILES,
    EVENT_MESSAGE_FINISH,
    EVENT_MESSAGE_STREAM,
    EVENT_STATE,
)
from codecomposer.graph import ComposerEvent, ComposerGraph, ComposerRequest


def run(graph, text="Change the greeting", thread_id="t1", **kwargs):
    return list(graph.compose(ComposerRequest(thread_id=thread_id, input=text, **kwargs)))


def kinds(events):
    return [event.kind for event in events]


def nodes(graph, thread_id="t1"):
    return [snapshot.values.get("node") for snapshot in graph.history(thread_id)]


def script_success(fake_llm):
    fake_llm.streams = [
        chunked(make_plan(
            [("src/main.py", "Change the greeting"), ("src/new.py", "Add a helper")],
            dependencies=["requests"],
        )),
        chunked(make_file_block("src/main.py", "def hello():\n    return 'there'")),
        chunked(make_file_block("src/new.py", "def helper():\n    return 1")),
    ]


class TestCompose:

    def test_full_run(self, graph, fake_llm, test_project):
        script_success(fake_llm)

        events = run(graph)

        assert nodes(graph) == ["input", "find", "write", "verify"]
        assert events[0].kind == EVENT_STATE
        assert events[-1] == ComposerEvent(node="done", kind=EVENT_DONE, payload={"error": None})
        assert {EVENT_MESSAGE_STREAM, EVENT_MESSAGE_FINISH, EVENT_FILES} <= set(kinds(events))
        assert EVENT_ERROR not in kinds(events)

        state = graph.get_state("t1")
        assert state["files"]["src/main.py"].diff == "+1,-1"
        assert state["files"]["src/new.py"].diff == "+2,-0"
        assert state["dependencies"] == ["requests"]
        assert state["error"] is None
        assert state["replans"] == 0
        assert [m["role"] for m in state["messages"]] == ["user", "assistant"]
        assert state["node"] == "verify"

        # Nothing is written before a decision
        assert not (test_project / "src" / "new.py").exists()

    def test_review_after_run(self, graph, fake_llm, test_project):
        script_success(fake_llm)
        run(graph)

        assert graph.accept_file("src/main.py", "t1") == (True, None)
        assert graph.reject_file("src/new.py", "t1") == (True, None)

        assert "there" in (test_project / "src" / "main.py").read_text()
        assert not (test_project / "src" / "new.py").exists()
        assert nodes(graph)[-2:] == ["accept", "reject"]

        assert graph.undo_file("src/main.py", "t1") == (True, None)
        assert (test_project / "src" / "main.py").read_text() == "def hello():\n    return 'world'\n"

    def test_plan_only_answer(self, graph, fake_llm):
        fake_llm.streams = [chunked("Which greeting would you like instead?")]

        events = run(graph)

        assert nodes(graph) == ["input", "find"]
        assert events[-1].payload == {"error": None}
        assert graph.get_state("t1")["files"] == {}
        assert len(fake_llm.stream_calls) == 1

    def test_follow_up_turn_keeps_history(self, graph, fake_llm):
        fake_llm.streams = [["First answer."], ["Second answer."]]

        run(graph, "first question")
        run(graph, "second question", context_files=["src/utils.py"])

        messages = graph.get_state("t1")["messages"]
        assert [m["content"] for m in messages] == [
            "first question", "First answer.", "second question", "Second answer.",
        ]
        assert messages[2]["context_files"] == ["src/utils.py"]

        prompt = fake_llm.stream_calls[1]["messages"][1]["content"]
        assert "User: first question" in prompt
        assert "Assistant: First answer." in prompt

    def test_thread_registered_with_title(self, graph, fake_llm):
        fake_llm.streams = [["ok"]]

        run(graph, "Add logging\nwith details")

        threads = graph.list_threads()
        assert [t.id for t in threads] == ["t1"]
        assert threads[0].title == "Add logging"

    def test_replan_ceiling(self, graph, fake_llm, mock_config):
        plan = chunked(make_plan([("b.ts", "Create the module")]))
        empty = chunked(make_file_block("b.ts", "", language="typescript"))
        fake_llm.streams = [plan, empty] * 3

        events = run(graph)

        errors = [event.payload["error"] for event in events if event.kind == EVENT_ERROR]
        assert len(errors) == 4
        assert errors[-1].startswith(f"Giving up after {mock_config.max_replans} attempts")
        assert "b.ts" in errors[-1]

        state = graph.get_state("t1")
        assert state["replans"] == 3
        assert "Giving up" in state["error"].message
        assert events[-1].kind == EVENT_DONE
        assert "Giving up" in events[-1].payload["error"]
        assert nodes(graph) == ["input", "find", "write", "find", "write", "find", "write"]

        success, error = graph.accept_file("b.ts", "t1")
        assert not success
        assert "No generated code" in error

    def test_replan_recovers(self, graph, fake_llm):
        plan = chunked(make_plan([("b.ts", "Create the module")]))
        fake_llm.streams = [
            plan,
            chunked(make_file_block("b.ts", "")),
            plan,
            chunked(make_file_block("b.ts", "export const b = 1;", language="typescript")),
        ]

        events = run(graph)

        assert events[-1].payload == {"error": None}
        state = graph.get_state("t1")
        assert state["replans"] == 1
        assert state["files"]["b.ts"].code == "export const b = 1;"

    def test_model_failure_is_fatal(self, graph, fake_llm):
        def fail(index, chunk):
            raise RuntimeError("model exploded")

        fake_llm.streams = [["partial"]]
        fake_llm.on_chunk = fail

        events = run(graph)

        assert EVENT_ERROR in kinds(events)
        assert events[-1].payload["error"] == "RuntimeError: model exploded"
        state = graph.get_state("t1")
        assert state["error"].node == "find"
        assert state["error"].fatal is True
        assert nodes(graph) == ["input", "find"]

    def test_cancel_during_stream(self, graph, fake_llm):
        def cancel(index, chunk):
            if index == 1:
                assert graph.cancel_composer("t1") == 1

        fake_llm.streams = [chunked(make_plan([("src/main.py", "Edit")]))]
        fake_llm.on_chunk = cancel

        events = run(graph)

        assert events[-1].kind == EVENT_CANCELLED
        assert events[-1].payload == {"thread_id": "t1"}
        assert EVENT_DONE not in kinds(events)
        assert nodes(graph) == ["input"]
        assert graph.cancel_composer("t1") == 0

    def test_run_after_cancel(self, graph, fake_llm):
        def cancel(index, chunk):
            if index == 1:
                graph.cancel_composer("t1")

        fake_llm.streams = [chunked(make_plan([("src/main.py", "Edit")]))]
        fake_llm.on_chunk = cancel
        run(graph, "first try")

        fake_llm.on_chunk = None
        fake_llm.streams = [["Nothing to change."]]
        events = run(graph, "second try")

        assert events[-1].payload == {"error": None}
        assert nodes(graph) == ["input", "input", "find"]
        contents = [m["content"] for m in graph.get_state("t1")["messages"]]
        assert contents == ["first try", "second try", "Nothing to change."]

    def test_resume_after_restart(self, graph, fake_llm, test_project, mock_config, state_dir):
        fake_llm.streams = [["First answer."]]
        run(graph, "first question")

        saver = open_checkpointer(state_dir / CHECKPOINT_DB)
        restarted = ComposerGraph(test_project, fake_llm, saver, mock_config)
        fake_llm.streams = [["Second answer."]]
        run(restarted, "second question")

        messages = restarted.get_state("t1")["messages"]
        assert [m["content"] for m in messages] == [
            "first question", "First answer.", "second question", "Second answer.",
        ]
        saver.conn.close()

    def test_unreadable_file_is_never_deleted(self, graph, fake_llm, test_project):
        legacy = test_project / "legacy.txt"
        legacy.write_bytes("caf\xe9\n".encode("latin-1"))
        fake_llm.streams = [chunked(make_plan([("legacy.txt", "Translate")]))]

        events = run(graph)

        assert "Cannot edit legacy.txt: File is not valid UTF-8 text" in [
            event.payload.get("error") for event in events if event.kind == EVENT_ERROR
        ]
        assert graph.get_state("t1")["files"] == {}
        success, _ = graph.undo_file("legacy.txt", "t1")
        assert not success
        assert legacy.read_bytes() == "caf\xe9\n".encode("latin-1")

    def test_cancel_unknown_thread(self, graph):
        assert graph.cancel_composer("nobody") == 0
        assert graph.cancel_composer() == 0

    def test_invalid_thread_id_reported(self, graph, fake_llm):
        events = run(graph, thread_id="../escape")

        assert kinds(events) == [EVENT_ERROR]
        assert "Invalid thread id" in events[0].payload["error"]
        assert graph.list_threads() == []

    def test_no_model_configured(self, test_project, checkpointer, mock_config):
        graph = ComposerGraph(test_project, None, checkpointer, mock_config)

        events = run(graph)

        assert kinds(events) == [EVENT_ERROR]
        assert "No model configured" in events[0].payload["error"]
        assert not graph.exists("t1")

    def test_run_transcript_written(self, graph, fake_llm, state_dir):
        script_success(fake_llm)

        run(graph)

        runs = list((state_dir / "runs" / "t1").iterdir())
        assert len(runs) == 1
        assert (runs[0] / "events.ndjson").exists()
        assert "### Required File Changes" in (runs[0] / "plan.md").read_text()


class TestThreads:

    def test_branch_is_isolated(self, graph, fake_llm):
        script_success(fake_llm)
        run(graph)
        before = [(snapshot_id(s), s.values.get("node")) for s in graph.history("t1")]

        branched = graph.branch_thread("t1", new_thread_id="t2")

        assert branched is not None
        assert graph.accept_file("src/main.py", "t2") == (True, None)
        assert graph.get_state("t2")["files"]["src/main.py"].accepted is True
        assert graph.get_state("t1")["files"]["src/main.py"].accepted is None
        assert [(snapshot_id(s), s.values.get("node")) for s in graph.history("t1")] == before

        thread = {t.id: t for t in graph.list_threads()}["t2"]
        assert thread.parent_thread_id == "t1"
        assert thread.parent_checkpoint_id == before[-1][0]
        assert nodes(graph, "t2") == ["branch", "accept"]

    def test_branch_from_earlier_checkpoint(self, graph, fake_llm):
        script_success(fake_llm)
        run(graph)
        find_checkpoint = graph.history("t1")[1]

        state = graph.branch_thread("t1", snapshot_id(find_checkpoint), "t2")

        assert all(record.code is None for record in state["files"].values())

    def test_branch_failures(self, graph, fake_llm):
        fake_llm.streams = [["ok"]]
        run(graph)

        assert graph.branch_thread("missing", new_thread_id="t2") is None
        assert graph.branch_thread("t1", "no-such-checkpoint", "t2") is None
        assert graph.branch_thread("t1", new_thread_id="t1") is None
        assert graph.branch_thread("t1", new_thread_id="../escape") is None

    def test_branch_generates_id(self, graph, fake_llm):
        fake_llm.streams = [["ok"]]
        run(graph)

        graph.branch_thread("t1")

        assert len(graph.list_threads()) == 2

    def test_clear_chat_history(self, graph, fake_llm):
        script_success(fake_llm)
        run(graph)
        versions = len(graph.history("t1"))

        assert graph.clear_chat_history("t1") is True

        state = graph.get_state("t1")
        assert state["messages"] == []
        assert state["files"] == {}
        assert len(graph.history("t1")) == versions + 1
        assert graph.clear_chat_history("missing") is False

    def test_get_state_of_missing_thread(self, graph):
        assert graph.get_state("missing") is None
        assert graph.history("missing") == []


class TestFromConfig:

    def test_requires_api_key(self, test_project, state_dir):
        config = Config(anthropic_api_key=None, checkpoint_dir=state_dir)

        with pytest.raises(ValueError):
            ComposerGraph.from_config(test_project, config)

    def test_without_model(self, test_project, state_dir):
        config = Config(anthropic_api_key=None, checkpoint_dir=state_dir)

        graph = ComposerGraph.from_config(test_project, config, require_llm=False)

        assert graph.llm is None
        assert graph.threads.root == state_dir
        assert graph.graph.checkpointer is graph.checkpointer
        graph.checkpointer.conn.close()

    def test_unknown_model(self, test_project, state_dir):
        config = Config(anthropic_api_key="key", default_model="openai:gpt", checkpoint_dir=state_dir)

        with pytest.raises(ValueError):
            ComposerGraph.from_config(test_project, config)
