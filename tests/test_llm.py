"""Tests for the Anthropic client wrapper (no network access)."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from codecomposer.llm import LLM
from codecomposer.tools.bindings import ToolBox


@pytest.fixture
def llm():
    client = LLM(LLM.parse_model_string("anthropic:claude-sonnet-4-5"), api_key="test_key")
    client.client = MagicMock()
    return client


def test_parse_model_string():
    descriptor = LLM.parse_model_string("anthropic:claude-haiku-4-5")

    assert descriptor.provider == "anthropic"
    assert descriptor.name.startswith("claude-haiku-4-5")


def test_unknown_model():
    with pytest.raises(ValueError, match="Unsupported model"):
        LLM.parse_model_string("openai:gpt-4o")


def test_system_messages_moved_out(llm):
    kwargs = llm._request_kwargs(
        [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi", "context_files": ["a.py"]},
        ],
        tools=None,
        temperature=None,
        max_tokens=None,
    )

    assert kwargs["system"] == "Be brief."
    assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]
    assert kwargs["temperature"] == 0.0
    assert "tools" not in kwargs


def test_tools_converted(llm):
    kwargs = llm._request_kwargs(
        [{"role": "user", "content": "Hi"}], ToolBox(search=None).get_tools(), 0.5, 100
    )

    assert [tool["name"] for tool in kwargs["tools"]] == ["read_file", "semantic_search_codebase"]
    assert kwargs["tools"][0]["input_schema"]["required"] == ["path"]
    assert kwargs["max_tokens"] == 100


def test_content_blocks_passed_through(llm):
    blocks = [
        {"type": "text", "text": "Looking"},
        {"type": "tool_use", "id": "c1", "name": "read_file", "input": {"path": "a.py"}},
    ]
    results = [{"type": "tool_result", "tool_use_id": "c1", "content": "x = 1"}]

    kwargs = llm._request_kwargs(
        [
            {"role": "system", "content": "One."},
            {"role": "system", "content": "Two."},
            {"role": "assistant", "content": blocks},
            {"role": "user", "content": results},
        ],
        None, None, None,
    )

    assert kwargs["system"] == "One.\n\nTwo."
    assert kwargs["messages"] == [
        {"role": "assistant", "content": blocks},
        {"role": "user", "content": results},
    ]
    assert kwargs["messages"][0]["content"] is not blocks


def test_complete_collects_text_and_tool_calls(llm):
    llm.client.messages.create.return_value = SimpleNamespace(content=[
        SimpleNamespace(type="text", text="Let me check. "),
        SimpleNamespace(type="tool_use", id="c1", name="read_file", input={"path": "a.py"}),
    ])

    result = llm.complete([{"role": "user", "content": "Hi"}])

    assert result["content"] == "Let me check. "
    assert result["tool_calls"] == [{"id": "c1", "name": "read_file", "arguments": {"path": "a.py"}}]


def test_complete_without_tools(llm):
    llm.client.messages.create.return_value = SimpleNamespace(content=[
        SimpleNamespace(type="text", text="Done"),
    ])

    result = llm.complete([{"role": "user", "content": "Hi"}])

    assert result == {"role": "assistant", "content": "Done"}


def test_stream_yields_text(llm):
    stream = MagicMock()
    stream.__enter__.return_value = SimpleNamespace(text_stream=iter(["a", "b"]))
    llm.client.messages.stream.return_value = stream

    assert list(llm.stream([{"role": "user", "content": "Hi"}])) == ["a", "b"]
