"""LLM abstraction layer for Anthropic Claude models."""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Generator, Literal, Optional

from anthropic import Anthropic

from codecomposer.constants import (
    DEFAULT_MODEL_RETRIES,
    DEFAULT_MODEL_TIMEOUT,
    SUPPORTED_MODELS,
)

logger = logging.getLogger(__name__)


@dataclass
class ModelDescriptor:
    """Descriptor for an LLM model."""

    provider: Literal["anthropic"]
    name: str
    max_output_tokens: int
    temperature: float = 0.0


class LLM:
    """Anthropic Claude LLM interface.

    Timeout and retry count are fixed when the client is built; individual
    calls do not negotiate them.
    """

    def __init__(
        self,
        descriptor: ModelDescriptor,
        api_key: str,
        timeout: float = DEFAULT_MODEL_TIMEOUT,
        max_retries: int = DEFAULT_MODEL_RETRIES,
    ):
        """Initialize LLM client.

        Args:
            descriptor: Model descriptor
            api_key: Anthropic API key
            timeout: Request timeout in seconds
            max_retries: Retries on transient provider errors
        """
        self.descriptor = descriptor

        if descriptor.provider != "anthropic":
            raise ValueError(f"Only Anthropic models are supported. Got: {descriptor.provider}")

        self.client = Anthropic(api_key=api_key, timeout=timeout, max_retries=max_retries)

    def complete(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> dict[str, Any]:
        """Generate a completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            tools: Optional list of tool definitions (OpenAI format)
            temperature: Optional temperature override
            max_tokens: Optional max tokens override

        Returns:
            Response dict with 'content', optional 'tool_calls'
        """
        kwargs = self._request_kwargs(messages, tools, temperature, max_tokens)
        response = self.client.messages.create(**kwargs)

        result: dict[str, Any] = {
            "role": "assistant",
            "content": "",
        }

        tool_calls = []
        for block in response.content:
            if block.type == "text":
                result["content"] += block.text
            elif block.type == "tool_use":
                tool_calls.append({
                    "id": block.id,
                    "name": block.name,
                    "arguments": block.input,
                })

        if tool_calls:
            result["tool_calls"] = tool_calls

        return result

    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Generator[str, None, None]:
        """Generate a streaming completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            tools: Tool definitions already used in the conversation (OpenAI format)
            temperature: Optional temperature override
            max_tokens: Optional max tokens override

        Yields:
            Text chunks as they arrive
        """
        kwargs = self._request_kwargs(messages, tools, temperature, max_tokens)

        with self.client.messages.stream(**kwargs) as stream:
            for text in stream.text_stream:
                yield text

    def _request_kwargs(
        self,
        messages: list[dict[str, Any]],
        tools: Optional[list[dict]],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> dict[str, Any]:
        """Split out system messages; other keys (e.g. context_files) are dropped."""
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")

        chat_messages = [
            {k: copy.deepcopy(v) for k, v in m.items() if k in ("role", "content")}
            for m in messages
            if m["role"] != "system"
        ]

        kwargs: dict[str, Any] = {
            "model": self.descriptor.name,
            "messages": chat_messages,
            "temperature": temperature if temperature is not None else self.descriptor.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self.descriptor.max_output_tokens,
        }

        if system:
            kwargs["system"] = system

        if tools:
            kwargs["tools"] = self._convert_tools_to_anthropic(tools)

        return kwargs

    def _convert_tools_to_anthropic(self, openai_tools: list[dict]) -> list[dict]:
        """Convert OpenAI tool format to Anthropic format.

        Args:
            openai_tools: List of OpenAI tool definitions

        Returns:
            List of Anthropic tool definitions
        """
        anthropic_tools = []
        for tool in openai_tools:
            if tool["type"] == "function":
                func = tool["function"]
                anthropic_tools.append({
                    "name": func["name"],
                    "description": func.get("description", ""),
                    "input_schema": func.get("parameters", {}),
                })
        return anthropic_tools

    @classmethod
    def parse_model_string(cls, model_str: str) -> ModelDescriptor:
        """Parse model string into ModelDescriptor.

        Args:
            model_str: Model string (e.g., "anthropic:claude-sonnet-4-5")

        Returns:
            ModelDescriptor

        Raises:
            ValueError: If model string is invalid
        """
        if model_str not in SUPPORTED_MODELS:
            raise ValueError(
                f"Unsupported model: {model_str}. "
                f"Supported: {', '.join(SUPPORTED_MODELS.keys())}"
            )

        model_config = SUPPORTED_MODELS[model_str]
        return ModelDescriptor(
            provider=model_config["provider"],
            name=model_config["name"],
            max_output_tokens=model_config["max_output_tokens"],
        )

    @classmethod
    def list_models(cls) -> list[str]:
        """List all supported model strings.

        Returns:
            List of model strings
        """
        return list(SUPPORTED_MODELS.keys())
