"""Tool definitions and execution for the planner agent."""

import json
import logging
from typing import Any

from codecomposer.constants import SEARCH_RESULTS
from codecomposer.tools.search import CodeSearch

logger = logging.getLogger(__name__)


class ToolBox:
    """Binds read_file and semantic_search_codebase to a CodeSearch."""

    def __init__(self, search: CodeSearch, k: int = SEARCH_RESULTS):
        self.search = search
        self.k = k

    def get_tools(self) -> list[dict]:
        """Get tool definitions for the LLM.

        Returns:
            List of tool definitions in OpenAI format
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": "read_file",
                    "description": (
                        "Reads the exact contents of a specific file. Use this to check dependency "
                        "management files (package.json, pyproject.toml, requirements.txt), "
                        "configuration files, or a file you already know the path to."
                    ),
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "path": {
                                "type": "string",
                                "description": "Workspace-relative path of the file to read",
                            }
                        },
                        "required": ["path"],
                    },
                },
            },
            {
                "type": "function",
                "function": {
                    "name": "semantic_search_codebase",
                    "description": "Search the codebase for files relevant to a natural language query",
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "query": {
                                "type": "string",
                                "description": "What to look for",
                            }
                        },
                        "required": ["query"],
                    },
                },
            },
        ]

    def execute(self, tool_name: str, arguments: Any) -> str:
        """Execute a tool call.

        Args:
            tool_name: Name of the tool to execute
            arguments: Tool arguments (dict or JSON string)

        Returns:
            Tool execution result as string
        """
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {}
        arguments = arguments or {}

        if tool_name == "read_file":
            path = arguments.get("path")
            if not path:
                return "Error: path is required"
            content = self.search.read_file(path)
            if content is None:
                return f"Error: file not found: {path}"
            return f"File: {path}\n\n{content}"

        if tool_name == "semantic_search_codebase":
            query = arguments.get("query")
            if not query:
                return "Error: query is required"
            results = self.search.search(query, self.k)
            if not results:
                return "No matching files found."
            return "\n\n".join(
                f"File: {result.path} (score {result.score})\n{result.snippet}"
                for result in results
            )

        return f"Error: Unknown tool {tool_name}"
