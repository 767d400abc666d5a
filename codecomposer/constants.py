"""Constants and default values for codecomposer."""

import re

# Default model configuration
DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"

# Model invocation policy
DEFAULT_MODEL_TIMEOUT = 120  # seconds
DEFAULT_MODEL_RETRIES = 2

# Workflow policy
DEFAULT_MAX_REPLANS = 2
MAX_TOOL_ITERATIONS = 10
DEFAULT_SCAN_DEPTH = 12
SEARCH_RESULTS = 5

# File size limits (in MB)
DEFAULT_MAX_READ_MB = 8
DEFAULT_MAX_WRITE_MB = 2

# Per-workspace state lives under ~/.codecomposer/<workspace name>/
STATE_HOME = ".codecomposer"

# Diff summary used whenever stats cannot be computed
EMPTY_DIFF = "+0,-0"

# Code writer output delimiters
FILE_START = "===FILE_START==="
FILE_END = "===FILE_END==="
FILE_SEPARATOR = "<FILE_SEPARATOR>"

FILE_FIELD_PATTERNS = {
    "path": re.compile(r"^[ \t]*Path:[ \t]*(.*?)[ \t]*$", re.MULTILINE),
    "language": re.compile(r"^[ \t]*Language:[ \t]*(.*?)[ \t]*$", re.MULTILINE),
    "description": re.compile(r"^[ \t]*Description:[ \t]*(.*?)[ \t]*$", re.MULTILINE),
    "dependencies": re.compile(r"^[ \t]*Dependencies:[ \t]*(.*?)[ \t]*$", re.MULTILINE),
}
FILE_CODE_PATTERN = re.compile(r"^[ \t]*Code:[ \t]*\r?\n(.*)\Z", re.MULTILINE | re.DOTALL)

# Planner output sections
FILE_CHANGES_HEADER = re.compile(r"###[ \t]*Required[ \t]*File[ \t]*Changes[ \t]*\r?\n", re.IGNORECASE)
DEPENDENCIES_HEADER = re.compile(r"^[ \t]*###[ \t]*New[ \t]*Dependencies[ \t]*$\r?\n?", re.IGNORECASE | re.MULTILINE)
SECTION_MARKER = re.compile(r"###")
LINE_SECTION_MARKER = re.compile(r"^[ \t]*###", re.MULTILINE)

FILE_ENTRY_PATTERN = re.compile(
    r"[-*•][ \t]*File:[ \t]*[`'\"]*([^`'\"\n]+)[`'\"]*\s*(?:[-*•])?\s*Analysis:[ \t]*"
    r"((?:(?![-*•][ \t]*File:|###).)*)",
    re.IGNORECASE | re.DOTALL,
)
PACKAGE_NAME_PATTERN = re.compile(r"^`?(@?[A-Za-z0-9._-]+(?:/[A-Za-z0-9._-]+)?)`?")
NO_DEPENDENCY_VALUES = {"", "none", "n/a", "na", "no", "no new dependencies", "no dependencies", "-"}

# Event kinds pushed to the host
EVENT_STATE = "state"
EVENT_ERROR = "composer-error"
EVENT_FILES = "composer-files"
EVENT_MESSAGE_STREAM = "composer-message-stream"
EVENT_MESSAGE_FINISH = "composer-message-stream-finish"
EVENT_CANCELLED = "composer-cancelled"
EVENT_DONE = "composer-done"

# Built-in ignore patterns
BUILTIN_IGNORES = [
    # Version control and project metadata
    ".git/",
    ".github/",

    # codecomposer internal
    ".codecomposer/",
    ".composer/",

    # Python
    "__pycache__/",
    "*.pyc",
    "*.pyo",
    "*.egg-info/",
    ".pytest_cache/",
    ".mypy_cache/",
    ".ruff_cache/",
    ".tox/",

    # Virtual environments
    "venv/",
    ".venv/",

    # Build artifacts
    "dist/",
    "build/",
    "out/",
    "*.so",
    "*.dylib",
    "*.dll",

    # JavaScript/Node
    "node_modules/",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",

    # IDE and editor files
    ".DS_Store",
    "*.swp",
    ".vscode/",
    ".idea/",

    # Logs and databases
    "*.log",
    "*.sqlite",
    "*.db",
]

# Files that describe the project to the planner, in priority order
PROJECT_DETAIL_FILES = ["AGENTS.md", "README.md", "readme.md"]
PROJECT_DETAILS_MAX_CHARS = 4000

# Language detection by extension
LANGUAGE_MAP = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".c": "c",
    ".cpp": "cpp",
    ".h": "c",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".kt": "kotlin",
    ".sh": "shell",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".sql": "sql",
}

# Model descriptors - Anthropic Claude models only
SUPPORTED_MODELS = {
    "anthropic:claude-sonnet-4-5": {
        "provider": "anthropic",
        "name": "claude-sonnet-4-5-20250929",
        "max_output_tokens": 8192,
    },
    "anthropic:claude-haiku-4-5": {
        "provider": "anthropic",
        "name": "claude-haiku-4-5-20251001",
        "max_output_tokens": 8192,
    },
    "anthropic:claude-opus-4-1": {
        "provider": "anthropic",
        "name": "claude-opus-4-1-20250805",
        "max_output_tokens": 8192,
    },
}
