"""Code search boundary used by the planner's tools.

The embedding-backed index of a real host is out of scope here; anything
implementing CodeSearch can be passed to the graph. LexicalSearch is the
built-in implementation: it ranks workspace files by query term overlap.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional, Protocol

from codecomposer.tools.file_index import FileIndex
from codecomposer.tools.read_write import ReadWrite

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]+")
SNIPPET_LINES = 20


@dataclass
class SearchResult:
    """A ranked file snippet."""

    path: str
    score: float
    snippet: str


class CodeSearch(Protocol):
    """Code index collaborator consumed by the planner."""

    def search(self, query: str, k: int) -> list[SearchResult]:
        ...

    def read_file(self, path: str) -> Optional[str]:
        ...


def _tokens(text: str) -> list[str]:
    tokens = []
    for token in TOKEN_PATTERN.findall(text):
        # Split camelCase and snake_case so "userService" matches "user_service"
        parts = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", token).replace("_", " ").split()
        tokens.extend(part.lower() for part in parts if len(part) > 1)
    return tokens


class LexicalSearch:
    """Term-overlap ranking over the files of the workspace."""

    def __init__(self, file_index: FileIndex, read_write: ReadWrite, max_depth: int = 12):
        self.file_index = file_index
        self.read_write = read_write
        self.max_depth = max_depth

    def read_file(self, path: str) -> Optional[str]:
        success, content, _ = self.read_write.read(path)
        return content if success else None

    def search(self, query: str, k: int = 5) -> list[SearchResult]:
        query_terms = set(_tokens(query))
        if not query_terms:
            return []

        results = []
        for entry in self.file_index.scan(self.max_depth):
            content = self.read_file(entry.path)
            if content is None:
                continue

            counts = Counter(_tokens(content))
            path_terms = set(_tokens(entry.path))
            matched = {term for term in query_terms if counts[term] or term in path_terms}
            if not matched:
                continue

            # Coverage of the query dominates, raw frequency breaks ties
            score = len(matched) / len(query_terms)
            score += 0.5 * len(matched & path_terms) / len(query_terms)
            score += min(sum(counts[term] for term in matched), 50) / 1000

            results.append(SearchResult(
                path=entry.path,
                score=round(score, 4),
                snippet=self._snippet(content, matched),
            ))

        results.sort(key=lambda result: (-result.score, result.path))
        return results[:k]

    def _snippet(self, content: str, terms: set[str]) -> str:
        lines = content.splitlines()
        for index, line in enumerate(lines):
            if set(_tokens(line)) & terms:
                start = max(index - 2, 0)
                return "\n".join(lines[start:start + SNIPPET_LINES])
        return "\n".join(lines[:SNIPPET_LINES])
