"""Tests for lexical search and the planner tool bindings."""

import pytest

from codecomposer.tools.bindings import ToolBox
from codecomposer.tools.file_index import FileIndex
from codecomposer.tools.read_write import ReadWrite
from codecomposer.tools.search import LexicalSearch


@pytest.fixture
def search(test_project, ignore_rules):
    return LexicalSearch(FileIndex(test_project, ignore_rules), ReadWrite(test_project))


def test_search_finds_matching_files(search):
    results = {result.path: result for result in search.search("hello", k=5)}

    assert set(results) == {"src/main.py", "tests/test_main.py"}
    assert "def hello" in results["src/main.py"].snippet


def test_search_splits_identifiers(search, test_project):
    (test_project / "src" / "service.py").write_text("class UserService:\n    pass\n")

    results = search.search("user_service")

    assert results[0].path == "src/service.py"


def test_search_without_terms(search):
    assert search.search("?? !!") == []


def test_search_limit(search):
    assert len(search.search("def return", k=1)) == 1


def test_tool_definitions():
    toolbox = ToolBox(search=None)

    names = [tool["function"]["name"] for tool in toolbox.get_tools()]

    assert names == ["read_file", "semantic_search_codebase"]


def test_read_file_tool(search):
    toolbox = ToolBox(search)

    assert toolbox.execute("read_file", {"path": "src/utils.py"}).startswith("File: src/utils.py\n\ndef add")
    assert toolbox.execute("read_file", '{"path": "missing.py"}') == "Error: file not found: missing.py"
    assert toolbox.execute("read_file", {}) == "Error: path is required"


def test_read_file_tool_stays_in_workspace(search):
    result = ToolBox(search).execute("read_file", {"path": "../outside.txt"})

    assert result.startswith("Error")


def test_search_tool(search):
    toolbox = ToolBox(search)

    result = toolbox.execute("semantic_search_codebase", {"query": "add numbers"})

    assert "File: src/utils.py" in result
    assert toolbox.execute("semantic_search_codebase", {"query": "zzzqqq"}) == "No matching files found."


def test_unknown_tool(search):
    assert ToolBox(search).execute("delete_everything", {}) == "Error: Unknown tool delete_everything"


def test_malformed_arguments(search):
    assert ToolBox(search).execute("read_file", "{not json") == "Error: path is required"
