"""Tests for diff statistics."""

from codecomposer.utils.diffs import compute_diff_stat, create_patch, normalize_line_endings


def test_new_file_counts_only_additions():
    assert compute_diff_stat("", "line1\nline2\n", "new.ts") == "+2,-0"


def test_none_original_is_a_new_file():
    assert compute_diff_stat(None, "a\nb\nc", "new.py") == "+3,-0"


def test_modification():
    original = "one\ntwo\nthree\n"
    proposed = "one\n2\nthree\nfour\n"

    assert compute_diff_stat(original, proposed, "numbers.txt") == "+2,-1"


def test_identical_content():
    assert compute_diff_stat("same\n", "same\n", "same.txt") == "+0,-0"


def test_headers_not_counted():
    # Lines that look like diff headers are still content
    original = "keep\n"
    proposed = "keep\n--- not a header\n+++ nor this\n"

    assert compute_diff_stat(original, proposed, "tricky.txt") == "+2,-0"


def test_line_endings_ignored():
    assert compute_diff_stat("a\r\nb\r\n", "a\nb\n", "crlf.txt") == "+0,-0"


def test_failures_return_empty_stat():
    assert compute_diff_stat("a", "b", "") == "+0,-0"
    assert compute_diff_stat("a", None, "file.py") == "+0,-0"
    assert compute_diff_stat("a", 42, "file.py") == "+0,-0"


def test_deterministic():
    original = "x = 1\ny = 2\n"
    proposed = "x = 1\ny = 3\nz = 4\n"

    results = {compute_diff_stat(original, proposed, "vars.py") for _ in range(5)}

    assert results == {"+2,-1"}


def test_create_patch():
    patch = create_patch("a\n", "a\nb\n", "file.txt")

    assert patch.startswith("--- a/file.txt\n+++ b/file.txt\n")
    assert "+b\n" in patch
    assert create_patch("same", "same", "file.txt") == ""


def test_normalize_line_endings():
    assert normalize_line_endings("a\r\nb\rc\n") == "a\nb\nc\n"
