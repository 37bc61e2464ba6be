"""Tests for the line level diff."""

from pathlib import Path
import sys

# Ensure src directory is on the path
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from visualdiff.core.diff import compute_diff, describe_summary, split_lines


def _shape(result):
    return [(l.classification, l.old_line, l.new_line, l.content) for l in result.lines]


def test_identical_texts_are_all_unchanged():
    text = "Title\n\nFirst paragraph.\nSecond paragraph.\n"
    result = compute_diff(text, text)

    assert result.summary.added == 0
    assert result.summary.removed == 0
    assert result.summary.modified == 0
    assert result.summary.unchanged == 3
    assert all(line.classification == "unchanged" for line in result.lines)
    assert result.words.total_changed_words == 0


def test_identical_500_line_documents():
    text = "\n".join(f"Line number {i} of the article" for i in range(500))
    result = compute_diff(text, text)

    assert result.summary.to_dict() == {"added": 0, "removed": 0, "modified": 0, "unchanged": 500}


def test_empty_original_marks_everything_added():
    result = compute_diff("", "one\n\ntwo\nthree")

    assert [l.classification for l in result.lines] == ["added"] * 3
    assert [l.new_line for l in result.lines] == [1, 3, 4]
    assert all(l.old_line is None for l in result.lines)


def test_empty_modified_marks_everything_removed():
    result = compute_diff("one\ntwo", "")

    assert _shape(result) == [("removed", 1, None, "one"), ("removed", 2, None, "two")]


def test_both_empty():
    result = compute_diff("", "")

    assert result.lines == ()
    assert not result.summary.has_changes


def test_changed_line_between_anchors_is_modified():
    result = compute_diff("a\nb\nc", "a\nx\nc")

    assert _shape(result) == [
        ("unchanged", 1, 1, "a"),
        ("modified", 2, 2, "x"),
        ("unchanged", 3, 3, "c"),
    ]
    assert result.lines[1].previous == "b"


def test_surplus_new_lines_after_pairing_are_added():
    result = compute_diff("a\nb\nc\nz", "a\nX\nY\nZ\nz")

    assert _shape(result) == [
        ("unchanged", 1, 1, "a"),
        ("modified", 2, 2, "X"),
        ("modified", 3, 3, "Y"),
        ("added", None, 4, "Z"),
        ("unchanged", 4, 5, "z"),
    ]
    assert result.summary.modified == 2
    assert result.summary.added == 1


def test_appended_line():
    result = compute_diff("a\nb", "a\nb\nc")

    assert _shape(result)[-1] == ("added", None, 3, "c")
    assert result.summary.unchanged == 2


def test_ties_prefer_the_earliest_match():
    result = compute_diff("x\ny", "y\nx")

    assert _shape(result) == [
        ("removed", 1, None, "x"),
        ("unchanged", 2, 1, "y"),
        ("added", None, 2, "x"),
    ]


def test_whitespace_only_differences_are_not_changes():
    result = compute_diff("alpha  \n   beta\n\n\n", "alpha\nbeta")

    assert not result.summary.has_changes
    assert _shape(result) == [("unchanged", 1, 1, "alpha"), ("unchanged", 2, 2, "beta")]


def test_blank_lines_keep_raw_line_numbers():
    assert split_lines("a\r\n\r\nb\n") == [(1, "a"), (3, "b")]


def test_diff_is_deterministic():
    old = "Intro\nBody one\nBody two\nOutro"
    new = "Intro\nBody 1\nBody two\nNew section\nOutro"

    assert compute_diff(old, new).to_json() == compute_diff(old, new).to_json()


def test_describe_summary():
    assert describe_summary(compute_diff("a", "a")) == "No changes detected"
    assert describe_summary(compute_diff("a\nb", "a\nc\nd")) == "1 line added, 1 line modified"
    assert describe_summary(compute_diff("a\nb\nc", "")) == "3 lines removed"
