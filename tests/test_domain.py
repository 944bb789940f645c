"""Domain helpers, line diffs and error classification."""

from __future__ import annotations

import logging

import pytest

from refmt.lib.diff import TextEdit, apply_edits, compute_edits
from refmt.lib.domain import Range, join_lines, range_from_selection, split_lines
from refmt.lib.errors import ErrorDebouncer, ErrorKind, FormatError, level_for_kind


def test_selection_is_normalized_when_made_backwards() -> None:
    same_row = range_from_selection((3, 9), (3, 2), "v")
    across_rows = range_from_selection((5, 4), (2, 7), "v")

    assert same_row == Range(start=(3, 1), end=(3, 8))
    assert across_rows == Range(start=(2, 6), end=(5, 3))


def test_linewise_selection_spans_whole_lines() -> None:
    selected = range_from_selection((2, 5), (4, 1), "V", end_line_length=12)

    assert selected == Range(start=(2, 0), end=(4, 11))
    assert selected.contains_row(3)
    assert not selected.contains_row(5)


def test_split_and_join_track_trailing_newline() -> None:
    assert split_lines("a\nb\n") == (["a", "b"], True)
    assert split_lines("a\nb") == (["a", "b"], False)
    assert split_lines("") == ([""], False)
    assert join_lines(["a", "b"], True) == "a\nb\n"
    assert join_lines([], True) == ""


def test_compute_edits_touches_only_changed_hunks() -> None:
    old = "import os\nx=1\ny = 2\n\n\nprint(x)\n"
    new = "import os\nx = 1\ny = 2\n\nprint(x)\n"

    edits = compute_edits(old, new)

    assert all(edit.start != 0 for edit in edits)
    assert edits[0] == TextEdit(start=1, end=2, lines=("x = 1\n",))
    assert apply_edits(old, edits) == new
    assert compute_edits(new, new) == []


def test_apply_edits_rejects_edits_outside_the_text() -> None:
    with pytest.raises(ValueError, match="outside of a 2-line text"):
        apply_edits("a\nb\n", [TextEdit(start=1, end=5, lines=("x\n",))])


def test_error_levels_follow_kind() -> None:
    assert level_for_kind(ErrorKind.CANCELLED) == logging.DEBUG
    assert level_for_kind(ErrorKind.TARGET_CHANGED) == logging.INFO
    assert level_for_kind(ErrorKind.NO_FORMATTERS) == logging.WARNING
    assert FormatError(ErrorKind.TIMEOUT, "slow").level == logging.ERROR
    assert FormatError(ErrorKind.CONFIGURATION, "bad").level == logging.ERROR


def test_debouncer_window_and_clear() -> None:
    now = [100.0]
    debouncer = ErrorDebouncer(window_seconds=10, clock=lambda: now[0])

    assert debouncer.observe("black", "exit 1") is False
    now[0] += 5
    assert debouncer.observe("black", "exit 1") is True
    assert debouncer.observe("black", "exit 2") is False
    assert debouncer.observe("isort", "exit 1") is False
    now[0] += 11
    assert debouncer.observe("black", "exit 1") is False

    debouncer.clear("black")
    assert debouncer.observe("black", "exit 1") is False
    assert debouncer.observe("isort", "exit 1") is False
