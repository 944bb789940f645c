"""Minimal line edits between two texts."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from difflib import SequenceMatcher


@dataclass(frozen=True, slots=True)
class TextEdit:
    """Replace lines ``[start, end)`` (0-indexed) with ``lines``."""

    start: int
    end: int
    lines: tuple[str, ...]


def _keepends(text: str) -> list[str]:
    return text.splitlines(keepends=True)


def compute_edits(old_text: str, new_text: str) -> list[TextEdit]:
    """Return the line hunks turning ``old_text`` into ``new_text``."""

    old_lines = _keepends(old_text)
    new_lines = _keepends(new_text)
    matcher = SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    edits: list[TextEdit] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        edits.append(TextEdit(start=i1, end=i2, lines=tuple(new_lines[j1:j2])))
    return edits


def apply_edits(text: str, edits: Sequence[TextEdit]) -> str:
    """Apply edits computed against ``text``; later hunks are applied first."""

    lines = _keepends(text)
    for edit in sorted(edits, key=lambda item: item.start, reverse=True):
        if edit.start < 0 or edit.end > len(lines) or edit.start > edit.end:
            raise ValueError(
                f"Edit [{edit.start}, {edit.end}) is outside of a {len(lines)}-line text."
            )
        lines[edit.start : edit.end] = edit.lines
    return "".join(lines)
