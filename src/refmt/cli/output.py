"""Rendering of operation outputs as text, JSON or porcelain lines."""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from refmt.lib.formatting import FormatContext, TextFormattable
from refmt.lib.serialization import to_jsonable


class OutputMode(StrEnum):
    TEXT = "text"
    JSON = "json"
    PORCELAIN = "porcelain"

    @classmethod
    def parse(cls, raw: str) -> OutputMode:
        try:
            return cls(raw.strip().lower())
        except ValueError:
            choices = ", ".join(mode.value for mode in cls)
            raise SystemExit(f"--format must be one of: {choices}") from None


def _porcelain_row(row: dict[str, Any]) -> str:
    cells: list[str] = []
    for key in sorted(row):
        value = row[key]
        if isinstance(value, (dict, list)):
            value = json.dumps(value, sort_keys=True)
        cells.append(f"{key}={value}")
    return "\t".join(cells)


def _porcelain(payload: Any) -> str:
    # Listings hold their rows under a single key; print one line per row.
    if isinstance(payload, dict) and len(payload) == 1:
        (only,) = payload.values()
        if isinstance(only, list):
            payload = only
    rows = payload if isinstance(payload, list) else [payload]
    return "\n".join(_porcelain_row(row) if isinstance(row, dict) else str(row) for row in rows)


def render(value: Any, mode: OutputMode, ctx: FormatContext | None = None) -> str:
    """Render one operation output for stdout."""

    if mode is OutputMode.JSON:
        return json.dumps(to_jsonable(value), sort_keys=True)
    if mode is OutputMode.PORCELAIN:
        return _porcelain(to_jsonable(value))
    if isinstance(value, TextFormattable):
        return value.format_text(ctx or FormatContext())
    return json.dumps(to_jsonable(value), sort_keys=True, indent=2)
