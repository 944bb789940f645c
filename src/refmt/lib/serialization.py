"""Serialization helpers for CLI and MCP payloads."""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, cast

from refmt.lib.errors import FormatError


def _dataclass_payload(value: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for item in fields(value):
        if not item.metadata.get("serialize", True):
            continue
        payload[item.name] = to_jsonable(getattr(value, item.name))
    return payload


def to_jsonable(value: Any) -> Any:
    """Convert supported values to JSON-serializable payloads."""

    if is_dataclass(value) and not isinstance(value, type):
        return _dataclass_payload(value)
    if isinstance(value, FormatError):
        return {
            "kind": value.kind.value,
            "message": value.message,
            "formatter": value.formatter,
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        typed_dict = cast("dict[object, object]", value)
        return {str(key): to_jsonable(item) for key, item in typed_dict.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        typed_seq = cast("list[object] | tuple[object, ...] | set[object]", value)
        return [to_jsonable(item) for item in typed_seq]
    return value
