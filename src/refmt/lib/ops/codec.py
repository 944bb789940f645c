"""Turn MCP tool arguments into operation input dataclasses."""

from __future__ import annotations

import inspect
import types
from collections.abc import Mapping
from dataclasses import MISSING, Field, fields
from typing import Any, TypeVar, cast, get_args, get_origin, get_type_hints

PayloadT = TypeVar("PayloadT")

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) is types.UnionType:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return members[0]
    return annotation


def _as_bool(name: str, value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ValueError(f"Invalid value for '{name}': expected a boolean, got {value!r}")


def _as_int(name: str, value: object) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid value for '{name}': expected int, got {value!r}")
    try:
        return int(cast("Any", value))
    except (TypeError, ValueError) as error:
        raise ValueError(f"Invalid value for '{name}': expected int, got {value!r}") from error


def _as_names(name: str, value: object) -> tuple[str, ...]:
    """Formatter lists arrive as arrays or as one comma-separated string."""

    if isinstance(value, str):
        items: list[object] = list(value.split(","))
    elif isinstance(value, (list, tuple)):
        items = list(cast("list[object]", value))
    else:
        raise ValueError(f"Invalid value for '{name}': expected a list of names")
    names = (str(item).strip() for item in items)
    return tuple(item for item in names if item)


def _coerce(name: str, annotation: Any, value: object) -> object:
    wanted = _unwrap_optional(annotation)
    if get_origin(wanted) is tuple:
        return _as_names(name, value)
    if wanted is bool:
        return _as_bool(name, value)
    if wanted is int:
        return _as_int(name, value)
    if wanted is str:
        return str(value)
    return value


def coerce_input_payload(
    payload_type: type[PayloadT],
    arguments: Mapping[str, object] | None,
) -> PayloadT:
    """Build ``payload_type`` from tool arguments.

    ``None`` values fall back to the field default. Unknown argument names are
    rejected so a misspelt option never silently does nothing.
    """

    data = dict(arguments or {})
    hints = get_type_hints(payload_type)
    unknown = sorted(set(data) - set(hints))
    if unknown:
        raise ValueError(f"Unknown argument(s) for {payload_type.__name__}: {', '.join(unknown)}")
    kwargs = {
        name: _coerce(name, hints[name], value) for name, value in data.items() if value is not None
    }
    return payload_type(**kwargs)


def _default(item: Field[Any]) -> object:
    if item.default is not MISSING:
        return item.default
    if item.default_factory is not MISSING:
        return item.default_factory()
    return inspect.Parameter.empty


def signature_from_dataclass(payload_type: type[object]) -> inspect.Signature:
    """Keyword-only signature mirroring the payload fields; FastMCP derives tool schemas from it."""

    hints = get_type_hints(payload_type)
    return inspect.Signature(
        [
            inspect.Parameter(
                item.name,
                inspect.Parameter.KEYWORD_ONLY,
                default=_default(item),
                annotation=hints[item.name],
            )
            for item in fields(cast("Any", payload_type))
        ]
    )
