"""Layered format configuration: call site > target > global > defaults."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import cast

import structlog

from refmt.lib.config.settings import RefmtSettings
from refmt.lib.domain import Context, Range
from refmt.lib.formatters.spec import (
    DynamicOverride,
    FormatterOverride,
    OverrideValue,
    evaluate_override,
)
from refmt.lib.types import TargetId

logger = structlog.get_logger(__name__)

ConfigLayer = Mapping[str, object]


class LspFormat(StrEnum):
    """When to use the external (language-server-style) formatter."""

    NEVER = "never"
    FALLBACK = "fallback"
    PREFER = "prefer"
    FIRST = "first"
    LAST = "last"


def _empty_mapping() -> dict[str, object]:
    return {}


@dataclass(frozen=True, slots=True)
class FormatOptions:
    """Resolved options for one ``format`` call."""

    target: TargetId | None = None
    formatters: tuple[str, ...] = ()
    timeout_ms: int = 1000
    async_: bool = False
    dry_run: bool = False
    lsp_format: LspFormat = LspFormat.NEVER
    quiet: bool = False
    undojoin: bool = False
    stop_after_first: bool = False
    range: Range | None = None
    # Passed through untouched to the external formatter (id, name, filter...).
    external: Mapping[str, object] = field(default_factory=_empty_mapping)


@dataclass(frozen=True, slots=True)
class ResolvedConfig:
    format_opts: FormatOptions
    overrides: Mapping[str, FormatterOverride]
    notify_on_error: bool = True
    notify_no_formatters: bool = True


@dataclass(frozen=True, slots=True)
class MergedConfig:
    """Layered configuration whose overrides are not evaluated yet."""

    format_opts: FormatOptions
    overrides: Mapping[str, OverrideValue]
    notify_on_error: bool = True
    notify_no_formatters: bool = True

    def resolve(self, context: Context) -> ResolvedConfig:
        """Evaluate dynamic overrides once against ``context``."""

        evaluated: dict[str, FormatterOverride] = {}
        for name, value in self.overrides.items():
            override = evaluate_override(value, context)
            if override is not None:
                evaluated[name] = override
        return ResolvedConfig(
            format_opts=self.format_opts,
            overrides=evaluated,
            notify_on_error=self.notify_on_error,
            notify_no_formatters=self.notify_no_formatters,
        )


_TOP_LEVEL_KEYS = frozenset({"overrides", "notify_on_error", "notify_no_formatters", "format_opts"})
_BOOL_OPTION_KEYS = frozenset({"dry_run", "quiet", "undojoin", "stop_after_first", "async_"})


def merge_layers(*layers: ConfigLayer | None) -> dict[str, object]:
    """Deep-merge mappings where earlier layers win on conflicting keys."""

    merged: dict[str, object] = {}
    for layer in layers:
        if layer is None:
            continue
        for key, value in layer.items():
            if key not in merged:
                merged[key] = value
                continue
            current = merged[key]
            if isinstance(current, Mapping) and isinstance(value, Mapping):
                merged[key] = merge_layers(
                    cast("Mapping[str, object]", current), cast("Mapping[str, object]", value)
                )
    return merged


def _coerce_bool(*, raw_value: object, source: str) -> bool:
    if not isinstance(raw_value, bool):
        raise ValueError(
            f"Invalid value for '{source}': expected bool, got "
            f"{type(raw_value).__name__} ({raw_value!r})."
        )
    return raw_value


def _coerce_formatter_names(*, raw_value: object, source: str) -> tuple[str, ...]:
    if isinstance(raw_value, str) or not isinstance(raw_value, Sequence):
        raise ValueError(
            f"Invalid value for '{source}': expected array[str], got "
            f"{type(raw_value).__name__} ({raw_value!r})."
        )
    names: list[str] = []
    for item in cast("Sequence[object]", raw_value):
        if not isinstance(item, str) or not item.strip():
            raise ValueError(
                f"Invalid value for '{source}': expected non-empty formatter names, got {item!r}."
            )
        names.append(item.strip())
    return tuple(names)


def _coerce_position(raw_value: object, source: str) -> tuple[int, int]:
    if isinstance(raw_value, str) or not isinstance(raw_value, Sequence):
        raise ValueError(f"Invalid value for '{source}': expected [row, col].")
    items = list(cast("Sequence[object]", raw_value))
    if len(items) != 2 or not all(
        isinstance(item, int) and not isinstance(item, bool) for item in items
    ):
        raise ValueError(f"Invalid value for '{source}': expected [row, col] integers.")
    row, col = cast("list[int]", items)
    return row, col


def coerce_range(*, raw_value: object, source: str) -> Range | None:
    if raw_value is None or isinstance(raw_value, Range):
        return raw_value
    if not isinstance(raw_value, Mapping):
        raise ValueError(f"Invalid value for '{source}': expected table with start/end.")
    payload = cast("Mapping[str, object]", raw_value)
    if "start" not in payload or "end" not in payload:
        raise ValueError(f"Invalid value for '{source}': table must contain start and end.")
    return Range(
        start=_coerce_position(payload["start"], f"{source}.start"),
        end=_coerce_position(payload["end"], f"{source}.end"),
    ).normalized()


def _coerce_format_options(raw: Mapping[str, object], settings: RefmtSettings) -> FormatOptions:
    values: dict[str, object] = {
        "timeout_ms": settings.default_timeout_ms,
    }
    for key, raw_value in raw.items():
        source = f"format_opts.{key}"
        normalized_key = "async_" if key == "async" else key
        if raw_value is None:
            continue
        if normalized_key in _BOOL_OPTION_KEYS:
            values[normalized_key] = _coerce_bool(raw_value=raw_value, source=source)
        elif normalized_key == "formatters":
            values["formatters"] = _coerce_formatter_names(raw_value=raw_value, source=source)
        elif normalized_key == "timeout_ms":
            if isinstance(raw_value, bool) or not isinstance(raw_value, int) or raw_value <= 0:
                raise ValueError(
                    f"Invalid value for '{source}': expected positive int, got {raw_value!r}."
                )
            values["timeout_ms"] = raw_value
        elif normalized_key == "lsp_format":
            try:
                values["lsp_format"] = LspFormat(str(raw_value))
            except ValueError as error:
                raise ValueError(
                    f"Invalid value for '{source}': expected one of "
                    f"{[item.value for item in LspFormat]}, got {raw_value!r}."
                ) from error
        elif normalized_key == "range":
            values["range"] = coerce_range(raw_value=raw_value, source=source)
        elif normalized_key == "target":
            values["target"] = TargetId(str(raw_value))
        elif normalized_key == "external":
            if not isinstance(raw_value, Mapping):
                raise ValueError(f"Invalid value for '{source}': expected table.")
            values["external"] = dict(cast("Mapping[str, object]", raw_value))
        else:
            logger.warning("Ignoring unknown format option.", key=source)
    return FormatOptions(**cast("dict[str, object]", values))  # type: ignore[arg-type]


def _coerce_overrides(raw_value: object) -> dict[str, OverrideValue]:
    if not isinstance(raw_value, Mapping):
        raise ValueError("Invalid value for 'overrides': expected table.")
    overrides: dict[str, OverrideValue] = {}
    for name, value in cast("Mapping[str, object]", raw_value).items():
        source = f"overrides.{name}"
        if isinstance(value, (FormatterOverride, DynamicOverride)):
            overrides[name] = value
        elif isinstance(value, Mapping):
            overrides[name] = FormatterOverride.from_mapping(
                cast("Mapping[str, object]", value), source=source
            )
        elif callable(value):
            overrides[name] = DynamicOverride(evaluate_fn=value)  # type: ignore[arg-type]
        else:
            raise ValueError(
                f"Invalid value for '{source}': expected override table or function, got "
                f"{type(value).__name__}."
            )
    return overrides


def merge_config(
    call_options: ConfigLayer | None = None,
    target_layer: ConfigLayer | None = None,
    global_layer: ConfigLayer | None = None,
    *,
    settings: RefmtSettings | None = None,
) -> MergedConfig:
    """Merge the configuration layers into one immutable value."""

    resolved_settings = settings or RefmtSettings()
    for layer_name, layer in (("target", target_layer), ("global", global_layer)):
        for key in layer or {}:
            if key not in _TOP_LEVEL_KEYS:
                logger.warning("Ignoring unknown config key.", layer=layer_name, key=key)

    merged = merge_layers(
        {"format_opts": dict(call_options or {})},
        target_layer,
        global_layer,
    )
    raw_options = merged.get("format_opts") or {}
    if not isinstance(raw_options, Mapping):
        raise ValueError("Invalid value for 'format_opts': expected table.")

    return MergedConfig(
        format_opts=_coerce_format_options(
            cast("Mapping[str, object]", raw_options), resolved_settings
        ),
        overrides=_coerce_overrides(merged.get("overrides") or {}),
        notify_on_error=_coerce_bool(
            raw_value=merged.get("notify_on_error", True), source="notify_on_error"
        ),
        notify_no_formatters=_coerce_bool(
            raw_value=merged.get("notify_no_formatters", True), source="notify_no_formatters"
        ),
    )
