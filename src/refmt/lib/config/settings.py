"""Engine-level settings with environment overrides."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import cast

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RefmtSettings:
    """Resolved operational settings for the formatting engine."""

    kill_grace_seconds: float = 2.0
    default_timeout_ms: int = 1000
    error_debounce_seconds: float = 60.0
    tmpfile_format: str = ".refmt.$RANDOM.$FILENAME"
    default_shiftwidth: int = 4


_ENV_OVERRIDE_MAP: dict[str, str] = {
    "REFMT_KILL_GRACE_SECONDS": "kill_grace_seconds",
    "REFMT_DEFAULT_TIMEOUT_MS": "default_timeout_ms",
    "REFMT_ERROR_DEBOUNCE_SECONDS": "error_debounce_seconds",
    "REFMT_TMPFILE_FORMAT": "tmpfile_format",
    "REFMT_DEFAULT_SHIFTWIDTH": "default_shiftwidth",
}

_INT_FIELDS = frozenset({"default_timeout_ms", "default_shiftwidth"})
_FLOAT_FIELDS = frozenset({"kill_grace_seconds", "error_debounce_seconds"})


def _coerce_env_value(*, field_name: str, raw_value: str, env_name: str) -> object:
    if field_name in _INT_FIELDS:
        try:
            value = int(raw_value.strip())
        except ValueError as error:
            raise ValueError(
                f"Invalid environment override '{env_name}': expected int, got {raw_value!r}."
            ) from error
        if value <= 0:
            raise ValueError(
                f"Invalid environment override '{env_name}': expected a positive int."
            )
        return value

    if field_name in _FLOAT_FIELDS:
        try:
            value_f = float(raw_value.strip())
        except ValueError as error:
            raise ValueError(
                f"Invalid environment override '{env_name}': expected float, got {raw_value!r}."
            ) from error
        if value_f < 0:
            raise ValueError(
                f"Invalid environment override '{env_name}': expected a non-negative float."
            )
        return value_f

    normalized = raw_value.strip()
    if not normalized:
        raise ValueError(
            f"Invalid environment override '{env_name}': expected non-empty string."
        )
    if field_name == "tmpfile_format" and "$FILENAME" not in normalized:
        raise ValueError(
            f"Invalid environment override '{env_name}': must contain '$FILENAME'."
        )
    return normalized


def _default_values() -> dict[str, object]:
    defaults = RefmtSettings()
    return {item.name: getattr(defaults, item.name) for item in fields(RefmtSettings)}


def load_settings(environ: Mapping[str, str] | None = None) -> RefmtSettings:
    """Build settings from defaults plus ``REFMT_*`` environment overrides."""

    env = os.environ if environ is None else environ
    values = _default_values()
    for env_name, field_name in _ENV_OVERRIDE_MAP.items():
        raw_value = env.get(env_name)
        if raw_value is None:
            continue
        values[field_name] = _coerce_env_value(
            field_name=field_name,
            raw_value=raw_value,
            env_name=env_name,
        )
        logger.debug("Applied settings override.", env=env_name, field=field_name)

    return RefmtSettings(
        kill_grace_seconds=cast("float", values["kill_grace_seconds"]),
        default_timeout_ms=cast("int", values["default_timeout_ms"]),
        error_debounce_seconds=cast("float", values["error_debounce_seconds"]),
        tmpfile_format=cast("str", values["tmpfile_format"]),
        default_shiftwidth=cast("int", values["default_shiftwidth"]),
    )
