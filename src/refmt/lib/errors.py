"""Formatting error kinds, severities and notification debouncing."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import StrEnum
from threading import Lock


class ErrorKind(StrEnum):
    CONFIGURATION = "configuration-error"
    UNAVAILABLE = "unavailable"
    EXECUTION = "execution-error"
    TIMEOUT = "timeout"
    TARGET_VANISHED = "target-vanished"
    TARGET_CHANGED = "target-changed"
    CANCELLED = "cancelled"
    NO_FORMATTERS = "no-formatters"


_EXECUTION_KINDS = frozenset({ErrorKind.EXECUTION, ErrorKind.TIMEOUT})


def level_for_kind(kind: ErrorKind) -> int:
    """Map an error kind to a stdlib logging level."""

    if kind == ErrorKind.CANCELLED:
        return logging.DEBUG
    if kind in {ErrorKind.TARGET_CHANGED, ErrorKind.UNAVAILABLE}:
        return logging.INFO
    if kind == ErrorKind.NO_FORMATTERS:
        return logging.WARNING
    return logging.ERROR


def is_execution_error(kind: ErrorKind) -> bool:
    return kind in _EXECUTION_KINDS


class FormatError(Exception):
    """One classified failure flowing through the formatting engine."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        formatter: str | None = None,
        detail: str | None = None,
        debounce_message: bool = False,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.formatter = formatter
        self.detail = detail
        self.debounce_message = debounce_message

    @property
    def level(self) -> int:
        return level_for_kind(self.kind)

    def __repr__(self) -> str:
        return f"FormatError(kind={self.kind.value!r}, message={self.message!r})"


class ErrorDebouncer:
    """Remember recent execution failures so identical ones are not re-notified.

    Failures are keyed by formatter name and message. A later success of the
    same formatter forgets its failures.
    """

    def __init__(
        self,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = Lock()
        self._seen: dict[tuple[str, str], float] = {}

    def observe(self, formatter: str, message: str) -> bool:
        """Record one failure and return True when it was seen recently."""

        key = (formatter, message)
        now = self._clock()
        with self._lock:
            last = self._seen.get(key)
            self._seen[key] = now
        return last is not None and now - last <= self._window_seconds

    def clear(self, formatter: str) -> None:
        with self._lock:
            for key in [key for key in self._seen if key[0] == formatter]:
                del self._seen[key]
