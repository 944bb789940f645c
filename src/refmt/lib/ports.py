"""Collaborator protocols consumed by the formatting engine."""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from threading import Lock
from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from refmt.lib.config.layering import FormatOptions
    from refmt.lib.diff import TextEdit
    from refmt.lib.domain import Context, TargetMetadata
    from refmt.lib.types import TargetId


class TargetHost(Protocol):
    """Editor-like owner of the text being formatted."""

    def is_valid(self, target: TargetId) -> bool: ...

    def get_text(self, target: TargetId) -> str: ...

    def get_version(self, target: TargetId) -> Hashable: ...

    def apply_edits(
        self,
        target: TargetId,
        edits: Sequence[TextEdit],
        *,
        undojoin: bool = False,
    ) -> None:
        """Apply all edits as one transaction."""
        ...

    def get_metadata(self, target: TargetId) -> TargetMetadata: ...

    def get_mode(self) -> str:
        """Return the current mode; ``v``/``V`` mean a visual selection is active."""
        ...

    def get_selection(self, target: TargetId) -> tuple[tuple[int, int], tuple[int, int]] | None:
        """Return the visual selection marks as 1-indexed (row, col) pairs."""
        ...


class ExternalFormatter(Protocol):
    """Language-server-style formatter that edits the target itself."""

    @property
    def name(self) -> str: ...

    def is_available(self, context: Context, options: FormatOptions) -> bool: ...

    async def format(self, context: Context, options: FormatOptions) -> bool:
        """Format the target and return whether it was (or would be) edited.

        Failures are raised as ``FormatError``.
        """
        ...


class Notifier(Protocol):
    """User-facing notification sink. Must not block."""

    def notify(self, message: str, level: int) -> None: ...

    def notify_once(self, message: str, level: int) -> None: ...


class LoggingNotifier:
    """Notifier that forwards user-facing messages to structlog."""

    def __init__(self, logger_name: str = "refmt.notify") -> None:
        self._logger = structlog.get_logger(logger_name)
        self._lock = Lock()
        self._sent: set[str] = set()

    def notify(self, message: str, level: int) -> None:
        self._logger.log(level, message)

    def notify_once(self, message: str, level: int) -> None:
        with self._lock:
            if message in self._sent:
                return
            self._sent.add(message)
        self.notify(message, level)


class RecordingNotifier:
    """Notifier that keeps messages in memory; used by hosts without a UI."""

    def __init__(self) -> None:
        self.messages: list[tuple[int, str]] = []
        self._once: set[str] = set()

    def notify(self, message: str, level: int) -> None:
        self.messages.append((level, message))

    def notify_once(self, message: str, level: int) -> None:
        if message in self._once:
            return
        self._once.add(message)
        self.notify(message, level)

    def at_least(self, level: int = logging.WARNING) -> list[str]:
        return [message for msg_level, message in self.messages if msg_level >= level]
