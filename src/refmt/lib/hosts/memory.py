"""In-memory target host used by embedders and tests."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from threading import Lock

from refmt.lib.diff import TextEdit, apply_edits
from refmt.lib.domain import TargetMetadata
from refmt.lib.types import TargetId


@dataclass(slots=True)
class _Buffer:
    path: str
    text: str
    shiftwidth: int = 4
    version: int = 0
    valid: bool = True
    selection: tuple[tuple[int, int], tuple[int, int]] | None = None
    commits: list[bool] = field(default_factory=list)


class InMemoryHost:
    """Keeps named text buffers with a version counter bumped on every change."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._buffers: dict[TargetId, _Buffer] = {}
        self.mode = "n"

    def add(
        self,
        target: str,
        text: str,
        *,
        path: str | None = None,
        shiftwidth: int = 4,
    ) -> TargetId:
        target_id = TargetId(target)
        with self._lock:
            self._buffers[target_id] = _Buffer(
                path=path or target,
                text=text,
                shiftwidth=shiftwidth,
            )
        return target_id

    def _buffer(self, target: TargetId) -> _Buffer:
        buffer = self._buffers.get(target)
        if buffer is None or not buffer.valid:
            raise KeyError(f"Unknown target '{target}'.")
        return buffer

    def set_text(self, target: TargetId, text: str) -> None:
        """Replace the text as a user edit would."""

        with self._lock:
            buffer = self._buffer(target)
            buffer.text = text
            buffer.version += 1

    def invalidate(self, target: TargetId) -> None:
        with self._lock:
            if target in self._buffers:
                self._buffers[target].valid = False

    def select(
        self,
        target: TargetId,
        start: tuple[int, int],
        end: tuple[int, int],
        *,
        mode: str = "v",
    ) -> None:
        with self._lock:
            self._buffer(target).selection = (start, end)
        self.mode = mode

    def commits(self, target: TargetId) -> list[bool]:
        """Return the ``undojoin`` flag of every committed transaction."""

        with self._lock:
            return list(self._buffer(target).commits)

    def is_valid(self, target: TargetId) -> bool:
        with self._lock:
            buffer = self._buffers.get(target)
            return buffer is not None and buffer.valid

    def get_text(self, target: TargetId) -> str:
        with self._lock:
            return self._buffer(target).text

    def get_version(self, target: TargetId) -> int:
        with self._lock:
            return self._buffer(target).version

    def apply_edits(
        self,
        target: TargetId,
        edits: Sequence[TextEdit],
        *,
        undojoin: bool = False,
    ) -> None:
        with self._lock:
            buffer = self._buffer(target)
            buffer.text = apply_edits(buffer.text, edits)
            buffer.version += 1
            buffer.commits.append(undojoin)

    def get_metadata(self, target: TargetId) -> TargetMetadata:
        with self._lock:
            buffer = self._buffer(target)
            return TargetMetadata(path=buffer.path, shiftwidth=buffer.shiftwidth)

    def get_mode(self) -> str:
        return self.mode

    def get_selection(self, target: TargetId) -> tuple[tuple[int, int], tuple[int, int]] | None:
        with self._lock:
            return self._buffer(target).selection
