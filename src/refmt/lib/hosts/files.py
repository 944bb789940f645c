"""File-system target host: targets are paths, commits are atomic rewrites."""

from __future__ import annotations

import hashlib
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

import structlog

from refmt.lib.diff import TextEdit, apply_edits
from refmt.lib.domain import TargetMetadata
from refmt.lib.types import TargetId

logger = structlog.get_logger(__name__)


def target_for_path(path: str | Path) -> TargetId:
    return TargetId(Path(path).expanduser().resolve().as_posix())


def _atomic_write_text(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if path.exists():
            os.chmod(tmp_path, path.stat().st_mode & 0o7777)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


class FileHost:
    """Formats files on disk; the version of a file is the hash of its bytes."""

    def __init__(self, *, shiftwidth: int = 4) -> None:
        self._shiftwidth = shiftwidth

    def _read_bytes(self, target: TargetId) -> bytes:
        return Path(target).read_bytes()

    def is_valid(self, target: TargetId) -> bool:
        return Path(target).is_file()

    def get_text(self, target: TargetId) -> str:
        return self._read_bytes(target).decode("utf-8")

    def get_version(self, target: TargetId) -> str:
        return hashlib.sha256(self._read_bytes(target)).hexdigest()

    def apply_edits(
        self,
        target: TargetId,
        edits: Sequence[TextEdit],
        *,
        undojoin: bool = False,
    ) -> None:
        _ = undojoin
        path = Path(target)
        _atomic_write_text(path, apply_edits(self.get_text(target), edits))
        logger.debug("Rewrote file.", target=target, hunks=len(edits))

    def get_metadata(self, target: TargetId) -> TargetMetadata:
        return TargetMetadata(path=str(target), shiftwidth=self._shiftwidth)

    def get_mode(self) -> str:
        return "n"

    def get_selection(self, target: TargetId) -> tuple[tuple[int, int], tuple[int, int]] | None:
        _ = target
        return None
