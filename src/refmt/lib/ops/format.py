"""Format operations over files on disk."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from refmt.lib.config.settings import load_settings
from refmt.lib.dispatch import FormatOrchestrator
from refmt.lib.errors import FormatError
from refmt.lib.hosts.files import FileHost, target_for_path
from refmt.lib.ops.registry import OperationSpec, operation
from refmt.lib.ports import RecordingNotifier

if TYPE_CHECKING:
    from refmt.lib.formatting import FormatContext


@dataclass(frozen=True, slots=True)
class FormatInput:
    path: str = ""
    formatters: tuple[str, ...] = ()
    stop_after_first: bool = False
    timeout_ms: int | None = None
    start_line: int | None = None
    end_line: int | None = None
    quiet: bool = False


@dataclass(frozen=True, slots=True)
class FormatOutput:
    path: str
    dry_run: bool
    attempted: bool
    changed: bool
    formatters: tuple[str, ...] = ()
    error: FormatError | None = None
    messages: tuple[str, ...] = field(default_factory=tuple)

    def format_text(self, ctx: FormatContext | None = None) -> str:
        _ = ctx
        if self.error is not None:
            status = f"failed ({self.error.kind.value}): {self.error.message}"
        elif not self.attempted:
            status = "no formatters ran"
        elif self.changed:
            status = "would reformat" if self.dry_run else "reformatted"
        else:
            status = "unchanged"
        lines = [f"{self.path}: {status}"]
        lines.extend(f"  {message}" for message in self.messages)
        return "\n".join(lines)


def build_file_orchestrator(notifier: RecordingNotifier) -> FormatOrchestrator:
    settings = load_settings()
    host = FileHost(shiftwidth=settings.default_shiftwidth)
    return FormatOrchestrator(host, notifier=notifier, settings=settings)


def _resolve_file(raw_path: str) -> Path:
    normalized = raw_path.strip()
    if not normalized:
        raise ValueError("A file path is required.")
    path = Path(normalized).expanduser().resolve()
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    return path


def _line_range(
    path: Path,
    start_line: int | None,
    end_line: int | None,
) -> dict[str, object] | None:
    if start_line is None and end_line is None:
        return None
    lines = path.read_text(encoding="utf-8").split("\n")
    start = start_line or 1
    end = end_line or len(lines)
    if start < 1 or end < start:
        raise ValueError(f"Invalid line range {start}-{end}.")
    end = min(end, len(lines))
    return {"start": [start, 0], "end": [end, len(lines[end - 1])]}


def _format_file(payload: FormatInput, *, dry_run: bool) -> FormatOutput:
    path = _resolve_file(payload.path)
    target = target_for_path(path)
    notifier = RecordingNotifier()
    orchestrator = build_file_orchestrator(notifier)

    options: dict[str, object] = {
        "target": target,
        "formatters": list(payload.formatters),
        "dry_run": dry_run,
        "stop_after_first": payload.stop_after_first,
        "quiet": payload.quiet,
    }
    if payload.timeout_ms is not None:
        options["timeout_ms"] = payload.timeout_ms
    line_range = _line_range(path, payload.start_line, payload.end_line)
    if line_range is not None:
        options["range"] = line_range

    outcome: list[tuple[FormatError | None, bool | None]] = []
    plan = orchestrator.plan(options, warn_on_missing=False)
    attempted = orchestrator.format(
        callback=lambda error, did_edit: outcome.append((error, did_edit)),
        **options,
    )
    error, did_edit = outcome[0] if outcome else (None, False)
    return FormatOutput(
        path=path.as_posix(),
        dry_run=dry_run,
        attempted=attempted,
        changed=bool(did_edit) and error is None,
        formatters=tuple(info.name for info in plan.formatters) if attempted else (),
        error=error,
        messages=tuple(notifier.at_least()),
    )


def format_apply_sync(payload: FormatInput) -> FormatOutput:
    return _format_file(payload, dry_run=False)


def format_check_sync(payload: FormatInput) -> FormatOutput:
    return _format_file(payload, dry_run=True)


async def format_apply(payload: FormatInput) -> FormatOutput:
    return await asyncio.to_thread(format_apply_sync, payload)


async def format_check(payload: FormatInput) -> FormatOutput:
    return await asyncio.to_thread(format_check_sync, payload)


operation(
    OperationSpec(
        name="format.apply",
        handler=format_apply,
        sync_handler=format_apply_sync,
        input_type=FormatInput,
        output_type=FormatOutput,
        description="Run formatters over one file and write the result.",
    )
)

operation(
    OperationSpec(
        name="format.check",
        handler=format_check,
        sync_handler=format_check_sync,
        input_type=FormatInput,
        output_type=FormatOutput,
        description="Report whether formatters would change one file, without writing.",
    )
)
