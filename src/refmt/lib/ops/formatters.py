"""Formatter catalog and availability queries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

from refmt.lib.domain import FormatterInfo
from refmt.lib.formatters.catalog import get_default_catalog
from refmt.lib.formatting import FormatContext, align_columns
from refmt.lib.hosts.files import target_for_path
from refmt.lib.ops.format import build_file_orchestrator
from refmt.lib.ops.registry import OperationSpec, operation
from refmt.lib.ports import RecordingNotifier
from refmt.lib.types import TargetId


@dataclass(frozen=True, slots=True)
class FormattersListInput:
    path: str | None = None
    formatters: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FormattersPlanInput:
    path: str = ""
    formatters: tuple[str, ...] = ()
    stop_after_first: bool = False


@dataclass(frozen=True, slots=True)
class FormattersInfoInput:
    name: str = ""
    path: str | None = None


@dataclass(frozen=True, slots=True)
class FormatterEntry:
    name: str
    kind: str
    available: bool
    command: str
    cwd: str | None = None
    reason: str | None = None
    description: str | None = None
    url: str | None = None

    def format_text(self, ctx: FormatContext | None = None) -> str:
        _ = ctx
        fields = [
            ("Formatter", self.name),
            ("Kind", self.kind),
            ("Command", self.command or None),
            ("Cwd", self.cwd),
            ("Available", "yes" if self.available else "no"),
            ("Reason", self.reason),
            ("Description", self.description),
            ("Url", self.url),
        ]
        return align_columns([[f"{key}:", value] for key, value in fields if value is not None])


@dataclass(frozen=True, slots=True)
class FormattersListOutput:
    formatters: tuple[FormatterEntry, ...]

    def format_text(self, ctx: FormatContext | None = None) -> str:
        if not self.formatters:
            return "(no formatters)"
        rows = [["NAME", "KIND", "AVAILABLE", "DETAIL"]]
        for entry in self.formatters:
            detail = entry.description if entry.available else entry.reason
            rows.append([entry.name, entry.kind, "yes" if entry.available else "no", detail or ""])
        return align_columns(rows, width=(ctx or FormatContext()).width)


@dataclass(frozen=True, slots=True)
class FormattersPlanOutput:
    path: str
    formatters: tuple[str, ...]
    uses_external: bool

    def format_text(self, ctx: FormatContext | None = None) -> str:
        _ = ctx
        if not self.formatters:
            return f"{self.path}: nothing to run"
        return f"{self.path}: " + " -> ".join(self.formatters)


def _target(path: str | None) -> TargetId:
    normalized = (path or "").strip()
    if not normalized:
        # Any file name works here: only its directory feeds the cwd resolvers.
        return target_for_path(Path.cwd() / "stdin")
    return target_for_path(normalized)


def _entry(info: FormatterInfo) -> FormatterEntry:
    spec = info.spec
    meta = spec.meta if spec is not None else None
    return FormatterEntry(
        name=info.name,
        kind=spec.kind if spec is not None else "unknown",
        available=info.available,
        command=info.command,
        cwd=info.cwd,
        reason=info.available_msg,
        description=meta.description if meta is not None else None,
        url=(meta.url or None) if meta is not None else None,
    )


def formatters_list_sync(payload: FormattersListInput) -> FormattersListOutput:
    orchestrator = build_file_orchestrator(RecordingNotifier())
    target = _target(payload.path)
    names = payload.formatters or get_default_catalog().names()
    orchestrator.set_target_config(target, {"format_opts": {"formatters": list(names)}})
    return FormattersListOutput(
        formatters=tuple(_entry(info) for info in orchestrator.list_formatters(target))
    )


def formatters_plan_sync(payload: FormattersPlanInput) -> FormattersPlanOutput:
    if not payload.path.strip():
        raise ValueError("A file path is required.")
    orchestrator = build_file_orchestrator(RecordingNotifier())
    target = _target(payload.path)
    orchestrator.set_target_config(
        target,
        {
            "format_opts": {
                "formatters": list(payload.formatters),
                "stop_after_first": payload.stop_after_first,
            }
        },
    )
    infos, uses_external = orchestrator.list_formatters_to_run(target)
    return FormattersPlanOutput(
        path=str(target),
        formatters=tuple(info.name for info in infos),
        uses_external=uses_external,
    )


def formatters_info_sync(payload: FormattersInfoInput) -> FormatterEntry:
    name = payload.name.strip()
    if not name:
        raise ValueError("Formatter name must not be empty.")
    orchestrator = build_file_orchestrator(RecordingNotifier())
    return _entry(orchestrator.get_formatter_info(name, _target(payload.path)))


async def formatters_list(payload: FormattersListInput) -> FormattersListOutput:
    return await asyncio.to_thread(formatters_list_sync, payload)


async def formatters_plan(payload: FormattersPlanInput) -> FormattersPlanOutput:
    return await asyncio.to_thread(formatters_plan_sync, payload)


async def formatters_info(payload: FormattersInfoInput) -> FormatterEntry:
    return await asyncio.to_thread(formatters_info_sync, payload)


operation(
    OperationSpec(
        name="formatters.list",
        handler=formatters_list,
        sync_handler=formatters_list_sync,
        input_type=FormattersListInput,
        output_type=FormattersListOutput,
        description="List formatters with their availability for a path.",
    )
)


operation(
    OperationSpec(
        name="formatters.plan",
        handler=formatters_plan,
        sync_handler=formatters_plan_sync,
        input_type=FormattersPlanInput,
        output_type=FormattersPlanOutput,
        description="Show the exact formatter sequence that would run for a file.",
    )
)


operation(
    OperationSpec(
        name="formatters.info",
        handler=formatters_info,
        sync_handler=formatters_info_sync,
        input_type=FormattersInfoInput,
        output_type=FormatterEntry,
        description="Show availability details for one formatter.",
    )
)
