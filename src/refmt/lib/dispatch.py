"""Top-level format entry point: config layering, policy and result handling."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import cast

import structlog

from refmt.lib.config.layering import (
    ConfigLayer,
    FormatOptions,
    LspFormat,
    ResolvedConfig,
    merge_config,
)
from refmt.lib.config.settings import RefmtSettings
from refmt.lib.domain import (
    Context,
    FormatterInfo,
    Range,
    RunOptions,
    RunResult,
    SelectionMode,
    range_from_selection,
)
from refmt.lib.errors import ErrorKind, FormatError, is_execution_error
from refmt.lib.exec.cancel import CancellationToken, run_cancellable
from refmt.lib.ports import ExternalFormatter, LoggingNotifier, Notifier, TargetHost
from refmt.lib.resolver import FormatterResolver
from refmt.lib.runner import RunCoordinator, RunRegistry, snapshot_context, vanished_error
from refmt.lib.types import TargetId

logger = structlog.get_logger(__name__)

FormatCallback = Callable[[FormatError | None, bool | None], None]

GENERIC_FAILURE_MESSAGE = "Formatter failed. See logs or `refmt formatters list` for details"


class DispatchState(StrEnum):
    IDLE = "idle"
    RUNNING_EXTERNAL = "running-external"
    RUNNING_CLI = "running-cli"
    COMMITTING = "committing"
    DONE = "done"


class Step(StrEnum):
    EXTERNAL = "external"
    CLI = "cli"


_TRANSITIONS: dict[DispatchState, frozenset[DispatchState]] = {
    DispatchState.IDLE: frozenset(
        {DispatchState.RUNNING_EXTERNAL, DispatchState.RUNNING_CLI, DispatchState.COMMITTING}
    ),
    DispatchState.RUNNING_EXTERNAL: frozenset(
        {DispatchState.RUNNING_CLI, DispatchState.COMMITTING}
    ),
    DispatchState.RUNNING_CLI: frozenset(
        {DispatchState.RUNNING_EXTERNAL, DispatchState.COMMITTING}
    ),
    DispatchState.COMMITTING: frozenset({DispatchState.DONE}),
    DispatchState.DONE: frozenset(),
}

_STEP_STATES = {
    Step.EXTERNAL: DispatchState.RUNNING_EXTERNAL,
    Step.CLI: DispatchState.RUNNING_CLI,
}


def next_state(current: DispatchState, new: DispatchState) -> DispatchState:
    """Validate one dispatch transition and return the new state."""

    if new not in _TRANSITIONS[current]:
        raise RuntimeError(f"Invalid dispatch transition: {current} -> {new}")
    return new


def plan_steps(lsp_format: LspFormat, *, has_cli: bool, has_external: bool) -> tuple[Step, ...]:
    """Return the ordered steps the policy runs; empty means no formatting."""

    if not has_cli or lsp_format == LspFormat.PREFER:
        if has_external and lsp_format != LspFormat.NEVER:
            return (Step.EXTERNAL,)
        return ()
    if lsp_format in {LspFormat.NEVER, LspFormat.FALLBACK} or not has_external:
        return (Step.CLI,)
    if lsp_format == LspFormat.LAST:
        return (Step.CLI, Step.EXTERNAL)
    return (Step.EXTERNAL, Step.CLI)


@dataclass(frozen=True, slots=True)
class FormatPlan:
    """Everything one ``format`` call decided before running."""

    config: ResolvedConfig
    context: Context
    formatters: tuple[FormatterInfo, ...]
    has_external: bool
    steps: tuple[Step, ...]

    @property
    def options(self) -> FormatOptions:
        return self.config.format_opts


class _Dispatch:
    """State machine driving one ``format`` call from IDLE to DONE."""

    def __init__(
        self,
        orchestrator: FormatOrchestrator,
        plan: FormatPlan,
        callback: FormatCallback,
        token: CancellationToken,
    ) -> None:
        self.orchestrator = orchestrator
        self.plan = plan
        self.callback = callback
        self.token = token
        self.state = DispatchState.IDLE
        self.did_edit = False
        self._deadline: float | None = None

    @property
    def target(self) -> TargetId:
        return self.plan.context.target

    def _remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def _enter(self, state: DispatchState) -> None:
        self.state = next_state(self.state, state)
        logger.debug("Dispatch state changed.", target=self.target, state=state.value)

    async def run(self, *, blocking: bool) -> None:
        options = self.plan.options
        registry = self.orchestrator.coordinator.registry
        if blocking:
            self._deadline = time.monotonic() + options.timeout_ms / 1000
        registry.supersede(self.target, self.token)
        error: FormatError | None = None
        try:
            for step in self.plan.steps:
                # A superseded run may finish a step before its task is cancelled.
                if self.token.cancelled:
                    error = self.token.error("Run")
                    break
                self._enter(_STEP_STATES[step])
                if step == Step.EXTERNAL:
                    edited, error = await self._run_external()
                else:
                    edited, error = await self._run_cli()
                self.did_edit = self.did_edit or edited
                if error is not None or (options.dry_run and self.did_edit):
                    break
        finally:
            registry.release(self.target, self.token)
        self._handle_result(error)

    async def _run_cli(self) -> tuple[bool, FormatError | None]:
        options = self.plan.options
        coordinator = self.orchestrator.coordinator
        logger.debug(
            "Running formatters.",
            target=self.target,
            formatters=[info.name for info in self.plan.formatters],
        )
        run_options = RunOptions(
            exclusive=True,
            dry_run=options.dry_run,
            undojoin=options.undojoin,
        )
        remaining = self._remaining()
        result: RunResult
        if remaining is None:
            result = await coordinator.run(
                self.target,
                self.plan.formatters,
                range=options.range,
                options=run_options,
                token=self.token,
            )
        else:
            result = await coordinator.run_with_timeout(
                self.target,
                self.plan.formatters,
                timeout_ms=max(int(remaining * 1000), 1),
                range=options.range,
                options=run_options,
                token=self.token,
            )
        return result.did_edit, result.error

    async def _run_external(self) -> tuple[bool, FormatError | None]:
        external = self.orchestrator.external
        assert external is not None
        logger.debug("Running external formatter.", target=self.target, formatter=external.name)
        remaining = self._remaining()
        awaitable = external.format(self.plan.context, self.plan.options)
        if remaining is not None:
            awaitable = asyncio.wait_for(awaitable, timeout=remaining)
        try:
            edited = await run_cancellable(
                self.token, awaitable, what=f"Formatter '{external.name}'"
            )
        except FormatError as error:
            return False, self._debounce(error)
        except TimeoutError:
            return False, self._debounce(
                FormatError(
                    ErrorKind.TIMEOUT,
                    f"Formatter '{external.name}' timeout",
                    formatter=external.name,
                )
            )
        except Exception as error:
            return False, self._debounce(
                FormatError(
                    ErrorKind.EXECUTION,
                    f"Formatter '{external.name}' failed: {error}",
                    formatter=external.name,
                    detail=repr(error),
                )
            )
        self.orchestrator.coordinator.debouncer.clear(external.name)
        return bool(edited), None

    def _debounce(self, error: FormatError) -> FormatError:
        if is_execution_error(error.kind) and error.formatter is not None:
            debouncer = self.orchestrator.coordinator.debouncer
            error.debounce_message = debouncer.observe(error.formatter, error.message)
        return error

    def _handle_result(self, error: FormatError | None) -> None:
        self._enter(DispatchState.COMMITTING)
        options = self.plan.options
        config = self.plan.config
        host = self.orchestrator.host
        if error is None and not host.is_valid(self.target):
            error = vanished_error(self.target)

        if error is not None:
            logger.log(
                error.level,
                error.message,
                target=self.target,
                formatter=error.formatter,
                kind=error.kind.value,
                detail=error.detail,
            )
            should_notify = not options.quiet and error.level >= logging.WARNING
            notify_msg = error.message
            if is_execution_error(error.kind):
                should_notify = (
                    should_notify and config.notify_on_error and not error.debounce_message
                )
                notify_msg = GENERIC_FAILURE_MESSAGE
            if should_notify:
                self.orchestrator.notifier.notify(notify_msg, error.level)
        else:
            logger.debug("Formatting finished.", target=self.target, did_edit=self.did_edit)

        self._enter(DispatchState.DONE)
        self.callback(error, self.did_edit)


def _ignore_result(error: FormatError | None, did_edit: bool | None) -> None:
    _ = (error, did_edit)


class FormatOrchestrator:
    """Format targets of one host with CLI formatters and an optional external one."""

    def __init__(
        self,
        host: TargetHost,
        *,
        resolver: FormatterResolver | None = None,
        notifier: Notifier | None = None,
        external: ExternalFormatter | None = None,
        settings: RefmtSettings | None = None,
        global_config: ConfigLayer | None = None,
        coordinator: RunCoordinator | None = None,
    ) -> None:
        self.host = host
        self.settings = settings or RefmtSettings()
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.resolver = resolver or FormatterResolver(notifier=self.notifier)
        self.external = external
        self.coordinator = coordinator or RunCoordinator(
            host, registry=RunRegistry(), settings=self.settings
        )
        self._global_config: dict[str, object] = dict(global_config or {})
        self._target_configs: dict[TargetId, dict[str, object]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def global_config(self) -> Mapping[str, object]:
        return self._global_config

    def set_global_config(self, layer: ConfigLayer) -> None:
        self._global_config = dict(layer)

    def set_target_config(self, target: TargetId, layer: ConfigLayer | None) -> None:
        """Set (or clear with None) the configuration layer of one target."""

        if layer is None:
            self._target_configs.pop(target, None)
        else:
            self._target_configs[target] = dict(layer)

    def _selection_range(self, target: TargetId) -> Range | None:
        mode = self.host.get_mode()
        if mode not in ("v", "V"):
            return None
        selection = self.host.get_selection(target)
        if selection is None:
            return None
        start, end = selection
        lines = self.host.get_text(target).split("\n")
        end_row = max(start[0], end[0])
        end_line_length = len(lines[end_row - 1]) if 0 < end_row <= len(lines) else 0
        return range_from_selection(start, end, cast("SelectionMode", mode), end_line_length)

    def _prepare(
        self,
        target: TargetId | None,
        options: Mapping[str, object] | None = None,
    ) -> tuple[ResolvedConfig, Context]:
        call_options = dict(options or {})
        if target is not None:
            call_options["target"] = target
        raw_target = call_options.get("target")
        if raw_target is None:
            raise ValueError("A target is required.")
        target_id = TargetId(str(raw_target))

        merged = merge_config(
            call_options,
            self._target_configs.get(target_id),
            self._global_config,
            settings=self.settings,
        )
        format_opts = merged.format_opts
        if format_opts.range is None:
            selection = self._selection_range(target_id)
            if selection is not None:
                format_opts = replace(format_opts, range=selection)
        context = snapshot_context(self.host, target_id, format_opts.range)
        config = replace(merged, format_opts=format_opts).resolve(context)
        return config, context

    def build_config(
        self,
        target: TargetId | None = None,
        options: Mapping[str, object] | None = None,
    ) -> ResolvedConfig:
        """Merge call-site options over the target, global and default layers."""

        return self._prepare(target, options)[0]

    def _has_external(self, context: Context, options: FormatOptions) -> bool:
        return self.external is not None and self.external.is_available(context, options)

    def plan(
        self,
        options: Mapping[str, object],
        *,
        warn_on_missing: bool | None = None,
    ) -> FormatPlan:
        """Resolve config, formatters and policy steps without running anything."""

        config, context = self._prepare(None, options)
        format_opts = config.format_opts
        if warn_on_missing is None:
            warn_on_missing = not format_opts.quiet
        formatters = self.resolver.resolve(
            format_opts.formatters,
            context,
            config.overrides,
            warn_on_missing=warn_on_missing,
            stop_after_first=format_opts.stop_after_first,
        )
        has_external = self._has_external(context, format_opts)
        steps = plan_steps(
            format_opts.lsp_format, has_cli=bool(formatters), has_external=has_external
        )
        return FormatPlan(
            config=config,
            context=context,
            formatters=tuple(formatters),
            has_external=has_external,
            steps=steps,
        )

    def _report_nothing_to_run(self, plan: FormatPlan) -> None:
        options = plan.options
        if plan.formatters:
            logger.debug(
                "External formatter unavailable; nothing to run.",
                target=plan.context.target,
                lsp_format=options.lsp_format.value,
            )
            return
        if not options.formatters:
            return
        error = FormatError(
            ErrorKind.NO_FORMATTERS,
            f"No formatters available for '{plan.context.filename}'",
        )
        logger.log(error.level, error.message, target=plan.context.target)
        if plan.config.notify_no_formatters and not options.quiet:
            self.notifier.notify(error.message, error.level)

    def format(self, *, callback: FormatCallback | None = None, **options: object) -> bool:
        """Format a target; returns True when any formatter was attempted.

        In blocking mode the callback runs before this returns. With
        ``async_=True`` the work is scheduled on the running event loop.
        """

        plan = self.plan(options)
        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if plan.options.async_ and loop is None:
            raise RuntimeError("async_=True requires a running event loop.")
        if not plan.options.async_ and loop is not None:
            raise RuntimeError(
                "Blocking format() cannot run inside an event loop; pass async_=True."
            )

        if not plan.steps:
            self._report_nothing_to_run(plan)
            if callback is not None:
                callback(None, False)
            return False

        dispatch = _Dispatch(
            self,
            plan,
            callback or _ignore_result,
            CancellationToken(label=str(plan.context.target)),
        )
        if loop is not None:
            task = loop.create_task(dispatch.run(blocking=False))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return True

        asyncio.run(dispatch.run(blocking=True))
        return True

    async def drain(self) -> None:
        """Wait for every scheduled non-blocking format call to finish."""

        while self._tasks:
            await asyncio.gather(*tuple(self._tasks))

    def list_formatters(self, target: TargetId) -> list[FormatterInfo]:
        """Every configured formatter with its availability."""

        config, context = self._prepare(target)
        return self.resolver.list_infos(config.format_opts.formatters, context, config.overrides)

    def list_formatters_to_run(self, target: TargetId) -> tuple[list[FormatterInfo], bool]:
        """The exact sequence ``format`` would run, and whether it uses the external one."""

        plan = self.plan({"target": target}, warn_on_missing=False)
        external_info: FormatterInfo | None = None
        if self.external is not None:
            external_info = FormatterInfo(
                name=self.external.name,
                command=self.external.name,
                available=True,
            )

        sequence: list[FormatterInfo] = []
        for step in plan.steps:
            if step == Step.CLI:
                sequence.extend(plan.formatters)
            elif external_info is not None:
                sequence.append(external_info)
        return sequence, Step.EXTERNAL in plan.steps

    def get_formatter_info(self, name: str, target: TargetId) -> FormatterInfo:
        config, context = self._prepare(target)
        return self.resolver.get_formatter_info(name, context, config.overrides)
