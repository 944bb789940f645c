"""Run coordination: sequencing, exclusivity, timeouts and guarded commits."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Hashable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from threading import Lock

import structlog

from refmt.lib.config.settings import RefmtSettings
from refmt.lib.diff import compute_edits
from refmt.lib.domain import Context, FormatterInfo, Range, RunOptions, RunResult
from refmt.lib.errors import ErrorDebouncer, ErrorKind, FormatError, is_execution_error
from refmt.lib.exec.cancel import CancellationToken, run_cancellable
from refmt.lib.exec.executor import execute_formatter
from refmt.lib.ports import TargetHost
from refmt.lib.types import TargetId

logger = structlog.get_logger(__name__)

RunCallback = Callable[[RunResult], None]


def snapshot_context(
    host: TargetHost,
    target: TargetId,
    range: Range | None = None,
) -> Context:
    """Take the read-only context snapshot used for one resolution or run."""

    metadata = host.get_metadata(target)
    path = Path(metadata.path)
    return Context(
        target=target,
        filename=path.as_posix(),
        dirname=path.parent.as_posix(),
        range=range,
        shiftwidth=metadata.shiftwidth,
    )


def vanished_error(target: TargetId) -> FormatError:
    return FormatError(ErrorKind.TARGET_VANISHED, f"Target '{target}' is no longer valid")


class RunRegistry:
    """Per-target map of the active exclusive run's cancellation token."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._active: dict[TargetId, CancellationToken] = {}

    def supersede(self, target: TargetId, token: CancellationToken) -> CancellationToken | None:
        """Register ``token`` as the active run and cancel the previous one.

        A token that is already cancelled never becomes active again.
        """

        with self._lock:
            if token.cancelled:
                raise token.error("Run")
            previous = self._active.get(target)
            self._active[target] = token
            if previous is not None and previous is not token:
                previous.cancel("superseded")
        if previous is not None and previous is not token:
            logger.debug("Superseded in-flight run.", target=target)
        return previous

    def release(self, target: TargetId, token: CancellationToken) -> None:
        with self._lock:
            if self._active.get(target) is token:
                del self._active[target]

    def active(self, target: TargetId) -> CancellationToken | None:
        with self._lock:
            return self._active.get(target)

    @contextmanager
    def committing(
        self,
        target: TargetId,
        token: CancellationToken,
        *,
        exclusive: bool,
    ) -> Iterator[None]:
        """Hold the registry while committing; raise if the run lost its claim."""

        with self._lock:
            if token.cancelled:
                raise token.error("Run")
            if exclusive and self._active.get(target) is not token:
                raise FormatError(ErrorKind.CANCELLED, "Run superseded")
            yield


class _PipelineRun:
    """State of one pipeline execution."""

    def __init__(
        self,
        coordinator: RunCoordinator,
        target: TargetId,
        formatters: Sequence[FormatterInfo],
        *,
        range: Range | None,
        options: RunOptions,
        token: CancellationToken,
    ) -> None:
        self.coordinator = coordinator
        self.target = target
        self.formatters = tuple(formatters)
        self.range = range
        self.options = options
        self.token = token
        self.current: str | None = None

    async def execute(self) -> RunResult:
        coordinator = self.coordinator
        host = coordinator.host
        registry = coordinator.registry
        target = self.target
        claimed = False
        try:
            if self.options.exclusive:
                claimed = registry.supersede(target, self.token) is not self.token
            return await self._execute(host)
        except FormatError as error:
            self.debounce(error)
            logger.debug(
                "Formatting run failed.",
                target=target,
                formatter=error.formatter,
                kind=error.kind.value,
                error=error.message,
                detail=error.detail,
            )
            return RunResult(error=error)
        finally:
            if claimed:
                registry.release(target, self.token)

    async def _execute(self, host: TargetHost) -> RunResult:
        target = self.target
        settings = self.coordinator.settings
        if not host.is_valid(target):
            raise vanished_error(target)

        version: Hashable = host.get_version(target)
        original = host.get_text(target)
        context = snapshot_context(host, target, self.range)
        text = original

        for info in self.formatters:
            if self.token.cancelled:
                raise self.token.error("Run")
            if not host.is_valid(target):
                raise vanished_error(target)
            spec = info.spec
            step_context = context
            if spec is not None and context.range is not None and not spec.supports_range():
                step_context = replace(context, range=None)
            if spec is not None and not spec.check_condition(step_context):
                logger.debug("Skipping formatter; condition failed.", formatter=info.name)
                continue

            self.current = info.name
            text = await run_cancellable(
                self.token,
                execute_formatter(info, text, step_context, settings=settings),
                what=f"Formatter '{info.name}'",
            )
            self.coordinator.debouncer.clear(info.name)
        self.current = None

        did_edit = text != original
        if self.token.cancelled:
            raise self.token.error("Run")
        if not host.is_valid(target):
            raise vanished_error(target)
        if host.get_version(target) != version:
            raise FormatError(
                ErrorKind.TARGET_CHANGED,
                f"Target '{target}' changed while formatting; result discarded",
            )
        if self.options.dry_run or not did_edit:
            return RunResult(did_edit=did_edit, text=text)

        with self.coordinator.registry.committing(
            target, self.token, exclusive=self.options.exclusive
        ):
            host.apply_edits(
                target,
                compute_edits(original, text),
                undojoin=self.options.undojoin,
            )
        logger.debug("Committed formatting result.", target=target)
        return RunResult(did_edit=True, text=text)

    def debounce(self, error: FormatError) -> None:
        if not is_execution_error(error.kind):
            return
        formatter = error.formatter or self.current or ""
        error.debounce_message = self.coordinator.debouncer.observe(formatter, error.message)


class RunCoordinator:
    """Sequence resolved formatters into a pipeline and commit its result."""

    def __init__(
        self,
        host: TargetHost,
        *,
        registry: RunRegistry | None = None,
        settings: RefmtSettings | None = None,
        debouncer: ErrorDebouncer | None = None,
    ) -> None:
        self.host = host
        self.registry = registry or RunRegistry()
        self.settings = settings or RefmtSettings()
        self.debouncer = debouncer or ErrorDebouncer(self.settings.error_debounce_seconds)

    def _pipeline(
        self,
        target: TargetId,
        formatters: Sequence[FormatterInfo],
        *,
        range: Range | None,
        options: RunOptions,
        token: CancellationToken | None,
    ) -> _PipelineRun:
        return _PipelineRun(
            self,
            target,
            formatters,
            range=range,
            options=options,
            token=token or CancellationToken(label=str(target)),
        )

    async def run(
        self,
        target: TargetId,
        formatters: Sequence[FormatterInfo],
        *,
        range: Range | None = None,
        options: RunOptions | None = None,
        token: CancellationToken | None = None,
    ) -> RunResult:
        """Run the pipeline without a time budget."""

        pipeline = self._pipeline(
            target, formatters, range=range, options=options or RunOptions(), token=token
        )
        return await pipeline.execute()

    async def run_with_timeout(
        self,
        target: TargetId,
        formatters: Sequence[FormatterInfo],
        *,
        timeout_ms: int,
        range: Range | None = None,
        options: RunOptions | None = None,
        token: CancellationToken | None = None,
    ) -> RunResult:
        """Run the pipeline under one wall-clock budget covering every step."""

        pipeline = self._pipeline(
            target, formatters, range=range, options=options or RunOptions(), token=token
        )
        try:
            return await asyncio.wait_for(pipeline.execute(), timeout=timeout_ms / 1000)
        except TimeoutError:
            name = pipeline.current
            error = FormatError(
                ErrorKind.TIMEOUT,
                f"Formatter '{name}' timeout" if name else "Formatting timed out",
                formatter=name,
                detail=f"Exceeded {timeout_ms}ms",
            )
            pipeline.debounce(error)
            logger.debug("Formatting run timed out.", target=target, formatter=name)
            return RunResult(error=error)

    def format_sync(
        self,
        target: TargetId,
        formatters: Sequence[FormatterInfo],
        *,
        timeout_ms: int | None = None,
        range: Range | None = None,
        options: RunOptions | None = None,
    ) -> RunResult:
        """Block until the pipeline finishes or the budget expires."""

        return asyncio.run(
            self.run_with_timeout(
                target,
                formatters,
                timeout_ms=timeout_ms or self.settings.default_timeout_ms,
                range=range,
                options=options,
            )
        )

    def format_async(
        self,
        target: TargetId,
        formatters: Sequence[FormatterInfo],
        *,
        callback: RunCallback,
        range: Range | None = None,
        options: RunOptions | None = None,
        token: CancellationToken | None = None,
    ) -> asyncio.Task[RunResult]:
        """Schedule the pipeline on the running loop and report through ``callback``."""

        task = asyncio.get_running_loop().create_task(
            self.run(target, formatters, range=range, options=options, token=token)
        )
        task.add_done_callback(lambda done: callback(task_result(done, target)))
        return task


def task_result(task: asyncio.Task[RunResult], target: TargetId) -> RunResult:
    """Turn a finished task into a result; outside cancellation reports as cancelled."""

    if task.cancelled():
        return RunResult(error=FormatError(ErrorKind.CANCELLED, "Run cancelled"))
    error = task.exception()
    if error is None:
        return task.result()
    if isinstance(error, FormatError):
        return RunResult(error=error)
    logger.error("Formatting run crashed.", target=target, exc_info=error)
    return RunResult(
        error=FormatError(
            ErrorKind.EXECUTION, f"Formatting run crashed: {error}", detail=repr(error)
        )
    )
