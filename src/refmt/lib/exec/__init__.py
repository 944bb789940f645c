"""Execution primitives: cancellation, process termination, formatter execution."""

from refmt.lib.exec.cancel import CancellationToken, run_cancellable
from refmt.lib.exec.executor import build_argv, execute_formatter
from refmt.lib.exec.timeout import DEFAULT_KILL_GRACE_SECONDS, terminate_process

__all__ = [
    "DEFAULT_KILL_GRACE_SECONDS",
    "CancellationToken",
    "build_argv",
    "execute_formatter",
    "run_cancellable",
    "terminate_process",
]
