"""Logging setup shared by the CLI and the MCP server."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

# Indexed by -v count: none, -v, -vv.
_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def configure_logging(
    json_mode: bool = False,
    verbosity: int = 0,
    *,
    stream: TextIO | None = None,
) -> None:
    """Send structlog events to stderr as JSON lines or console text.

    stdout carries command output, and for ``refmt serve`` the MCP stdio
    transport, so no diagnostic may reach it.
    """

    level = _LEVELS[max(0, min(verbosity, len(_LEVELS) - 1))]
    output = stream or sys.stderr
    logging.basicConfig(level=level, stream=output, format="%(message)s", force=True)

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_mode:
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )
