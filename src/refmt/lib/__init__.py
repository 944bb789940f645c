"""Core refmt library exports."""

from refmt.lib.domain import Context, FormatterInfo, Range, RunOptions, RunResult
from refmt.lib.errors import ErrorKind, FormatError
from refmt.lib.types import TargetId

__all__ = [
    "Context",
    "ErrorKind",
    "FormatError",
    "FormatterInfo",
    "Range",
    "RunOptions",
    "RunResult",
    "TargetId",
]
