"""Run one formatter unit against input text."""

from __future__ import annotations

import asyncio
import inspect
import os
import secrets
from pathlib import Path
from string import Template

import structlog

from refmt.lib.config.settings import RefmtSettings
from refmt.lib.domain import Context, FormatterInfo, join_lines, split_lines
from refmt.lib.errors import ErrorKind, FormatError
from refmt.lib.exec.timeout import terminate_process
from refmt.lib.formatters.spec import CommandFormatter, TransformFormatter, expand_args

logger = structlog.get_logger(__name__)

_STDERR_DETAIL_LIMIT = 8000


def _template_values(context: Context, filename: str, cwd: str | None) -> dict[str, str]:
    path = Path(filename)
    base_dir = Path(cwd) if cwd else Path(context.dirname)
    try:
        relative = os.path.relpath(path, base_dir)
    except ValueError:
        relative = path.as_posix()
    return {
        "FILENAME": filename,
        "DIRNAME": context.dirname,
        "RELATIVE_FILEPATH": relative,
        "EXTENSION": path.suffix.removeprefix("."),
    }


def build_argv(
    spec: CommandFormatter,
    context: Context,
    *,
    filename: str | None = None,
    cwd: str | None = None,
) -> list[str]:
    """Expand the full command line for ``spec`` against ``context``."""

    body = spec.range_args if context.range is not None and spec.range_args else spec.args
    raw = [
        spec.resolve_command(context),
        *expand_args(spec.prepend_args, spec, context),
        *expand_args(body, spec, context),
        *expand_args(spec.append_args, spec, context),
    ]
    values = _template_values(context, filename or context.filename, cwd)
    return [Template(item).safe_substitute(values) for item in raw]


def _tmpfile_path(context: Context, pattern: str) -> Path:
    name = Template(pattern).safe_substitute(
        RANDOM=str(secrets.randbelow(1_000_000)),
        FILENAME=Path(context.filename).name,
    )
    return Path(context.dirname) / name


def _exit_error(name: str, returncode: int, stderr: str) -> FormatError:
    detail = stderr.strip() or None
    message = f"Formatter '{name}' exited with code {returncode}"
    if detail:
        message = f"{message}: {detail.splitlines()[0]}"
    return FormatError(
        ErrorKind.EXECUTION,
        message,
        formatter=name,
        detail=detail[:_STDERR_DETAIL_LIMIT] if detail else None,
    )


def _execution_error(name: str, problem: str, error: BaseException) -> FormatError:
    return FormatError(
        ErrorKind.EXECUTION,
        f"Formatter '{name}' {problem}: {error}",
        formatter=name,
        detail=repr(error),
    )


async def _run_command(
    info: FormatterInfo,
    spec: CommandFormatter,
    text: str,
    context: Context,
    settings: RefmtSettings,
) -> str:
    tmpfile: Path | None = None
    filename = context.filename
    try:
        if not spec.stdin:
            tmpfile = _tmpfile_path(context, spec.tmpfile_format or settings.tmpfile_format)
            try:
                tmpfile.write_text(text, encoding="utf-8")
            except OSError as error:
                raise _execution_error(
                    info.name, "could not write its temporary file", error
                ) from error
            filename = tmpfile.as_posix()

        try:
            argv = build_argv(spec, context, filename=filename, cwd=info.cwd)
            env = {**os.environ, **spec.resolve_env(context)}
        except Exception as error:
            raise _execution_error(
                info.name, "could not build its command line", error
            ) from error
        logger.debug("Running formatter.", formatter=info.name, argv=argv, cwd=info.cwd)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=info.cwd,
                env=env,
                start_new_session=True,
                stdin=asyncio.subprocess.PIPE if spec.stdin else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as error:
            raise FormatError(
                ErrorKind.EXECUTION,
                f"Formatter '{info.name}' could not be started: {error}",
                formatter=info.name,
            ) from error

        try:
            stdout, stderr = await process.communicate(
                text.encode("utf-8") if spec.stdin else None
            )
        except asyncio.CancelledError:
            await terminate_process(process, grace_seconds=settings.kill_grace_seconds)
            raise

        stderr_text = stderr.decode("utf-8", errors="replace")
        returncode = process.returncode if process.returncode is not None else -1
        if returncode not in spec.exit_codes:
            raise _exit_error(info.name, returncode, stderr_text)
        if stderr_text.strip():
            logger.debug("Formatter stderr.", formatter=info.name, stderr=stderr_text)

        # Output must be valid UTF-8.
        try:
            if tmpfile is not None:
                return tmpfile.read_text(encoding="utf-8")
            return stdout.decode("utf-8")
        except (OSError, UnicodeDecodeError) as error:
            raise _execution_error(info.name, "produced unreadable output", error) from error
    finally:
        if tmpfile is not None:
            tmpfile.unlink(missing_ok=True)


async def _run_transform(
    info: FormatterInfo,
    spec: TransformFormatter,
    text: str,
    context: Context,
) -> str:
    lines, trailing_newline = split_lines(text)
    try:
        result = spec.format(spec, context, lines)
        if inspect.isawaitable(result):
            result = await result
        return join_lines(list(result), trailing_newline)
    except FormatError:
        raise
    except Exception as error:
        raise FormatError(
            ErrorKind.EXECUTION,
            f"Formatter '{info.name}' failed: {error}",
            formatter=info.name,
        ) from error


async def execute_formatter(
    info: FormatterInfo,
    text: str,
    context: Context,
    *,
    settings: RefmtSettings | None = None,
) -> str:
    """Run one resolved formatter over ``text`` and return its output.

    Task cancellation terminates an outstanding process group and propagates.
    """

    resolved_settings = settings or RefmtSettings()
    spec = info.spec
    if isinstance(spec, CommandFormatter):
        return await _run_command(info, spec, text, context, resolved_settings)
    if isinstance(spec, TransformFormatter):
        return await _run_transform(info, spec, text, context)
    raise FormatError(
        ErrorKind.CONFIGURATION,
        f"Formatter '{info.name}' has no resolved definition",
        formatter=info.name,
    )
