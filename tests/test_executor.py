"""Executor checks: stdin/tmpfile modes, exit codes, transforms and cancellation."""

from __future__ import annotations

import asyncio
import os
import sys
from dataclasses import replace
from pathlib import Path

import pytest

from conftest import FAIL_SCRIPT, SPACING_SCRIPT
from refmt.lib.domain import Context, FormatterInfo, Range
from refmt.lib.errors import ErrorKind, FormatError
from refmt.lib.exec.executor import build_argv, execute_formatter
from refmt.lib.formatters.spec import CommandFormatter, FormatterSpec, TransformFormatter

TMPFILE_SCRIPT = """
import sys
from pathlib import Path

target = Path(sys.argv[1])
Path(sys.argv[2]).write_text(target.name, encoding="utf-8")
target.write_text(target.read_text(encoding="utf-8").upper(), encoding="utf-8")
"""

ENV_SCRIPT = """
import os
import sys

sys.stdin.read()
sys.stdout.write(os.environ["REFMT_TEST_FLAG"])
"""

LATIN1_TMPFILE_SCRIPT = """
import sys
from pathlib import Path

Path(sys.argv[1]).write_bytes(b"caf\\xe9\\n")
"""

BINARY_STDOUT_SCRIPT = """
import sys

sys.stdin.read()
sys.stdout.buffer.write(b"\\xff\\xfe\\n")
"""

PID_SCRIPT = """
import os
import sys
import time
from pathlib import Path

Path(sys.argv[1]).write_text(str(os.getpid()), encoding="utf-8")
time.sleep(30)
"""


def _info(name: str, spec: FormatterSpec | None) -> FormatterInfo:
    return FormatterInfo(name=name, command=name, available=True, spec=spec)


@pytest.mark.asyncio
async def test_stdin_mode_returns_stdout(scripts, context: Context) -> None:
    spec = scripts.formatter("spacing", SPACING_SCRIPT)

    output = await execute_formatter(_info("spacing", spec), "a  =1\n", context)

    assert output == "a = 1\n"


@pytest.mark.asyncio
async def test_tmpfile_mode_reads_back_and_removes_the_file(
    scripts, context: Context, tmp_path: Path
) -> None:
    seen = tmp_path / "seen.txt"
    script = scripts.path("tmpfile", TMPFILE_SCRIPT)
    spec = CommandFormatter(
        command=sys.executable,
        args=[str(script), "$FILENAME", str(seen)],
        stdin=False,
    )

    output = await execute_formatter(_info("tmpfile", spec), "abc\n", context)

    assert output == "ABC\n"
    assert seen.read_text(encoding="utf-8").startswith(".refmt.")
    assert seen.read_text(encoding="utf-8").endswith(".sample.py")
    assert list(tmp_path.glob(".refmt.*")) == []


@pytest.mark.asyncio
async def test_env_overlay_reaches_the_process(scripts, context: Context) -> None:
    spec = scripts.formatter("env", ENV_SCRIPT, env={"REFMT_TEST_FLAG": "on"})

    output = await execute_formatter(_info("env", spec), "", context)

    assert output == "on"


def test_build_argv_orders_and_substitutes(context: Context, tmp_path: Path) -> None:
    spec = CommandFormatter(
        command="tool",
        prepend_args="--first",
        args=["--file", "$FILENAME", "$EXTENSION", "$RELATIVE_FILEPATH"],
        append_args=["--dir=$DIRNAME"],
    )

    argv = build_argv(spec, context, cwd=tmp_path.as_posix())

    assert argv == [
        "tool",
        "--first",
        "--file",
        (tmp_path / "sample.py").as_posix(),
        "py",
        "sample.py",
        f"--dir={tmp_path.as_posix()}",
    ]


def test_build_argv_uses_range_args_only_with_a_range(context: Context) -> None:
    spec = CommandFormatter(
        command="tool",
        args=["-"],
        range_args=lambda _spec, ctx: ["--lines", f"{ctx.range.start[0]}-{ctx.range.end[0]}"],
    )
    ranged = Context(
        target=context.target,
        filename=context.filename,
        dirname=context.dirname,
        range=Range(start=(2, 0), end=(5, 1)),
    )

    assert build_argv(spec, context) == ["tool", "-"]
    assert build_argv(spec, ranged) == ["tool", "--lines", "2-5"]


@pytest.mark.asyncio
async def test_accepted_nonzero_exit_code_is_success(scripts, context: Context) -> None:
    spec = scripts.formatter("fail", FAIL_SCRIPT, exit_codes=(0, 3))

    output = await execute_formatter(_info("fail", spec), "abc\n", context)

    assert output == ""


@pytest.mark.asyncio
async def test_rejected_exit_code_carries_stderr(scripts, context: Context) -> None:
    spec = scripts.formatter("fail", FAIL_SCRIPT)

    with pytest.raises(FormatError) as exc_info:
        await execute_formatter(_info("fail", spec), "abc\n", context)

    error = exc_info.value
    assert error.kind == ErrorKind.EXECUTION
    assert error.formatter == "fail"
    assert error.message == "Formatter 'fail' exited with code 3: boom: bad input"
    assert error.detail == "boom: bad input\nsecond line"


@pytest.mark.asyncio
async def test_missing_executable_is_an_execution_error(context: Context, tmp_path: Path) -> None:
    spec = CommandFormatter(command=(tmp_path / "no-such-tool").as_posix())

    with pytest.raises(FormatError, match="could not be started") as exc_info:
        await execute_formatter(_info("ghost", spec), "abc\n", context)

    assert exc_info.value.kind == ErrorKind.EXECUTION


@pytest.mark.asyncio
async def test_transform_keeps_trailing_newline(context: Context) -> None:
    spec = TransformFormatter(format=lambda _spec, _ctx, lines: [line.upper() for line in lines])

    assert await execute_formatter(_info("upper", spec), "a\nb\n", context) == "A\nB\n"
    assert await execute_formatter(_info("upper", spec), "a\nb", context) == "A\nB"


@pytest.mark.asyncio
async def test_async_transform_is_awaited(context: Context) -> None:
    async def _reverse(_spec: TransformFormatter, _ctx: Context, lines: list[str]) -> list[str]:
        await asyncio.sleep(0)
        return list(reversed(lines))

    spec = TransformFormatter(format=_reverse)

    assert await execute_formatter(_info("reverse", spec), "a\nb\n", context) == "b\na\n"


@pytest.mark.asyncio
async def test_transform_exception_becomes_execution_error(context: Context) -> None:
    def _broken(_spec: TransformFormatter, _ctx: Context, _lines: list[str]) -> list[str]:
        raise ValueError("unbalanced brackets")

    with pytest.raises(FormatError) as exc_info:
        await execute_formatter(_info("broken", TransformFormatter(format=_broken)), "x", context)

    assert exc_info.value.kind == ErrorKind.EXECUTION
    assert exc_info.value.message == "Formatter 'broken' failed: unbalanced brackets"


@pytest.mark.asyncio
async def test_unresolved_formatter_is_a_configuration_error(context: Context) -> None:
    with pytest.raises(FormatError) as exc_info:
        await execute_formatter(_info("nothing", None), "x", context)

    assert exc_info.value.kind == ErrorKind.CONFIGURATION


@pytest.mark.asyncio
async def test_cancellation_terminates_the_process(
    scripts, context: Context, tmp_path: Path
) -> None:
    pid_file = tmp_path / "pid.txt"
    spec = scripts.formatter("hang", PID_SCRIPT, str(pid_file))
    task = asyncio.get_running_loop().create_task(
        execute_formatter(_info("hang", spec), "", context)
    )

    for _ in range(100):
        if pid_file.exists() and pid_file.read_text(encoding="utf-8"):
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text(encoding="utf-8"))

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


@pytest.mark.asyncio
async def test_non_utf8_tmpfile_output_is_an_execution_error(
    scripts, context: Context, tmp_path: Path
) -> None:
    spec = scripts.formatter("latin1", LATIN1_TMPFILE_SCRIPT, "$FILENAME", stdin=False)

    with pytest.raises(FormatError) as exc_info:
        await execute_formatter(_info("latin1", spec), "cafe\n", context)

    assert exc_info.value.kind == ErrorKind.EXECUTION
    assert exc_info.value.message.startswith("Formatter 'latin1' produced unreadable output")
    assert list(tmp_path.glob(".refmt.*")) == []


@pytest.mark.asyncio
async def test_non_utf8_stdout_is_an_execution_error(scripts, context: Context) -> None:
    spec = scripts.formatter("binary", BINARY_STDOUT_SCRIPT)

    with pytest.raises(FormatError) as exc_info:
        await execute_formatter(_info("binary", spec), "abc\n", context)

    assert exc_info.value.kind == ErrorKind.EXECUTION
    assert exc_info.value.formatter == "binary"
    assert "unreadable output" in exc_info.value.message


@pytest.mark.asyncio
async def test_unwritable_tmpfile_is_an_execution_error(
    context: Context, tmp_path: Path
) -> None:
    missing = replace(context, dirname=(tmp_path / "missing").as_posix())
    spec = CommandFormatter(command=sys.executable, args=["$FILENAME"], stdin=False)

    with pytest.raises(FormatError) as exc_info:
        await execute_formatter(_info("tmp", spec), "abc\n", missing)

    assert exc_info.value.kind == ErrorKind.EXECUTION
    assert exc_info.value.message.startswith(
        "Formatter 'tmp' could not write its temporary file"
    )


@pytest.mark.asyncio
async def test_raising_argument_callable_is_an_execution_error(context: Context) -> None:
    def _args(_spec: CommandFormatter, _ctx: Context) -> list[str]:
        raise KeyError("line_length")

    spec = CommandFormatter(command=sys.executable, args=_args)

    with pytest.raises(FormatError) as exc_info:
        await execute_formatter(_info("dynamic", spec), "abc\n", context)

    assert exc_info.value.kind == ErrorKind.EXECUTION
    assert exc_info.value.message.startswith(
        "Formatter 'dynamic' could not build its command line"
    )


@pytest.mark.parametrize("result", [None, 42, ["ok", 7]])
@pytest.mark.asyncio
async def test_transform_returning_non_lines_is_an_execution_error(
    context: Context, result: object
) -> None:
    spec = TransformFormatter(format=lambda _spec, _ctx, _lines: result)

    with pytest.raises(FormatError) as exc_info:
        await execute_formatter(_info("odd", spec), "x\n", context)

    assert exc_info.value.kind == ErrorKind.EXECUTION
    assert exc_info.value.message.startswith("Formatter 'odd' failed:")
