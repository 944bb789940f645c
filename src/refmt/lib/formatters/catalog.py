"""Built-in formatter definitions and the catalog they are looked up from."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from refmt.lib.domain import Context
from refmt.lib.formatters.spec import (
    CommandFormatter,
    FormatterMeta,
    FormatterSpec,
    TransformFormatter,
)
from refmt.lib.formatters.util import line_range_args, root_file

_TRAILING_WS = re.compile(r"[ \t]+$")


def _in_range(ctx: Context, row: int) -> bool:
    return ctx.range is None or ctx.range.contains_row(row)


def _trim_whitespace(spec: TransformFormatter, ctx: Context, lines: list[str]) -> list[str]:
    _ = spec
    return [
        _TRAILING_WS.sub("", line) if _in_range(ctx, row) else line
        for row, line in enumerate(lines, start=1)
    ]


def _trim_newlines(spec: TransformFormatter, ctx: Context, lines: list[str]) -> list[str]:
    _ = (spec, ctx)
    trimmed = list(lines)
    while len(trimmed) > 1 and not trimmed[-1].strip():
        trimmed.pop()
    return trimmed


def _squeeze_blanks(spec: TransformFormatter, ctx: Context, lines: list[str]) -> list[str]:
    _ = spec
    squeezed: list[str] = []
    for row, line in enumerate(lines, start=1):
        blank = not line.strip()
        if blank and squeezed and not squeezed[-1].strip() and _in_range(ctx, row):
            continue
        squeezed.append(line)
    return squeezed


def _black_range_args(spec: CommandFormatter, ctx: Context) -> list[str]:
    _ = spec
    assert ctx.range is not None
    return [
        "--stdin-filename",
        "$FILENAME",
        "--quiet",
        f"--line-ranges={ctx.range.start[0]}-{ctx.range.end[0]}",
        "-",
    ]


def _ruff_range_args(spec: CommandFormatter, ctx: Context) -> list[str]:
    _ = spec
    assert ctx.range is not None
    (start_row, start_col), (end_row, end_col) = ctx.range.start, ctx.range.end
    return [
        "format",
        "--force-exclude",
        f"--range={start_row}:{start_col + 1}-{end_row}:{end_col + 1}",
        "--stdin-filename",
        "$FILENAME",
        "-",
    ]


def _shfmt_args(spec: CommandFormatter, ctx: Context) -> list[str]:
    _ = spec
    return ["-i", str(ctx.shiftwidth), "-filename", "$FILENAME"]


_PYTHON_ROOT = ("pyproject.toml", "setup.py", "setup.cfg")


def builtin_formatters() -> dict[str, FormatterSpec]:
    """Return the built-in definitions shipped with refmt."""

    return {
        "trim_whitespace": TransformFormatter(
            format=_trim_whitespace,
            meta=FormatterMeta(url="", description="Remove trailing whitespace."),
        ),
        "trim_newlines": TransformFormatter(
            format=_trim_newlines,
            meta=FormatterMeta(url="", description="Remove trailing blank lines."),
        ),
        "squeeze_blanks": TransformFormatter(
            format=_squeeze_blanks,
            meta=FormatterMeta(url="", description="Collapse runs of blank lines into one."),
        ),
        "black": CommandFormatter(
            command="black",
            args=["--stdin-filename", "$FILENAME", "--quiet", "-"],
            range_args=_black_range_args,
            cwd=root_file(_PYTHON_ROOT),
            meta=FormatterMeta(
                url="https://github.com/psf/black",
                description="The uncompromising Python code formatter.",
            ),
        ),
        "isort": CommandFormatter(
            command="isort",
            args=["--stdout", "--filename", "$FILENAME", "-"],
            cwd=root_file((".isort.cfg", *_PYTHON_ROOT)),
            meta=FormatterMeta(
                url="https://github.com/PyCQA/isort",
                description="Sort Python imports.",
            ),
        ),
        "ruff_format": CommandFormatter(
            command="ruff",
            args=["format", "--force-exclude", "--stdin-filename", "$FILENAME", "-"],
            range_args=_ruff_range_args,
            cwd=root_file(("pyproject.toml", "ruff.toml", ".ruff.toml")),
            meta=FormatterMeta(
                url="https://docs.astral.sh/ruff/",
                description="Ruff Python formatter.",
            ),
        ),
        "ruff_fix": CommandFormatter(
            command="ruff",
            args=[
                "check",
                "--fix",
                "--force-exclude",
                "--exit-zero",
                "--no-cache",
                "--stdin-filename",
                "$FILENAME",
                "-",
            ],
            cwd=root_file(("pyproject.toml", "ruff.toml", ".ruff.toml")),
            meta=FormatterMeta(
                url="https://docs.astral.sh/ruff/",
                description="Ruff lint fixes.",
            ),
        ),
        "yapf": CommandFormatter(
            command="yapf",
            range_args=line_range_args("--lines={start}-{end}"),
            cwd=root_file((".style.yapf", *_PYTHON_ROOT)),
            meta=FormatterMeta(
                url="https://github.com/google/yapf",
                description="Formatter for Python files.",
            ),
        ),
        "clang_format": CommandFormatter(
            command="clang-format",
            args=["--assume-filename", "$FILENAME"],
            range_args=line_range_args(
                "--assume-filename", "$FILENAME", "--lines={start}:{end}"
            ),
            cwd=root_file((".clang-format", "_clang-format")),
            meta=FormatterMeta(
                url="https://clang.llvm.org/docs/ClangFormat.html",
                description="Tool to format C/C++/Java/JavaScript/Objective-C/Protobuf code.",
            ),
        ),
        "prettier": CommandFormatter(
            command="prettier",
            args=["--stdin-filepath", "$FILENAME"],
            cwd=root_file(
                (".prettierrc", ".prettierrc.json", "prettier.config.js", "package.json")
            ),
            meta=FormatterMeta(
                url="https://github.com/prettier/prettier",
                description="Opinionated code formatter for web languages.",
            ),
        ),
        "shfmt": CommandFormatter(
            command="shfmt",
            args=_shfmt_args,
            meta=FormatterMeta(
                url="https://github.com/mvdan/sh",
                description="Shell script formatter.",
            ),
        ),
        "stylua": CommandFormatter(
            command="stylua",
            args=["--search-parent-directories", "--stdin-filepath", "$FILENAME", "-"],
            cwd=root_file(("stylua.toml", ".stylua.toml")),
            meta=FormatterMeta(
                url="https://github.com/JohnnyMorganz/StyLua",
                description="Opinionated Lua code formatter.",
            ),
        ),
    }


def _empty_definitions() -> dict[str, FormatterSpec]:
    return {}


@dataclass(slots=True)
class FormatterCatalog:
    """Registry of formatter definitions keyed by name."""

    _definitions: dict[str, FormatterSpec] = field(default_factory=_empty_definitions)

    @classmethod
    def with_defaults(cls) -> FormatterCatalog:
        catalog = cls()
        for name, spec in builtin_formatters().items():
            catalog.register(name, spec)
        return catalog

    def register(self, name: str, spec: FormatterSpec) -> None:
        self._definitions[name] = spec

    def get(self, name: str) -> FormatterSpec | None:
        return self._definitions.get(name)

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._definitions))


_DEFAULT_CATALOG = FormatterCatalog.with_defaults()


def get_default_catalog() -> FormatterCatalog:
    """Return the built-in catalog initialized at import time."""

    return _DEFAULT_CATALOG
