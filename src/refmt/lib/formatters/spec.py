"""Declarative formatter definitions and override merging."""

from __future__ import annotations

import shlex
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field, fields, replace
from typing import Any, ClassVar, Literal, cast

from refmt.lib.domain import Context

ArgValue = str | Sequence[str]
ArgsTemplate = ArgValue | Callable[[Any, Context], ArgValue]
FormatterKind = Literal["external-command", "in-process"]


def _empty_options() -> dict[str, object]:
    return {}


@dataclass(frozen=True, slots=True)
class FormatterMeta:
    url: str
    description: str
    deprecated: bool = False


@dataclass(frozen=True, slots=True)
class CommandFormatter:
    """Formatter backed by an external command-line tool."""

    command: str | Callable[[CommandFormatter, Context], str]
    args: ArgsTemplate | None = None
    prepend_args: ArgsTemplate | None = None
    append_args: ArgsTemplate | None = None
    range_args: Callable[[CommandFormatter, Context], ArgValue] | None = None
    cwd: Callable[[CommandFormatter, Context], str | None] | None = None
    require_cwd: bool = False
    stdin: bool = True
    tmpfile_format: str | None = None
    condition: Callable[[CommandFormatter, Context], bool] | None = None
    exit_codes: tuple[int, ...] = (0,)
    env: Mapping[str, str] | Callable[[CommandFormatter, Context], Mapping[str, str]] | None = None
    options: Mapping[str, object] = field(default_factory=_empty_options)
    meta: FormatterMeta | None = None

    kind: ClassVar[FormatterKind] = "external-command"

    def resolve_command(self, ctx: Context) -> str:
        if callable(self.command):
            return self.command(self, ctx)
        return self.command

    def check_condition(self, ctx: Context) -> bool:
        return self.condition is None or bool(self.condition(self, ctx))

    def resolve_cwd(self, ctx: Context) -> str | None:
        if self.cwd is None:
            return None
        return self.cwd(self, ctx)

    def resolve_env(self, ctx: Context) -> dict[str, str]:
        if self.env is None:
            return {}
        raw = self.env(self, ctx) if callable(self.env) else self.env
        return {str(key): str(value) for key, value in raw.items()}

    def supports_range(self) -> bool:
        return self.range_args is not None


@dataclass(frozen=True, slots=True)
class TransformFormatter:
    """Formatter implemented as an in-process routine over lines.

    The routine receives the lines of the input (without a trailing newline
    marker) and returns the new lines, or raises to signal failure. It may be
    a coroutine function.
    """

    format: TransformFn
    condition: Callable[[TransformFormatter, Context], bool] | None = None
    options: Mapping[str, object] = field(default_factory=_empty_options)
    meta: FormatterMeta | None = None

    kind: ClassVar[FormatterKind] = "in-process"

    def check_condition(self, ctx: Context) -> bool:
        return self.condition is None or bool(self.condition(self, ctx))

    def supports_range(self) -> bool:
        return True


TransformFn = Callable[[TransformFormatter, Context, list[str]], list[str] | Awaitable[list[str]]]
FormatterSpec = CommandFormatter | TransformFormatter


@dataclass(frozen=True, slots=True)
class FormatterOverride:
    """User override for a formatter; unset fields inherit from the definition."""

    inherit: bool = True
    command: str | Callable[[CommandFormatter, Context], str] | None = None
    format: TransformFn | None = None
    args: ArgsTemplate | None = None
    prepend_args: ArgsTemplate | None = None
    append_args: ArgsTemplate | None = None
    range_args: Callable[[CommandFormatter, Context], ArgValue] | None = None
    cwd: Callable[[CommandFormatter, Context], str | None] | None = None
    require_cwd: bool | None = None
    stdin: bool | None = None
    tmpfile_format: str | None = None
    condition: Callable[[Any, Context], bool] | None = None
    exit_codes: tuple[int, ...] | None = None
    env: Mapping[str, str] | Callable[[CommandFormatter, Context], Mapping[str, str]] | None = None
    options: Mapping[str, object] | None = None
    meta: FormatterMeta | None = None

    @property
    def has_conflict(self) -> bool:
        return self.command is not None and self.format is not None

    @property
    def is_definition(self) -> bool:
        return self.command is not None or self.format is not None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object], *, source: str) -> FormatterOverride:
        known = {item.name for item in fields(cls)}
        unknown = sorted(str(key) for key in raw if key not in known)
        if unknown:
            raise ValueError(f"Invalid value for '{source}': unknown keys {unknown}.")
        values = dict(raw)
        exit_codes = values.get("exit_codes")
        if exit_codes is not None:
            if not isinstance(exit_codes, Sequence) or isinstance(exit_codes, str):
                raise ValueError(f"Invalid value for '{source}.exit_codes': expected array[int].")
            values["exit_codes"] = tuple(int(cast("int", code)) for code in exit_codes)
        return cls(**cast("dict[str, Any]", values))


@dataclass(frozen=True, slots=True)
class DynamicOverride:
    """Override computed from the context; evaluated once per resolution."""

    evaluate_fn: Callable[[Context], FormatterOverride | None]

    def evaluate(self, context: Context) -> FormatterOverride | None:
        return self.evaluate_fn(context)


OverrideValue = FormatterOverride | DynamicOverride


def evaluate_override(value: OverrideValue | None, context: Context) -> FormatterOverride | None:
    if value is None:
        return None
    if isinstance(value, DynamicOverride):
        return value.evaluate(context)
    return value


def expand_args(template: ArgsTemplate | None, spec: FormatterSpec, ctx: Context) -> list[str]:
    """Evaluate an args template into a list; strings are split like a shell would."""

    if template is None:
        return []
    value = template(spec, ctx) if callable(template) else template
    if isinstance(value, str):
        return shlex.split(value)
    return [str(item) for item in value]


def chain_args(first: ArgsTemplate | None, second: ArgsTemplate | None) -> ArgsTemplate | None:
    """Concatenate two args templates, keeping them lazy when either is dynamic."""

    if first is None:
        return second
    if second is None:
        return first
    if not callable(first) and not callable(second):
        head = shlex.split(first) if isinstance(first, str) else list(first)
        tail = shlex.split(second) if isinstance(second, str) else list(second)
        return [*head, *tail]

    def _chained(spec: Any, ctx: Context) -> list[str]:
        return [*expand_args(first, spec, ctx), *expand_args(second, spec, ctx)]

    return _chained


def _merged_options(
    base: Mapping[str, object], override: Mapping[str, object] | None
) -> dict[str, object]:
    merged = dict(base)
    for key, value in (override or {}).items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _merged_options(
                cast("Mapping[str, object]", current), cast("Mapping[str, object]", value)
            )
        else:
            merged[key] = value
    return merged


def _command_from_override(
    override: FormatterOverride,
    *,
    condition: Callable[[Any, Context], bool] | None,
    options: Mapping[str, object],
    meta: FormatterMeta | None,
) -> CommandFormatter:
    assert override.command is not None
    return CommandFormatter(
        command=override.command,
        args=chain_args(chain_args(override.prepend_args, override.args), override.append_args),
        range_args=override.range_args,
        cwd=override.cwd,
        require_cwd=bool(override.require_cwd),
        stdin=True if override.stdin is None else override.stdin,
        tmpfile_format=override.tmpfile_format,
        condition=override.condition or condition,
        exit_codes=override.exit_codes or (0,),
        env=override.env,
        options=options,
        meta=override.meta or meta,
    )


def spec_from_override(override: FormatterOverride) -> FormatterSpec | None:
    """Build a standalone definition from an override, if it defines one."""

    if not override.is_definition:
        return None
    options = dict(override.options or {})
    if override.format is not None:
        return TransformFormatter(
            format=override.format,
            condition=override.condition,
            options=options,
            meta=override.meta,
        )
    return _command_from_override(override, condition=None, options=options, meta=override.meta)


def merge_formatter_specs(base: FormatterSpec, override: FormatterOverride) -> FormatterSpec:
    """Merge an override into a definition; fields set on the override win."""

    options = _merged_options(base.options, override.options)
    if override.format is not None:
        return TransformFormatter(
            format=override.format,
            condition=override.condition or base.condition,
            options=options,
            meta=override.meta or base.meta,
        )

    if isinstance(base, TransformFormatter):
        if override.command is None:
            return replace(
                base,
                condition=override.condition or base.condition,
                options=options,
                meta=override.meta or base.meta,
            )
        return _command_from_override(
            override, condition=base.condition, options=options, meta=base.meta
        )

    changes: dict[str, Any] = {"options": options}
    for name in (
        "command",
        "args",
        "range_args",
        "cwd",
        "require_cwd",
        "stdin",
        "tmpfile_format",
        "condition",
        "exit_codes",
        "env",
        "meta",
    ):
        value = getattr(override, name)
        if value is not None:
            changes[name] = value
    if override.prepend_args is not None:
        changes["prepend_args"] = chain_args(override.prepend_args, base.prepend_args)
    if override.append_args is not None:
        changes["append_args"] = chain_args(base.append_args, override.append_args)
    return replace(base, **changes)
