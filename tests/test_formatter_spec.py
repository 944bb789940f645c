"""Formatter definitions: override merging and argument templates."""

from __future__ import annotations

import pytest

from refmt.lib.domain import Context
from refmt.lib.formatters.spec import (
    CommandFormatter,
    FormatterMeta,
    FormatterOverride,
    TransformFormatter,
    chain_args,
    expand_args,
    merge_formatter_specs,
    spec_from_override,
)


def _identity(_spec: TransformFormatter, _ctx: Context, lines: list[str]) -> list[str]:
    return lines


def test_command_override_wins_field_by_field(context: Context) -> None:
    meta = FormatterMeta(url="https://example.invalid", description="Base tool.")
    base = CommandFormatter(
        command="tool",
        args=["--check"],
        prepend_args=["--base-first"],
        append_args=["--base-last"],
        options={"style": {"indent": 2, "quotes": "double"}},
        meta=meta,
    )
    override = FormatterOverride(
        args=["--write"],
        prepend_args=["--override-first"],
        append_args="--override-last",
        exit_codes=(0, 1),
        options={"style": {"quotes": "single"}},
    )

    merged = merge_formatter_specs(base, override)

    assert isinstance(merged, CommandFormatter)
    assert merged.command == "tool"
    assert merged.args == ["--write"]
    assert expand_args(merged.prepend_args, merged, context) == [
        "--override-first",
        "--base-first",
    ]
    assert expand_args(merged.append_args, merged, context) == ["--base-last", "--override-last"]
    assert merged.exit_codes == (0, 1)
    assert merged.options == {"style": {"indent": 2, "quotes": "single"}}
    assert merged.meta is meta


def test_format_override_turns_command_into_transform() -> None:
    base = CommandFormatter(command="tool", options={"a": 1})

    merged = merge_formatter_specs(base, FormatterOverride(format=_identity))

    assert isinstance(merged, TransformFormatter)
    assert merged.format is _identity
    assert merged.options == {"a": 1}


def test_command_override_on_transform_builds_command(context: Context) -> None:
    base = TransformFormatter(format=_identity, condition=lambda _spec, _ctx: True)

    merged = merge_formatter_specs(
        base,
        FormatterOverride(command="tool", prepend_args="-p", args=["-a"], append_args=["-z"]),
    )

    assert isinstance(merged, CommandFormatter)
    assert expand_args(merged.args, merged, context) == ["-p", "-a", "-z"]
    assert merged.condition is base.condition


def test_spec_from_override_requires_a_definition() -> None:
    assert spec_from_override(FormatterOverride(args=["-q"])) is None
    assert isinstance(spec_from_override(FormatterOverride(format=_identity)), TransformFormatter)
    assert isinstance(spec_from_override(FormatterOverride(command="tool")), CommandFormatter)
    assert FormatterOverride(args=["-q"]).is_definition is False
    assert FormatterOverride(command="tool").is_definition is True
    assert FormatterOverride(command="a", format=_identity).has_conflict is True


def test_expand_args_splits_strings_like_a_shell(context: Context) -> None:
    spec = CommandFormatter(command="tool")

    assert expand_args("--indent 2 '--name=a b'", spec, context) == [
        "--indent",
        "2",
        "--name=a b",
    ]
    assert expand_args(lambda _spec, ctx: [ctx.dirname, 4], spec, context) == [
        context.dirname,
        "4",
    ]
    assert expand_args(None, spec, context) == []


def test_chain_args_stays_lazy_with_callables(context: Context) -> None:
    spec = CommandFormatter(command="tool")
    chained = chain_args(lambda _spec, ctx: [ctx.filename], "--tail")

    assert callable(chained)
    assert expand_args(chained, spec, context) == [context.filename, "--tail"]
    assert chain_args("-a -b", ["-c"]) == ["-a", "-b", "-c"]
    assert chain_args(None, "-c") == "-c"


def test_from_mapping_validates_keys_and_exit_codes() -> None:
    override = FormatterOverride.from_mapping(
        {"command": "tool", "exit_codes": [0, 2]}, source="overrides.tool"
    )

    assert override.command == "tool"
    assert override.exit_codes == (0, 2)

    with pytest.raises(ValueError, match="unknown keys \\['bogus'\\]"):
        FormatterOverride.from_mapping({"bogus": 1}, source="overrides.tool")
    with pytest.raises(ValueError, match="overrides.tool.exit_codes"):
        FormatterOverride.from_mapping({"exit_codes": "0"}, source="overrides.tool")
