"""Formatter resolution: ordering, stop-after-first and availability reasons."""

from __future__ import annotations

import logging

import pytest

from refmt.lib.domain import Context
from refmt.lib.formatters.catalog import FormatterCatalog
from refmt.lib.formatters.spec import CommandFormatter, FormatterOverride, TransformFormatter
from refmt.lib.ports import RecordingNotifier
from refmt.lib.resolver import UNKNOWN_FORMATTER_MSG, FormatterResolver


def _identity(_spec: TransformFormatter, _ctx: Context, lines: list[str]) -> list[str]:
    return lines


def _present(command: str) -> str | None:
    return f"/usr/bin/{command}"


def _absent(_command: str) -> str | None:
    return None


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def catalog() -> FormatterCatalog:
    catalog = FormatterCatalog()
    catalog.register("alpha", TransformFormatter(format=_identity))
    catalog.register("beta", CommandFormatter(command="beta-tool"))
    catalog.register("gamma", TransformFormatter(format=_identity))
    catalog.register(
        "rooted",
        CommandFormatter(command="rooted-tool", cwd=lambda _spec, _ctx: None, require_cwd=True),
    )
    return catalog


def test_resolve_preserves_order_and_drops_unavailable(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(catalog, notifier, which=_absent)

    resolved = resolver.resolve(["gamma", "beta", "alpha", "unknown"], context)

    assert [info.name for info in resolved] == ["gamma", "alpha"]
    assert notifier.messages == []


def test_stop_after_first_returns_first_available(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(catalog, notifier, which=_absent)

    resolved = resolver.resolve(["beta", "gamma", "alpha"], context, stop_after_first=True)

    assert [info.name for info in resolved] == ["gamma"]


def test_warn_on_missing_notifies_reason(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(catalog, notifier, which=_absent)

    resolver.resolve(["beta", "nope"], context, warn_on_missing=True)

    assert notifier.messages == [
        (logging.WARNING, "Formatter 'beta' unavailable: Command 'beta-tool' not found"),
        (logging.WARNING, f"Formatter 'nope' unavailable: {UNKNOWN_FORMATTER_MSG}"),
    ]


def test_unknown_formatter_is_flagged_as_error(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    info = FormatterResolver(catalog, notifier).get_formatter_info("nope", context)

    assert info.available is False
    assert info.error is True
    assert info.available_msg == UNKNOWN_FORMATTER_MSG


def test_conflicting_override_is_reported_once(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(catalog, notifier, which=_present)
    overrides = {"beta": FormatterOverride(command="other", format=_identity)}

    first = resolver.get_formatter_info("beta", context, overrides)
    second = resolver.get_formatter_info("beta", context, overrides)

    assert first.available is False and first.error is True
    assert "defines both 'command' and 'format'" in (first.available_msg or "")
    assert second.available_msg == first.available_msg
    assert notifier.messages == [(logging.ERROR, first.available_msg)]


def test_override_without_definition_is_incomplete(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(catalog, notifier, which=_present)
    overrides = {
        "ghost": FormatterOverride(args=["-q"]),
        "alpha": FormatterOverride(inherit=False, args=["-q"]),
    }

    ghost = resolver.get_formatter_info("ghost", context, overrides)
    alpha = resolver.get_formatter_info("alpha", context, overrides)

    assert ghost.available_msg == (
        "Formatter 'ghost' override is incomplete: missing built-in definition."
    )
    assert alpha.available_msg is not None
    assert "'inherit' is false" in alpha.available_msg


def test_non_inheriting_override_replaces_definition(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(catalog, notifier, which=_present)
    overrides = {"alpha": FormatterOverride(inherit=False, command="replacement", args="-q")}

    spec = resolver.get_formatter_spec("alpha", context, overrides)
    info = resolver.get_formatter_info("alpha", context, overrides)

    assert isinstance(spec, CommandFormatter)
    assert spec.command == "replacement"
    assert info.available is True
    assert info.command == "replacement"


def test_override_can_define_a_new_formatter(
    notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(FormatterCatalog(), notifier, which=_present)
    overrides = {"custom": FormatterOverride(command="custom-tool", exit_codes=(0, 1))}

    info = resolver.get_formatter_info("custom", context, overrides)

    assert info.available is True
    assert isinstance(info.spec, CommandFormatter)
    assert info.spec.exit_codes == (0, 1)


def test_condition_and_cwd_reasons(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(catalog, notifier, which=_present)
    overrides = {"gamma": FormatterOverride(condition=lambda _spec, _ctx: False)}

    gamma = resolver.get_formatter_info("gamma", context, overrides)
    rooted = resolver.get_formatter_info("rooted", context)

    assert gamma.available_msg == "Condition failed"
    assert gamma.error is False
    assert rooted.available_msg == "Root directory not found"


def test_available_command_reports_resolved_cwd(
    notifier: RecordingNotifier, context: Context
) -> None:
    catalog = FormatterCatalog()
    catalog.register(
        "tool", CommandFormatter(command="tool", cwd=lambda _spec, ctx: ctx.dirname)
    )

    info = FormatterResolver(catalog, notifier, which=_present).get_formatter_info(
        "tool", context
    )

    assert info.available is True
    assert info.cwd == context.dirname
    assert info.available_msg is None


def test_list_infos_includes_unavailable_entries(
    catalog: FormatterCatalog, notifier: RecordingNotifier, context: Context
) -> None:
    resolver = FormatterResolver(catalog, notifier, which=_absent)

    infos = resolver.list_infos(["alpha", "beta"], context)

    assert [(info.name, info.available) for info in infos] == [("alpha", True), ("beta", False)]


def _broken(_spec: object, _ctx: Context) -> bool:
    raise RuntimeError("boom")


def test_raising_formatter_callables_only_disable_that_formatter(
    notifier: RecordingNotifier, context: Context
) -> None:
    catalog = FormatterCatalog()
    catalog.register("bad", TransformFormatter(format=_identity, condition=_broken))
    catalog.register("badcwd", CommandFormatter(command="tool", cwd=_broken))
    catalog.register("good", TransformFormatter(format=_identity))
    resolver = FormatterResolver(catalog, notifier, which=_present)

    resolved = resolver.resolve(["bad", "badcwd", "good"], context)
    bad = resolver.get_formatter_info("bad", context)

    assert [info.name for info in resolved] == ["good"]
    assert bad.available is False and bad.error is True
    assert bad.available_msg == "Formatter 'bad' failed to evaluate: boom"
    assert notifier.messages == [
        (logging.ERROR, "Formatter 'bad' failed to evaluate: boom"),
        (logging.ERROR, "Formatter 'badcwd' failed to evaluate: boom"),
    ]
