"""Formatter resolution: names + overrides + context -> available formatters."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Mapping, Sequence

import structlog

from refmt.lib.domain import Context, FormatterInfo
from refmt.lib.errors import ErrorKind, FormatError
from refmt.lib.formatters.catalog import FormatterCatalog, get_default_catalog
from refmt.lib.formatters.spec import (
    CommandFormatter,
    FormatterOverride,
    FormatterSpec,
    merge_formatter_specs,
    spec_from_override,
)
from refmt.lib.ports import LoggingNotifier, Notifier

logger = structlog.get_logger(__name__)

UNKNOWN_FORMATTER_MSG = "Unknown formatter. Formatter config missing or incomplete"


class FormatterResolver:
    """Build ``FormatterInfo`` views for configured formatter names.

    Nothing is cached: every call re-evaluates availability against the given
    context, since the context (and the executables on ``PATH``) may change
    between calls.
    """

    def __init__(
        self,
        catalog: FormatterCatalog | None = None,
        notifier: Notifier | None = None,
        *,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._catalog = catalog or get_default_catalog()
        self._notifier: Notifier = notifier or LoggingNotifier()
        self._which = which

    @property
    def catalog(self) -> FormatterCatalog:
        return self._catalog

    def get_formatter_spec(
        self,
        name: str,
        context: Context,
        overrides: Mapping[str, FormatterOverride] | None = None,
    ) -> FormatterSpec | None:
        """Return the merged definition for ``name``, or None if none exists.

        Raises ``FormatError`` (configuration-error) for malformed overrides.
        """

        _ = context
        override = (overrides or {}).get(name)
        base = self._catalog.get(name)
        if override is None:
            return base

        if override.has_conflict:
            raise FormatError(
                ErrorKind.CONFIGURATION,
                f"Formatter '{name}' defines both 'command' and 'format'. Use only one.",
                formatter=name,
            )
        if not override.inherit or base is None:
            spec = spec_from_override(override)
            if spec is None:
                reason = (
                    "missing built-in definition"
                    if base is None
                    else "'inherit' is false but neither 'command' nor 'format' is set"
                )
                raise FormatError(
                    ErrorKind.CONFIGURATION,
                    f"Formatter '{name}' override is incomplete: {reason}.",
                    formatter=name,
                )
            return spec
        return merge_formatter_specs(base, override)

    def get_formatter_info(
        self,
        name: str,
        context: Context,
        overrides: Mapping[str, FormatterOverride] | None = None,
    ) -> FormatterInfo:
        """Return availability information for one formatter; never raises."""

        try:
            spec = self.get_formatter_spec(name, context, overrides)
        except FormatError as error:
            logger.warning("Invalid formatter configuration.", formatter=name, error=error.message)
            self._notifier.notify_once(error.message, logging.ERROR)
            return FormatterInfo(
                name=name,
                command=name,
                available=False,
                available_msg=error.message,
                error=True,
            )

        if spec is None:
            return FormatterInfo(
                name=name,
                command=name,
                available=False,
                available_msg=UNKNOWN_FORMATTER_MSG,
                error=True,
            )

        try:
            return self._evaluate(name, spec, context)
        except Exception as error:
            message = f"Formatter '{name}' failed to evaluate: {error}"
            logger.warning("Formatter evaluation failed.", formatter=name, exc_info=True)
            self._notifier.notify_once(message, logging.ERROR)
            return FormatterInfo(
                name=name,
                command=name,
                available=False,
                available_msg=message,
                error=True,
                spec=spec,
            )

    def _evaluate(self, name: str, spec: FormatterSpec, context: Context) -> FormatterInfo:
        if not isinstance(spec, CommandFormatter):
            if not spec.check_condition(context):
                return FormatterInfo(
                    name=name,
                    command=name,
                    available=False,
                    available_msg="Condition failed",
                    spec=spec,
                )
            return FormatterInfo(name=name, command=name, available=True, spec=spec)

        command = spec.resolve_command(context)
        if self._which(command) is None:
            return FormatterInfo(
                name=name,
                command=command,
                available=False,
                available_msg=f"Command '{command}' not found",
                spec=spec,
            )
        if not spec.check_condition(context):
            return FormatterInfo(
                name=name,
                command=command,
                available=False,
                available_msg="Condition failed",
                spec=spec,
            )
        cwd = spec.resolve_cwd(context)
        if spec.require_cwd and cwd is None:
            return FormatterInfo(
                name=name,
                command=command,
                available=False,
                available_msg="Root directory not found",
                spec=spec,
            )
        return FormatterInfo(name=name, command=command, cwd=cwd, available=True, spec=spec)

    def list_infos(
        self,
        names: Sequence[str],
        context: Context,
        overrides: Mapping[str, FormatterOverride] | None = None,
    ) -> list[FormatterInfo]:
        """Return an info for every name, available or not."""

        return [self.get_formatter_info(name, context, overrides) for name in names]

    def resolve(
        self,
        names: Sequence[str],
        context: Context,
        overrides: Mapping[str, FormatterOverride] | None = None,
        *,
        warn_on_missing: bool = False,
        stop_after_first: bool = False,
    ) -> list[FormatterInfo]:
        """Return the available formatters among ``names``, preserving order."""

        resolved: list[FormatterInfo] = []
        for name in names:
            if stop_after_first and resolved:
                break
            info = self.get_formatter_info(name, context, overrides)
            if info.available:
                resolved.append(info)
                continue
            logger.debug(
                "Formatter unavailable.",
                formatter=name,
                reason=info.available_msg,
                target=context.target,
            )
            if warn_on_missing:
                self._notifier.notify(
                    f"Formatter '{name}' unavailable: {info.available_msg}",
                    logging.WARNING,
                )
        return resolved
