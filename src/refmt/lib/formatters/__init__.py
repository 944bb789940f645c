"""Formatter definitions, overrides and the built-in catalog."""

from refmt.lib.formatters.catalog import FormatterCatalog, get_default_catalog
from refmt.lib.formatters.spec import (
    CommandFormatter,
    DynamicOverride,
    FormatterMeta,
    FormatterOverride,
    FormatterSpec,
    TransformFormatter,
    merge_formatter_specs,
)
from refmt.lib.formatters.util import find_upwards, line_range_args, root_file

__all__ = [
    "CommandFormatter",
    "DynamicOverride",
    "FormatterCatalog",
    "FormatterMeta",
    "FormatterOverride",
    "FormatterSpec",
    "TransformFormatter",
    "find_upwards",
    "get_default_catalog",
    "line_range_args",
    "merge_formatter_specs",
    "root_file",
]
