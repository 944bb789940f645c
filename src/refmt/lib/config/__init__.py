"""Engine settings and layered format configuration."""

from refmt.lib.config.layering import (
    FormatOptions,
    LspFormat,
    MergedConfig,
    ResolvedConfig,
    merge_config,
)
from refmt.lib.config.settings import RefmtSettings, load_settings

__all__ = [
    "FormatOptions",
    "LspFormat",
    "MergedConfig",
    "RefmtSettings",
    "ResolvedConfig",
    "load_settings",
    "merge_config",
]
