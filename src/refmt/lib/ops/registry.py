"""Operation registry shared by the CLI and MCP surfaces.

An operation is named ``<group>.<command>``; the CLI exposes it as
``refmt <group> <command>`` and the MCP server as the tool ``<group>_<command>``.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

# Each module registers its operations when imported.
_OPERATION_MODULES = ("refmt.lib.ops.format", "refmt.lib.ops.formatters")


@dataclass(frozen=True, slots=True)
class OperationSpec(Generic[InputT, OutputT]):
    name: str
    handler: Callable[[InputT], Coroutine[Any, Any, OutputT]]
    sync_handler: Callable[[InputT], OutputT]
    input_type: type[InputT]
    output_type: type[OutputT]
    description: str

    @property
    def cli_group(self) -> str:
        return self.name.partition(".")[0]

    @property
    def cli_name(self) -> str:
        return self.name.partition(".")[2]

    @property
    def mcp_name(self) -> str:
        return self.name.replace(".", "_")


_REGISTRY: dict[str, OperationSpec[Any, Any]] = {}
_loaded = False


def operation(spec: OperationSpec[InputT, OutputT]) -> OperationSpec[InputT, OutputT]:
    """Register ``spec``; names must be unique and of the form ``group.command``."""

    group, dot, command = spec.name.partition(".")
    if not (group and dot and command) or "." in command:
        raise ValueError(f"Operation name '{spec.name}' must look like 'group.command'")
    if spec.name in _REGISTRY:
        raise ValueError(f"Duplicate operation name '{spec.name}'")
    _REGISTRY[spec.name] = spec
    return spec


def _load_operation_modules() -> None:
    global _loaded
    if _loaded:
        return
    for module in _OPERATION_MODULES:
        importlib.import_module(module)
    _loaded = True


def get_all_operations() -> list[OperationSpec[Any, Any]]:
    """All operations, sorted by name."""

    _load_operation_modules()
    return sorted(_REGISTRY.values(), key=lambda spec: spec.name)


def get_operation(name: str) -> OperationSpec[Any, Any]:
    _load_operation_modules()
    try:
        return _REGISTRY[name]
    except KeyError:
        raise KeyError(f"Unknown operation '{name}'") from None
