"""MCP server exposing every refmt operation as a tool over stdio."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, cast

import structlog
from mcp.server.fastmcp import FastMCP

from refmt.lib.config.settings import load_settings
from refmt.lib.formatters.catalog import get_default_catalog
from refmt.lib.logging import configure_logging
from refmt.lib.ops import OperationSpec, get_all_operations
from refmt.lib.ops.codec import coerce_input_payload, signature_from_dataclass
from refmt.lib.serialization import to_jsonable

logger = structlog.get_logger(__name__)

# Tool name -> operation name, and operation name -> description.
_TOOLS: dict[str, str] = {}
_DESCRIPTIONS: dict[str, str] = {}


@asynccontextmanager
async def lifespan(_: FastMCP[Any]) -> AsyncIterator[dict[str, object]]:
    configure_logging(json_mode=True)
    settings = load_settings()
    logger.info(
        "refmt MCP server ready.",
        formatters=len(get_default_catalog().names()),
        default_timeout_ms=settings.default_timeout_ms,
    )
    yield {"settings": settings}


mcp = FastMCP(
    "refmt",
    instructions=(
        "Format files with configured formatter pipelines. "
        "Use formatters_plan to preview which formatters run, format_check for a dry run."
    ),
    lifespan=lifespan,
)


def _tool_for(op: OperationSpec[Any, Any]) -> Any:
    async def _call(**arguments: object) -> object:
        payload = coerce_input_payload(op.input_type, arguments)
        logger.debug("Running tool.", tool=op.mcp_name)
        return to_jsonable(await op.handler(payload))

    _call.__name__ = op.mcp_name
    _call.__doc__ = op.description
    cast("Any", _call).__signature__ = signature_from_dataclass(op.input_type)
    return _call


def _register_tools() -> None:
    for op in get_all_operations():
        mcp.add_tool(_tool_for(op), name=op.mcp_name, description=op.description)
        _TOOLS[op.mcp_name] = op.name
        _DESCRIPTIONS[op.name] = op.description


def get_registered_mcp_tools() -> set[str]:
    return set(_TOOLS)


def get_registered_mcp_descriptions() -> dict[str, str]:
    return dict(_DESCRIPTIONS)


def run_server() -> None:
    mcp.run(transport="stdio")


_register_tools()
