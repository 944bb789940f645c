"""Operations shared by the CLI and the MCP server."""

from refmt.lib.ops.registry import OperationSpec, get_all_operations, get_operation, operation

__all__ = ["OperationSpec", "get_all_operations", "get_operation", "operation"]
