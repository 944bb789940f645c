"""MCP server surface for refmt."""
