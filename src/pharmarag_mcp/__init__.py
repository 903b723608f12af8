"""PharmaRAG MCP server package."""

from .mcp_server import run, run_server

__all__ = [
    "run",
    "run_server",
]
