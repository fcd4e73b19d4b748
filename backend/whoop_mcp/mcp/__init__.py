"""
MCP (Model Context Protocol) Server Module

Exposes the Whoop tools to AI assistants over streamable HTTP or stdio.
"""
from .server import get_mcp_app, mcp

__all__ = ["mcp", "get_mcp_app"]
