# MCP Server Package
"""
Model Context Protocol server for LLM Email Sandbox.

This package exposes sandboxed React Email template compilation to MCP
clients, along with an HTTP preview route.
"""

__version__ = "0.1.0"

from .config import HTTPTransportConfig, MCPConfig
from .server import MCPServer, MCPToolResult, create_mcp_server

__all__ = [
    "HTTPTransportConfig",
    "MCPConfig",
    "MCPServer",
    "MCPToolResult",
    "create_mcp_server",
]
