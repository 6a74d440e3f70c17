#!/usr/bin/env python3
"""
MCP Server CLI for LLM Email Sandbox.

Command-line interface to run the MCP server over stdio (default) or HTTP.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path
from typing import Any

from email_sandbox.core.errors import PolicyValidationError
from email_sandbox.core.logging import configure_structlog
from email_sandbox.policies import load_policy

from .config import MCPConfig
from .server import create_mcp_server

try:
    import importlib.metadata

    __version__ = importlib.metadata.version("llm-email-sandbox")
except importlib.metadata.PackageNotFoundError:
    __version__ = "unknown"


class ProtocolFilterIO:
    """
    A smart wrapper for stdout that directs JSON-RPC messages to real stdout
    and everything else (banners, logs) to stderr.

    This prevents FastMCP's banner and console log lines from breaking the
    stdio protocol.
    """

    def __init__(self, original_stdout: Any, stderr: Any) -> None:
        self.original_stdout = original_stdout
        self.stderr = stderr
        self.buffer = original_stdout.buffer if hasattr(original_stdout, "buffer") else None

    def write(self, message: str) -> int:
        # MCP JSON-RPC messages are JSON objects starting with '{'
        try:
            if message.strip().startswith("{"):
                self.original_stdout.write(message)
                self.original_stdout.flush()
            else:
                self.stderr.write(message)
                self.stderr.flush()
        except ValueError:
            # Closed file during shutdown
            pass
        return len(message)

    def flush(self) -> None:
        with contextlib.suppress(ValueError):
            self.original_stdout.flush()
        with contextlib.suppress(ValueError):
            self.stderr.flush()

    def isatty(self) -> bool:
        return bool(self.original_stdout.isatty())

    def __getattr__(self, name: str) -> Any:
        return getattr(self.original_stdout, name)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="llm-email-mcp",
        description="LLM Email Sandbox MCP Server - compile React Email templates via Model Context Protocol",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport to serve on (default: stdio)",
    )
    parser.add_argument("--host", default=None, help="HTTP bind host (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="HTTP port (overrides config)")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="FILE",
        help="MCP server configuration TOML file",
    )
    parser.add_argument(
        "--policy",
        type=Path,
        default=None,
        metavar="FILE",
        help="Compilation policy TOML file (overrides the [policy] table of --config)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> MCPConfig:
    """Combine the config file, policy file and command-line overrides."""
    config = MCPConfig.from_file(args.config) if args.config else MCPConfig()

    if args.policy:
        config = config.model_copy(update={"policy": load_policy(str(args.policy))})
    if args.host or args.port:
        transport = config.transport_http.model_copy(
            update={
                "host": args.host or config.transport_http.host,
                "port": args.port or config.transport_http.port,
            }
        )
        config = config.model_copy(update={"transport_http": transport})
    return config


async def async_main(config: MCPConfig, transport: str) -> None:
    """Async main entry point with proper signal handling."""
    server = create_mcp_server(config)
    print("Available tools: generate_email, list_components, get_metrics", file=sys.stderr)

    try:
        if transport == "http":
            await server.start_http()
        else:
            await server.start_stdio()
    except asyncio.CancelledError:
        print("\nShutting down MCP server...", file=sys.stderr)
    finally:
        await server.shutdown()


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except (FileNotFoundError, ValueError, PolicyValidationError) as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # JSON log lines would be mistaken for JSON-RPC on stdio
    configure_structlog(
        level=getattr(logging, config.logging.level),
        use_json=config.logging.structured and args.transport == "http",
    )

    print(f"LLM Email Sandbox MCP Server v{__version__}", file=sys.stderr)
    print("", file=sys.stderr)

    if args.transport == "stdio":
        # Keep JSON-RPC on stdout, everything else on stderr
        sys.stdout = ProtocolFilterIO(sys.stdout, sys.stderr)

    try:
        asyncio.run(async_main(config, args.transport))
    except KeyboardInterrupt:
        print("\nGraceful shutdown complete.", file=sys.stderr)


if __name__ == "__main__":
    main()
