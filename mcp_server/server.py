"""
MCP Server for LLM Email Sandbox.

This module implements a Model Context Protocol (MCP) server that lets
agents compile AI-generated React Email templates into HTML, plus an HTTP
preview route for browser clients.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastmcp import FastMCP
from pydantic import BaseModel
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from email_sandbox.capabilities import COMPONENTS_MODULE, DEFAULT_CAPABILITIES, REACT_MODULE
from email_sandbox.core.logging import PipelineLogger
from email_sandbox.core.models import PipelineResult
from email_sandbox.pipeline import compile_template_async

from .config import HTTPTransportConfig, MCPConfig
from .metrics import MCPMetricsCollector
from .prompts import build_email_designer_prompt

# Streamable HTTP uses GET for the event stream and DELETE to end a session
MCP_HTTP_METHODS = ("GET", "POST", "DELETE")
PREVIEW_METHODS = ("POST",)


class MCPToolResult(BaseModel):
    """Result from an MCP tool execution."""

    content: str
    structured_content: dict[str, Any] | None = None
    execution_time_ms: float | None = None
    success: bool = True


class MCPServer:
    """
    MCP Server for sandboxed email template compilation.

    Provides the generate_email, list_components and get_metrics tools,
    the email_designer prompt, and a POST preview route that returns HTML.
    """

    def __init__(self, config: MCPConfig | None = None):
        self.config = config or MCPConfig()
        self.logger = PipelineLogger("mcp_server")
        self.pipeline_logger = PipelineLogger()
        self.metrics = MCPMetricsCollector()

        self.app = FastMCP(
            name=self.config.server.name,
            version=self.config.server.version,
            instructions=self.config.server.instructions,
        )

        self._register_tools()
        self._register_prompts()
        if self.config.preview.enabled:
            self.app.custom_route(self.config.preview.path, methods=list(PREVIEW_METHODS))(self.render_email_endpoint)

        self.logger._emit(logging.INFO, "MCP server initialized", config=self.config.model_dump())

    async def compile(self, source_text: str) -> PipelineResult:
        """Compile one template off the event loop and record its outcome."""
        result = await compile_template_async(
            source_text,
            self.config.policy,
            timeout=self.config.preview.tool_timeout_seconds,
            logger=self.pipeline_logger,
        )
        self.metrics.record_compilation(result)
        return result

    async def generate_email(self, name: str, description: str, source_text: str) -> MCPToolResult:
        """Compile a named template and echo it back with its HTML."""
        result = await self.compile(source_text)
        structured: dict[str, Any] = {
            "ok": result.ok,
            "name": name,
            "description": description,
            "sourceText": source_text,
            "htmlCode": result.html,
        }
        if result.ok:
            content = f"Compiled '{name}' ({len(result.html)} characters of HTML)"
        else:
            structured["errorKind"] = result.error_kind
            structured["message"] = result.message
            structured["error_guidance"] = result.metadata.get("error_guidance")
            content = f"{result.error_kind}: {result.message}"

        console = result.metadata.get("console")
        if console:
            structured["console"] = console

        return MCPToolResult(
            content=content,
            structured_content=structured,
            execution_time_ms=result.duration_ms,
            success=result.ok,
        )

    def list_components(self) -> MCPToolResult:
        """Describe the modules and components templates may use."""
        components = DEFAULT_CAPABILITIES.component_names()
        return MCPToolResult(
            content=f"{len(components)} components available from {COMPONENTS_MODULE}: {', '.join(components)}",
            structured_content={
                "modules": list(DEFAULT_CAPABILITIES.names),
                "components": components,
                "react_exports": sorted(k for k in DEFAULT_CAPABILITIES.resolve(REACT_MODULE) if k != "default"),
                "usage": (
                    f'const React = require("{REACT_MODULE}");\n'
                    f'const {{ Html, Body, Container, Text }} = require("{COMPONENTS_MODULE}");\n'
                    "module.exports.default = () => React.createElement(Html, null, ...);"
                ),
            },
        )

    def get_metrics(self) -> MCPToolResult:
        metrics_summary = self.metrics.get_summary()
        server_version = self.config.server.version
        metrics_summary["server"] = {
            "version": server_version,
            "name": self.config.server.name,
        }
        compilations = metrics_summary["compilations"]
        return MCPToolResult(
            content=(
                f"MCP Server v{server_version}: {metrics_summary['tool_executions']['total_count']} tool executions, "
                f"{compilations['total_count']} compilations ({compilations['success_count']} succeeded)"
            ),
            structured_content=metrics_summary,
        )

    async def render_email_endpoint(self, request: Request) -> JSONResponse:
        """POST preview route: ``{"sourceText": str}`` in, ``{"htmlCode": str}`` out.

        The legacy ``tsxCode`` key is accepted as well. A missing or non-string
        source returns 400; a failed compilation returns 500 with the message.
        """
        with self.metrics.time_http_request():
            try:
                body = await request.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                body = None

            source_text = None
            if isinstance(body, dict):
                source_text = body.get("sourceText", body.get("tsxCode"))

            if not source_text or not isinstance(source_text, str):
                self.metrics.record_http_error()
                return JSONResponse({"error": "sourceText is required and must be a string"}, status_code=400)

            result = await self.compile(source_text)
            if not result.ok:
                self.metrics.record_http_error()
                return JSONResponse({"error": result.message or "Unknown compilation error"}, status_code=500)
            return JSONResponse({"htmlCode": result.html})

    def preview_routes(self) -> list[Route]:
        """Starlette routes for mounting the preview endpoint in another app."""
        return [Route(self.config.preview.path, self.render_email_endpoint, methods=list(PREVIEW_METHODS))]

    def _register_tools(self) -> None:
        """Register all MCP tools."""

        @self.app.tool(
            name="generate_email",
            description="""Compile a React Email template into HTML inside a sandbox.

            Use this tool whenever the user asks you to create, modify, or update an email
            template. source_text must contain the complete component module:
              • CommonJS require("react") / require("@react-email/components")
              • module.exports.default = <component function>
              • TSX/JSX and TypeScript annotations are accepted

            Returns ok, name, description, sourceText and htmlCode. On failure htmlCode is
            empty and errorKind / message / error_guidance explain what to fix:
              • TranspileError: syntax problem (line and column in the message)
              • ModuleResolutionError: required a module other than the two above
              • ComponentContractError: no usable default export or invalid element type
              • RenderError: the tree could not be serialized
              • UnknownRuntimeFault: the template threw or exhausted its step budget
            """,
        )
        async def generate_email(name: str, description: str, source_text: str) -> MCPToolResult:
            """Compile an email template."""
            with self.metrics.time_tool_execution("generate_email"):
                try:
                    return await self.generate_email(name, description, source_text)
                except Exception as e:
                    self.logger._emit(
                        logging.ERROR, "Tool execution failed", tool="generate_email", error=str(e)
                    )
                    return MCPToolResult(content=f"Compilation failed: {e!s}", success=False)

        @self.app.tool(
            name="list_components",
            description="List the modules and React Email components that templates may require",
        )
        async def list_components() -> MCPToolResult:
            """List available components."""
            with self.metrics.time_tool_execution("list_components"):
                return self.list_components()

        @self.app.tool(
            name="get_metrics",
            description="Get compilation outcomes and performance metrics for the MCP server",
        )
        async def get_metrics() -> MCPToolResult:
            """Get MCP server metrics."""
            with self.metrics.time_tool_execution("get_metrics"):
                return self.get_metrics()

    def _register_prompts(self) -> None:
        prompt_text = build_email_designer_prompt(DEFAULT_CAPABILITIES)

        @self.app.prompt(
            name="email_designer",
            description="System prompt for agents that write React Email templates for generate_email",
        )
        def email_designer() -> str:
            return prompt_text

    async def start_stdio(self) -> None:
        """Start the MCP server with stdio transport."""
        self.logger._emit(logging.INFO, "Starting MCP server with stdio transport")
        await self.app.run_stdio_async()

    async def start_http(self, config: HTTPTransportConfig | None = None) -> None:
        """Start the MCP server with HTTP transport."""
        http_config = config or self.config.transport_http

        self.logger._emit(
            logging.INFO,
            "Starting MCP server with HTTP transport",
            host=http_config.host,
            port=http_config.port,
            preview_path=self.config.preview.path if self.config.preview.enabled else None,
        )

        await self.app.run_http_async(
            host=http_config.host,
            port=http_config.port,
            path=http_config.path,
            middleware=[self.cors_middleware(http_config)],
            uvicorn_config=http_config.uvicorn_config(),
        )

    def cors_methods(self) -> list[str]:
        """HTTP methods browsers may use across the routes this server mounts."""
        methods = set(MCP_HTTP_METHODS)
        if self.config.preview.enabled:
            methods.update(PREVIEW_METHODS)
        return sorted(methods | {"OPTIONS"})

    def cors_middleware(self, http_config: HTTPTransportConfig) -> Middleware:
        return Middleware(
            CORSMiddleware,
            allow_origins=http_config.cors_origins,
            allow_credentials=True,
            allow_methods=self.cors_methods(),
            allow_headers=["*"],
            expose_headers=["mcp-session-id"],
        )

    async def shutdown(self) -> None:
        """Log final metrics on shutdown."""
        self.logger._emit(logging.INFO, "Shutting down MCP server")
        self.logger._emit(logging.INFO, "Final MCP metrics", metrics=self.metrics.get_summary())


def create_mcp_server(config: MCPConfig | None = None) -> MCPServer:
    """Create and configure an MCP server instance.

    Args:
        config: MCP server configuration. If None, uses defaults.

    Returns:
        Configured MCPServer instance.
    """
    return MCPServer(config)
