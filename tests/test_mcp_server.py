"""Tests for MCP server lifecycle and initialization."""

from unittest.mock import AsyncMock

import pytest

from mcp_server.config import MCPConfig, PreviewConfig, ServerConfig
from mcp_server.server import MCPServer, create_mcp_server


class TestMCPServerInitialization:
    """Test MCP server initialization and configuration."""

    def test_create_mcp_server_default_config(self) -> None:
        """Test creating MCP server with default configuration."""
        server = create_mcp_server()

        assert isinstance(server, MCPServer)
        assert isinstance(server.config, MCPConfig)
        assert server.config.server.name == "llm-email-sandbox"

    def test_create_mcp_server_custom_config(self) -> None:
        """Test creating MCP server with custom configuration."""
        config = MCPConfig(server=ServerConfig(name="test-server", version="1.0.0"))
        server = create_mcp_server(config)

        assert server.config.server.name == "test-server"
        assert server.config.server.version == "1.0.0"

    def test_server_has_fastmcp_app(self) -> None:
        """Test that server has a FastMCP app instance."""
        server = create_mcp_server()

        assert server.app.name == "llm-email-sandbox"

    def test_server_has_logger_and_metrics(self) -> None:
        server = create_mcp_server()

        assert server.logger is not None
        assert server.metrics.get_summary()["compilations"]["total_count"] == 0


class TestMCPServerTools:
    """Test MCP server tool registration."""

    def test_tools_are_registered(self) -> None:
        """Test that all expected tools are registered."""
        server = create_mcp_server()
        tools = server.app._tool_manager._tools

        for tool_name in ["generate_email", "list_components", "get_metrics"]:
            assert tool_name in tools, f"Tool {tool_name} not found in registered tools"

    def test_tool_descriptions(self) -> None:
        """Test that tools have proper descriptions."""
        server = create_mcp_server()
        tools = server.app._tool_manager._tools

        description = tools["generate_email"].description
        assert "React Email" in description
        assert "sandbox" in description.lower()
        assert "ModuleResolutionError" in description

    @pytest.mark.asyncio
    async def test_prompt_registered(self) -> None:
        server = create_mcp_server()
        prompts = await server.app.get_prompts()

        assert "email_designer" in prompts


class TestMCPServerLifecycle:
    """Test MCP server lifecycle management."""

    @pytest.mark.asyncio
    async def test_server_shutdown(self) -> None:
        """Shutdown completes without a running transport."""
        server = create_mcp_server()
        await server.shutdown()

    @pytest.mark.asyncio
    async def test_stdio_transport_start(self) -> None:
        """Test starting server with stdio transport."""
        server = create_mcp_server()
        server.app.run_stdio_async = AsyncMock()

        await server.start_stdio()

        server.app.run_stdio_async.assert_called_once()

    @pytest.mark.asyncio
    async def test_http_transport_start_default_config(self) -> None:
        """Test starting server with HTTP transport using default config."""
        server = create_mcp_server()
        server.app.run_http_async = AsyncMock()

        await server.start_http()

        server.app.run_http_async.assert_called_once()
        call_args = server.app.run_http_async.call_args
        assert call_args[1]["host"] == "127.0.0.1"
        assert call_args[1]["port"] == 8080
        assert call_args[1]["path"] == "/mcp"
        assert len(call_args[1]["middleware"]) == 1
        assert call_args[1]["uvicorn_config"]["limit_concurrency"] == 10

    @pytest.mark.asyncio
    async def test_http_transport_start_custom_config(self) -> None:
        """Test starting server with HTTP transport using custom config."""
        from mcp_server.config import HTTPTransportConfig

        server = create_mcp_server()
        http_config = HTTPTransportConfig(host="0.0.0.0", port=9000)
        server.app.run_http_async = AsyncMock()

        await server.start_http(http_config)

        call_args = server.app.run_http_async.call_args
        assert call_args[1]["host"] == "0.0.0.0"
        assert call_args[1]["port"] == 9000

    @pytest.mark.asyncio
    async def test_http_start_failure_handling(self) -> None:
        """Test handling of HTTP transport start failures."""
        server = create_mcp_server()
        server.app.run_http_async = AsyncMock(side_effect=Exception("HTTP error"))

        with pytest.raises(Exception, match="HTTP error"):
            await server.start_http()


class TestPreviewRouteRegistration:
    """Test preview route wiring."""

    def test_preview_routes(self) -> None:
        server = create_mcp_server()
        routes = server.preview_routes()

        assert len(routes) == 1
        assert routes[0].path == "/api/render-email"
        assert "POST" in routes[0].methods

    def test_custom_preview_path(self) -> None:
        config = MCPConfig(preview=PreviewConfig(path="/render"))
        server = create_mcp_server(config)

        assert server.preview_routes()[0].path == "/render"


class TestCorsMiddleware:
    """Test CORS settings for the HTTP app."""

    def test_methods_cover_mcp_and_preview_routes(self) -> None:
        server = create_mcp_server()

        assert server.cors_methods() == ["DELETE", "GET", "OPTIONS", "POST"]

    def test_methods_without_preview(self) -> None:
        server = create_mcp_server(MCPConfig(preview=PreviewConfig(enabled=False)))

        assert "POST" in server.cors_methods()
        assert "PUT" not in server.cors_methods()

    def test_middleware_settings(self) -> None:
        from starlette.middleware.cors import CORSMiddleware

        from mcp_server.config import HTTPTransportConfig

        server = create_mcp_server()
        middleware = server.cors_middleware(HTTPTransportConfig(cors_origins=["https://preview.example.com"]))

        assert middleware.cls is CORSMiddleware
        assert middleware.kwargs["allow_origins"] == ["https://preview.example.com"]
        assert middleware.kwargs["allow_methods"] == server.cors_methods()
        assert middleware.kwargs["expose_headers"] == ["mcp-session-id"]
