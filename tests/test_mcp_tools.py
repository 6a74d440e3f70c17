"""Tests for MCP server tool functionality."""

import json

import pytest

from mcp_server.prompts import build_email_designer_prompt
from mcp_server.server import create_mcp_server


def parse_tool_result(result) -> dict[str, object]:
    """Parse FastMCP tool result from JSON content."""
    return json.loads(result.content[0].text)


class TestGenerateEmailTool:
    """Test the generate_email tool."""

    @pytest.mark.asyncio
    async def test_generate_email_success(self, welcome_template) -> None:
        server = create_mcp_server()

        result = await server.app._tool_manager.call_tool(
            "generate_email",
            {"name": "Welcome", "description": "Greets new users", "source_text": welcome_template},
        )

        parsed = parse_tool_result(result)
        structured = parsed["structured_content"]
        assert parsed["success"] is True
        assert parsed["content"].startswith("Compiled 'Welcome'")
        assert structured["ok"] is True
        assert structured["name"] == "Welcome"
        assert structured["description"] == "Greets new users"
        assert structured["sourceText"] == welcome_template
        assert "Hello" in structured["htmlCode"]
        assert "errorKind" not in structured

    @pytest.mark.asyncio
    async def test_generate_email_tsx(self, tsx_template) -> None:
        server = create_mcp_server()

        result = await server.app._tool_manager.call_tool(
            "generate_email",
            {"name": "Receipt", "description": "Order receipt", "source_text": tsx_template},
        )

        parsed = parse_tool_result(result)
        assert parsed["success"] is True
        assert "Thanks, Ada!" in parsed["structured_content"]["htmlCode"]

    @pytest.mark.asyncio
    async def test_generate_email_forbidden_module(self) -> None:
        server = create_mcp_server()

        result = await server.app._tool_manager.call_tool(
            "generate_email",
            {
                "name": "Bad",
                "description": "Reads files",
                "source_text": 'const fs = require("fs");\nmodule.exports.default = () => null;',
            },
        )

        parsed = parse_tool_result(result)
        structured = parsed["structured_content"]
        assert parsed["success"] is False
        assert structured["ok"] is False
        assert structured["htmlCode"] == ""
        assert structured["errorKind"] == "ModuleResolutionError"
        assert "fs" in structured["message"]
        assert structured["error_guidance"]["error_type"] == "ForbiddenModule"
        assert parsed["content"].startswith("ModuleResolutionError:")

    @pytest.mark.asyncio
    async def test_generate_email_syntax_error(self) -> None:
        server = create_mcp_server()

        result = await server.app._tool_manager.call_tool(
            "generate_email",
            {"name": "Broken", "description": "", "source_text": "const x = <Text>;"},
        )

        parsed = parse_tool_result(result)
        assert parsed["structured_content"]["errorKind"] == "TranspileError"

    @pytest.mark.asyncio
    async def test_generate_email_returns_console(self) -> None:
        server = create_mcp_server()

        result = await server.app._tool_manager.call_tool(
            "generate_email",
            {
                "name": "Debug",
                "description": "",
                "source_text": 'console.log("rendering");\nmodule.exports.default = () => null;',
            },
        )

        parsed = parse_tool_result(result)
        assert parsed["structured_content"]["console"] == ["rendering"]

    @pytest.mark.asyncio
    async def test_generate_email_records_metrics(self, welcome_template) -> None:
        server = create_mcp_server()

        await server.app._tool_manager.call_tool(
            "generate_email", {"name": "a", "description": "", "source_text": welcome_template}
        )
        await server.app._tool_manager.call_tool(
            "generate_email", {"name": "b", "description": "", "source_text": "module.exports.default = 1;"}
        )

        compilations = server.metrics.get_summary()["compilations"]
        assert compilations["total_count"] == 2
        assert compilations["success_count"] == 1
        assert compilations["errors_by_kind"] == {"ComponentContractError": 1}


class TestListComponentsTool:
    """Test the list_components tool."""

    @pytest.mark.asyncio
    async def test_list_components(self) -> None:
        server = create_mcp_server()

        result = await server.app._tool_manager.call_tool("list_components", {})

        parsed = parse_tool_result(result)
        structured = parsed["structured_content"]
        assert parsed["success"] is True
        assert structured["modules"] == ["react", "@react-email/components"]
        assert "Container" in structured["components"]
        assert "Button" in structured["components"]
        assert "createElement" in structured["react_exports"]
        assert "Fragment" in structured["react_exports"]
        assert "module.exports.default" in structured["usage"]


class TestGetMetricsTool:
    """Test the get_metrics tool."""

    @pytest.mark.asyncio
    async def test_get_metrics(self) -> None:
        server = create_mcp_server()

        result = await server.app._tool_manager.call_tool("get_metrics", {})

        parsed = parse_tool_result(result)
        structured = parsed["structured_content"]
        assert parsed["content"].startswith("MCP Server v")
        assert structured["server"]["name"] == "llm-email-sandbox"
        assert "compilations" in structured
        assert "preview_requests" in structured
        assert "resources" in structured

    @pytest.mark.asyncio
    async def test_get_metrics_counts_tool_calls(self) -> None:
        server = create_mcp_server()

        await server.app._tool_manager.call_tool("list_components", {})
        await server.app._tool_manager.call_tool("list_components", {})
        result = await server.app._tool_manager.call_tool("get_metrics", {})

        parsed = parse_tool_result(result)
        # the get_metrics call itself is recorded after the summary is taken
        assert parsed["structured_content"]["tool_executions"]["total_count"] == 2


class TestEmailDesignerPrompt:
    """Test the system prompt served to template authors."""

    def test_prompt_lists_components(self) -> None:
        prompt = build_email_designer_prompt()

        for name in ["Html", "Body", "Container", "Text", "Button", "Preview"]:
            assert name in prompt
        assert "module.exports.default" in prompt
        assert '"react"' in prompt
        assert '"@react-email/components"' in prompt
