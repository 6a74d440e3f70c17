"""
MCP Server Configuration.

Configuration models for the MCP server.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from email_sandbox.core.models import CompilationPolicy


def _get_package_version() -> str:
    """Get package version from metadata."""
    try:
        import importlib.metadata

        return importlib.metadata.version("llm-email-sandbox")
    except importlib.metadata.PackageNotFoundError:
        return "0.1.0"


class ServerConfig(BaseModel):
    """Server identification and metadata."""

    name: str = "llm-email-sandbox"
    version: str = Field(default_factory=_get_package_version)
    instructions: str = (
        "This server compiles AI-generated React Email templates into HTML inside a "
        "sandboxed evaluator. Use the generate_email tool to compile a template and "
        "list_components to see which components are available.\n\n"
        "Templates must use CommonJS require() and module.exports.default. Only the "
        '"react" and "@react-email/components" modules can be required. '
        "Fetch the email_designer prompt for full authoring rules."
    )


class HTTPTransportConfig(BaseModel):
    """Configuration for HTTP transport.

    The same HTTP app serves the MCP endpoint at ``path`` and the preview
    route, so CORS and the concurrency limit apply to both.
    """

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=1, le=65535)
    path: str = "/mcp"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    max_concurrent_requests: int = Field(default=10, ge=1)
    request_timeout_seconds: int = Field(default=30, ge=1)

    def uvicorn_config(self) -> dict[str, Any]:
        """Uvicorn settings other than host and port."""
        return {
            "access_log": True,
            "log_level": "info",
            "limit_concurrency": self.max_concurrent_requests,
            "timeout_keep_alive": self.request_timeout_seconds,
        }


class PreviewConfig(BaseModel):
    """Configuration for the HTML preview endpoint."""

    enabled: bool = True
    path: str = Field(default="/api/render-email", description="Route serving POST render requests")
    tool_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Outer wall-clock limit for one compilation requested over MCP or HTTP",
    )


class LoggingConfig(BaseModel):
    """Configuration for MCP logging."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    structured: bool = True


class MCPConfig(BaseModel):
    """Main MCP server configuration."""

    server: ServerConfig = ServerConfig()
    transport_http: HTTPTransportConfig = HTTPTransportConfig()
    preview: PreviewConfig = PreviewConfig()
    policy: CompilationPolicy = Field(default_factory=CompilationPolicy)
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def from_file(cls, path: Path | str) -> MCPConfig:
        """Load configuration from TOML file."""
        import tomllib

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls.model_validate(data)
