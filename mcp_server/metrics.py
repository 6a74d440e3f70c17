"""
MCP Server Performance Monitoring and Metrics.

Provides metrics collection for the email compilation server, including
tool execution times, compilation outcomes by error kind, preview
requests, and aggregate evaluation budget usage.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from email_sandbox.core.logging import PipelineLogger
from email_sandbox.core.models import PipelineResult

# Samples kept per tool for percentile calculation
MAX_SAMPLES = 1000


@dataclass
class MCPMetrics:
    """Metrics collected for MCP server performance monitoring."""

    # Tool execution metrics
    tool_execution_count: int = 0
    tool_execution_total_time: float = 0.0
    tool_execution_times: dict[str, list[float]] = field(default_factory=lambda: defaultdict(list))
    tool_error_count: int = 0
    tool_errors: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    # Compilation outcomes
    compilation_count: int = 0
    compilation_success_count: int = 0
    compilation_errors_by_kind: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    trap_reasons: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    # Preview route metrics
    http_request_count: int = 0
    http_request_total_time: float = 0.0
    http_error_count: int = 0

    # Resource usage
    total_fuel_consumed: int = 0
    total_elements_created: int = 0
    total_compile_time_ms: float = 0.0

    _tool_execution_percentiles: dict[str, dict[str, float]] | None = None

    def record_tool_execution(self, tool_name: str, duration: float, success: bool) -> None:
        """Record a tool execution."""
        self.tool_execution_count += 1
        self.tool_execution_total_time += duration
        self.tool_execution_times[tool_name].append(duration)

        if not success:
            self.tool_error_count += 1
            self.tool_errors[tool_name] += 1

        if len(self.tool_execution_times[tool_name]) > MAX_SAMPLES:
            self.tool_execution_times[tool_name] = self.tool_execution_times[tool_name][-MAX_SAMPLES:]

        self._tool_execution_percentiles = None

    def record_compilation(self, result: PipelineResult) -> None:
        """Record the outcome and budget usage of one compilation."""
        self.compilation_count += 1
        self.total_compile_time_ms += result.duration_ms
        self.total_fuel_consumed += result.metadata.get("fuel_consumed", 0)
        self.total_elements_created += result.metadata.get("elements_created", 0)

        if result.ok:
            self.compilation_success_count += 1
            return
        self.compilation_errors_by_kind[str(result.error_kind)] += 1
        trap_reason = result.metadata.get("trap_reason")
        if trap_reason:
            self.trap_reasons[trap_reason] += 1

    def record_http_request(self, duration: float, success: bool) -> None:
        """Record a preview request."""
        self.http_request_count += 1
        self.http_request_total_time += duration
        if not success:
            self.http_error_count += 1

    def get_tool_execution_percentiles(self, tool_name: str | None = None) -> dict[str, dict[str, float]]:
        """Get execution time percentiles for tools."""
        if self._tool_execution_percentiles is None:
            self._calculate_percentiles()
        assert self._tool_execution_percentiles is not None

        if tool_name:
            return {tool_name: self._tool_execution_percentiles.get(tool_name, {})}
        return dict(self._tool_execution_percentiles)

    def _calculate_percentiles(self) -> None:
        self._tool_execution_percentiles = {}

        for tool_name, times in self.tool_execution_times.items():
            if not times:
                continue

            sorted_times = sorted(times)
            n = len(sorted_times)

            self._tool_execution_percentiles[tool_name] = {
                "p50": sorted_times[n // 2],
                "p95": sorted_times[int(n * 0.95)],
                "p99": sorted_times[int(n * 0.99)] if n >= 100 else sorted_times[-1],
                "min": sorted_times[0],
                "max": sorted_times[-1],
                "avg": sum(sorted_times) / n,
                "count": n,
            }

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of all metrics."""
        avg_tool_time = (
            self.tool_execution_total_time / self.tool_execution_count
            if self.tool_execution_count > 0
            else 0.0
        )
        avg_http_time = (
            self.http_request_total_time / self.http_request_count
            if self.http_request_count > 0
            else 0.0
        )
        failures = self.compilation_count - self.compilation_success_count

        return {
            "tool_executions": {
                "total_count": self.tool_execution_count,
                "error_count": self.tool_error_count,
                "error_rate": self.tool_error_count / self.tool_execution_count if self.tool_execution_count > 0 else 0.0,
                "average_time_ms": avg_tool_time * 1000,
                "total_time_ms": self.tool_execution_total_time * 1000,
                "errors_by_tool": dict(self.tool_errors),
            },
            "compilations": {
                "total_count": self.compilation_count,
                "success_count": self.compilation_success_count,
                "failure_rate": failures / self.compilation_count if self.compilation_count > 0 else 0.0,
                "errors_by_kind": dict(self.compilation_errors_by_kind),
                "trap_reasons": dict(self.trap_reasons),
            },
            "preview_requests": {
                "total_count": self.http_request_count,
                "error_count": self.http_error_count,
                "average_time_ms": avg_http_time * 1000,
            },
            "resources": {
                "total_fuel_consumed": self.total_fuel_consumed,
                "total_elements_created": self.total_elements_created,
                "total_compile_time_ms": self.total_compile_time_ms,
            },
            "tool_percentiles": self.get_tool_execution_percentiles(),
        }


class MCPMetricsCollector:
    """Collector for MCP server metrics with timing utilities."""

    def __init__(self) -> None:
        self.metrics = MCPMetrics()
        self.logger = PipelineLogger("mcp-metrics")

    @contextmanager
    def time_tool_execution(self, tool_name: str) -> Generator[None, None, None]:
        """Context manager to time tool execution."""
        start_time = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            duration = time.perf_counter() - start_time
            self.metrics.record_tool_execution(tool_name, duration, success)
            self.logger._emit(
                logging.INFO,
                "mcp.tool.executed",
                tool_name=tool_name,
                duration_ms=duration * 1000,
                success=success,
            )

    @contextmanager
    def time_http_request(self) -> Generator[None, None, None]:
        """Context manager to time preview requests."""
        start_time = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            self.metrics.record_http_request(time.perf_counter() - start_time, success)

    def record_compilation(self, result: PipelineResult) -> None:
        self.metrics.record_compilation(result)

    def record_http_error(self) -> None:
        """Count a preview request that returned an error status."""
        self.metrics.http_error_count += 1

    def get_summary(self) -> dict[str, Any]:
        """Get metrics summary."""
        return self.metrics.get_summary()

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        self.metrics = MCPMetrics()
        self.logger._emit(logging.INFO, "mcp.metrics.reset")
