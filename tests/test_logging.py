"""Tests for email_sandbox.core.logging module.

Verifies PipelineLogger functionality with structlog including
structured event logging, key-value pairs, and event emission from
the compilation pipeline.
"""

from __future__ import annotations

import logging
from typing import Any

import pytest
import structlog

from email_sandbox.core.logging import PipelineLogger, configure_structlog
from email_sandbox.core.models import CompilationPolicy, ErrorKind, PipelineResult
from email_sandbox.pipeline import TemplatePipeline


class StructlogCapture:
    """Helper to capture structlog events."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        """Capture event dict (structlog processor signature)."""
        self.events.append(event_dict.copy())
        return event_dict

    def named(self, event: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e["event"] == event]


@pytest.fixture
def log_capture() -> StructlogCapture:
    """Fixture providing structlog event capture."""
    return StructlogCapture()


@pytest.fixture
def custom_logger(log_capture: StructlogCapture) -> Any:
    """Fixture providing a structlog logger with capture processor."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            log_capture,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    return structlog.get_logger("test_email_sandbox")


@pytest.fixture
def std_logger() -> logging.Logger:
    """Fixture providing a standard library logger for compatibility tests."""
    logger = logging.getLogger("email-sandbox-test-logger")
    logger.handlers.clear()
    logger.setLevel(logging.INFO)
    logger.propagate = True
    return logger


def test_configure_structlog_console_renderer() -> None:
    """Test structlog configuration with console renderer."""
    configure_structlog(use_json=False)

    assert structlog.get_logger() is not None


def test_configure_structlog_json_renderer() -> None:
    """Test structlog configuration with JSON renderer."""
    configure_structlog(use_json=True)

    assert structlog.get_logger() is not None


def test_pipeline_logger_wraps_provided_logger(custom_logger: Any) -> None:
    """Test PipelineLogger accepts and wraps a custom logger."""
    pipeline_logger = PipelineLogger(logger=custom_logger)

    assert pipeline_logger.logger is custom_logger


def test_pipeline_logger_accepts_name() -> None:
    """A string argument creates a named structlog logger."""
    assert PipelineLogger("mcp-metrics").logger is not None


def test_pipeline_logger_accepts_standard_logging_logger(
    std_logger: logging.Logger, caplog: pytest.LogCaptureFixture
) -> None:
    """Test PipelineLogger works with a standard logging.Logger."""
    pipeline_logger = PipelineLogger(logger=std_logger)

    with caplog.at_level(logging.INFO, logger=std_logger.name):
        pipeline_logger.log_compile_start(CompilationPolicy(), source_bytes=42)

    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert record.event == "compile.start"
    assert record.source_bytes == 42
    assert record.log_message == "email_sandbox.compile.start"


def test_log_compile_start_structure(custom_logger: Any, log_capture: StructlogCapture) -> None:
    """Test compile.start log event structure and content."""
    pipeline_logger = PipelineLogger(logger=custom_logger)
    policy = CompilationPolicy(fuel_budget=1_000, max_call_depth=8, timeout_seconds=None)

    pipeline_logger.log_compile_start(policy, source_bytes=512, request_id="req-abc")

    assert len(log_capture.events) == 1
    event = log_capture.events[0]

    assert event["level"] == "info"
    assert event["event"] == "compile.start"
    assert event["log_message"] == "email_sandbox.compile.start"
    assert event["source_bytes"] == 512
    assert event["policy"]["fuel_budget"] == 1_000
    assert event["policy"]["max_call_depth"] == 8
    assert event["policy"]["timeout_seconds"] is None
    assert event["request_id"] == "req-abc"


def test_log_stage_is_debug(custom_logger: Any, log_capture: StructlogCapture) -> None:
    """Stage transitions log at DEBUG with their metrics."""
    PipelineLogger(logger=custom_logger).log_stage("transpiled", compiled_bytes=99)

    event = log_capture.events[0]
    assert event["level"] == "debug"
    assert event["event"] == "compile.stage"
    assert event["stage"] == "transpiled"
    assert event["compiled_bytes"] == 99


def test_log_compile_complete_success(custom_logger: Any, log_capture: StructlogCapture) -> None:
    """Test compile.complete log event for a successful compilation."""
    result = PipelineResult(
        ok=True,
        html="<p>hi</p>",
        duration_ms=3.5,
        metadata={"stage": "completed", "fuel_consumed": 120, "elements_created": 2},
    )

    PipelineLogger(logger=custom_logger).log_compile_complete(result)

    event = log_capture.events[0]
    assert event["level"] == "info"
    assert event["event"] == "compile.complete"
    assert event["ok"] is True
    assert event["html_bytes"] == len("<p>hi</p>")
    assert event["fuel_consumed"] == 120
    assert event["elements_created"] == 2
    assert "error_kind" not in event


def test_log_compile_complete_failure(custom_logger: Any, log_capture: StructlogCapture) -> None:
    """Failures log at WARNING with kind, trap reason and a truncated message."""
    result = PipelineResult(
        ok=False,
        error_kind=ErrorKind.UNKNOWN_RUNTIME,
        message="x" * 1_000,
        metadata={"stage": "failed", "trap_reason": "out_of_fuel"},
    )

    PipelineLogger(logger=custom_logger).log_compile_complete(result)

    event = log_capture.events[0]
    assert event["level"] == "warning"
    assert event["ok"] is False
    assert event["error_kind"] == "UnknownRuntimeFault"
    assert event["trap_reason"] == "out_of_fuel"
    assert len(event["error_message"]) == PipelineLogger._MAX_MESSAGE_LENGTH
    assert event["error_message"].endswith(PipelineLogger._SOURCE_PREVIEW_SUFFIX)


def test_log_security_event_structure(custom_logger: Any, log_capture: StructlogCapture) -> None:
    """Test security event logging at WARNING level."""
    PipelineLogger(logger=custom_logger).log_security_event(
        event_type="capability_denied", details={"module": "child_process"}
    )

    event = log_capture.events[0]
    assert event["level"] == "warning"
    assert event["event"] == "security.capability_denied"
    assert event["log_message"] == "email_sandbox.security.capability_denied"
    assert event["module"] == "child_process"


def test_pipeline_emits_stage_events(
    custom_logger: Any, log_capture: StructlogCapture, welcome_template: str
) -> None:
    """A successful compilation logs start, every stage and completion."""
    TemplatePipeline(logger=PipelineLogger(custom_logger)).compile(welcome_template)

    assert log_capture.events[0]["event"] == "compile.start"
    assert [e["stage"] for e in log_capture.named("compile.stage")] == [
        "transpiled",
        "executed",
        "resolved",
        "rendered",
    ]
    complete = log_capture.events[-1]
    assert complete["event"] == "compile.complete"
    assert complete["ok"] is True


def test_pipeline_logs_capability_denial(custom_logger: Any, log_capture: StructlogCapture) -> None:
    """Forbidden requires produce a security event."""
    TemplatePipeline(logger=PipelineLogger(custom_logger)).compile('require("net");')

    denied = log_capture.named("security.capability_denied")
    assert len(denied) == 1
    assert denied[0]["module"] == "net"
    assert log_capture.events[-1]["error_kind"] == "ModuleResolutionError"


def test_pipeline_logs_budget_exhaustion(
    custom_logger: Any, log_capture: StructlogCapture, tight_policy: CompilationPolicy
) -> None:
    """Exhausted budgets produce a security event with the trap reason."""
    TemplatePipeline(tight_policy, logger=PipelineLogger(custom_logger)).compile("while (true) {}")

    exhausted = log_capture.named("security.budget_exhausted")
    assert len(exhausted) == 1
    assert exhausted[0]["trap_reason"] == "out_of_fuel"


def test_guest_source_never_logged(custom_logger: Any, log_capture: StructlogCapture) -> None:
    """Template source text does not appear in any event."""
    marker = "do-not-log-this-source"
    TemplatePipeline(logger=PipelineLogger(custom_logger)).compile(
        f'const secret = "{marker}";\nmodule.exports.default = () => null;'
    )

    assert log_capture.events
    assert all(marker not in repr(e) for e in log_capture.events)
