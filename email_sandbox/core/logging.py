"""Structured logging for pipeline events and security monitoring.

Provides PipelineLogger class that uses structlog for structured event emission
(compile.start, compile.stage, compile.complete, security events). Configures
structlog with console rendering by default but allows custom configuration.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from email_sandbox.core.models import CompilationPolicy, PipelineResult


def configure_structlog(level: int = logging.INFO, use_json: bool = False) -> None:
    """Configure structlog with sensible defaults for pipeline logging.

    Args:
        level: Minimum log level (default: logging.INFO)
        use_json: If True, use JSON renderer; otherwise use console renderer
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


class PipelineLogger:
    """Wrapper for structured logging of pipeline events.

    Accepts either structlog or standard logging.Logger instances and normalizes
    emission so callers do not need to care which backend is in use.
    """

    _SOURCE_PREVIEW_SUFFIX = "...[truncated]"
    _MAX_MESSAGE_LENGTH = 300

    def __init__(self, logger: Any = None) -> None:
        """Initialize PipelineLogger with optional custom logger.

        Args:
            logger: Optional structlog BoundLogger, logging.Logger, or string name.
                    If None, a default structlog logger named 'email_sandbox' is created.
                    If string, creates a structlog logger with that name.
        """
        if logger is None:
            self._logger = structlog.get_logger("email_sandbox")
        elif isinstance(logger, str):
            self._logger = structlog.get_logger(logger)
        else:
            self._logger = logger

    @property
    def logger(self) -> Any:
        """Expose the underlying logger instance (structlog or logging.Logger)."""
        return self._logger

    def _emit(self, level: int, message: str, **fields: Any) -> None:
        """Emit a log record regardless of logger backend."""
        extra = dict(fields)
        extra.setdefault("log_message", message)
        # Ensure event key is always present for downstream processors
        extra.setdefault("event", message.split(".", 1)[-1] if "." in message else message)
        extra.setdefault("event_type", extra.get("event"))

        if isinstance(self._logger, logging.Logger):
            # Standard logging expects structured data in the 'extra' mapping
            self._logger.log(level, message, extra=extra)
            return

        method_name = logging.getLevelName(level).lower()
        log_method = getattr(self._logger, method_name, None)
        if not callable(log_method):
            log_method = self._logger.info

        log_kwargs = dict(extra)
        event_value = log_kwargs.pop("event", None)
        event_arg = event_value if event_value is not None else message
        log_method(event_arg, **log_kwargs)

    def _truncate(self, text: str) -> str:
        """Truncate long guest-provided messages to keep logs concise."""
        if len(text) <= self._MAX_MESSAGE_LENGTH:
            return text
        keep = self._MAX_MESSAGE_LENGTH - len(self._SOURCE_PREVIEW_SUFFIX)
        return f"{text[:keep]}{self._SOURCE_PREVIEW_SUFFIX}"

    def log_compile_start(self, policy: CompilationPolicy, source_bytes: int, **extra: Any) -> None:
        """Log the start of a compilation with budget details.

        Args:
            policy: CompilationPolicy containing evaluation budgets
            source_bytes: Size of the submitted source text
            **extra: Additional key-value pairs to include in log event
        """
        policy_snapshot = {
            "fuel_budget": policy.fuel_budget,
            "max_call_depth": policy.max_call_depth,
            "max_elements": policy.max_elements,
            "timeout_seconds": policy.timeout_seconds,
        }

        self._emit(
            logging.INFO,
            "email_sandbox.compile.start",
            event="compile.start",
            source_bytes=source_bytes,
            policy=policy_snapshot,
            **extra,
        )

    def log_stage(self, stage: str, **extra: Any) -> None:
        """Log a stage transition at DEBUG level.

        Args:
            stage: Stage just reached (e.g., "transpiled", "executed")
            **extra: Stage-specific metrics
        """
        self._emit(logging.DEBUG, "email_sandbox.compile.stage", event="compile.stage", stage=stage, **extra)

    def log_compile_complete(self, result: PipelineResult) -> None:
        """Log the completion of a compilation with result metrics.

        Emits INFO for successful runs and WARNING for failures, including
        the failing stage, error kind and a truncated message.

        Args:
            result: PipelineResult produced by the packager
        """
        log_kwargs: dict[str, Any] = {
            "event": "compile.complete",
            "ok": result.ok,
            "duration_ms": result.duration_ms,
            "html_bytes": len(result.html),
            "stage": result.metadata.get("stage"),
            "fuel_consumed": result.metadata.get("fuel_consumed"),
            "elements_created": result.metadata.get("elements_created"),
        }

        if not result.ok:
            log_kwargs["error_kind"] = result.error_kind
            log_kwargs["error_message"] = self._truncate(result.message or "")
            trap_reason = result.metadata.get("trap_reason")
            if trap_reason is not None:
                log_kwargs["trap_reason"] = trap_reason

        level = logging.INFO if result.ok else logging.WARNING
        self._emit(level, "email_sandbox.compile.complete", **log_kwargs)

    def log_security_event(self, event_type: str, details: dict[str, Any]) -> None:
        """Log a security-relevant event at WARNING level.

        Emits a WARNING-level structured log for security monitoring, such
        as capability violations or evaluation budget exhaustion.

        Args:
            event_type: Type of security event (e.g., "capability_denied",
                       "budget_exhausted")
            details: Dict containing event-specific details
        """
        event = f"security.{event_type}"
        self._emit(logging.WARNING, f"email_sandbox.{event}", event=event, **details)
