"""Template compilation pipeline and result packaging.

Runs Transpile -> Sandboxed Execute -> Component Resolve -> Render for one
source text and folds every outcome into a PipelineResult. Each invocation
is stateless; the capability table is the only shared object.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from email_sandbox.capabilities import DEFAULT_CAPABILITIES, CapabilityTable
from email_sandbox.core.error_templates import guidance_for
from email_sandbox.core.errors import (
    ExecutionLimitError,
    ModuleResolutionError,
    PipelineError,
    TranspileError,
    UnknownRuntimeFault,
)
from email_sandbox.core.logging import PipelineLogger
from email_sandbox.core.models import CompilationPolicy, ErrorKind, PipelineResult, PipelineStage
from email_sandbox.executor import SandboxExecutor
from email_sandbox.interpreter import Interpreter
from email_sandbox.renderer import render
from email_sandbox.resolver import ComponentResolver
from email_sandbox.transpiler import transpile

# Stage attempted after each state, used to attribute failures
_NEXT_STAGE = {
    PipelineStage.RECEIVED: "transpile",
    PipelineStage.TRANSPILED: "execute",
    PipelineStage.EXECUTED: "resolve",
    PipelineStage.RESOLVED: "render",
    PipelineStage.RENDERED: "package",
}


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)


def _usage(interpreter: Interpreter | None) -> dict[str, Any]:
    if interpreter is None:
        return {"fuel_consumed": 0, "elements_created": 0, "console": []}
    usage: dict[str, Any] = {
        "fuel_consumed": interpreter.fuel_consumed,
        "elements_created": interpreter.elements_created,
        "console": list(interpreter.console),
    }
    if interpreter.console_truncated:
        usage["console_truncated"] = True
    return usage


def package_success(html: str, start: float, interpreter: Interpreter | None = None) -> PipelineResult:
    """Wrap rendered markup in a successful PipelineResult."""
    metadata = {"stage": PipelineStage.COMPLETED.value, **_usage(interpreter)}
    return PipelineResult(ok=True, html=html, duration_ms=_elapsed_ms(start), metadata=metadata)


def package_failure(
    error: PipelineError,
    start: float,
    reached: PipelineStage = PipelineStage.RECEIVED,
    interpreter: Interpreter | None = None,
) -> PipelineResult:
    """Map a classified failure to a PipelineResult.

    Only the failure's message is exposed; host tracebacks never are.

    Args:
        error: Classified pipeline failure
        start: perf_counter() value when the invocation started
        reached: Last stage completed before the failure
        interpreter: Interpreter whose usage counters are reported, when
                     execution got that far
    """
    metadata: dict[str, Any] = {
        "stage": PipelineStage.FAILED.value,
        "failed_stage": error.stage or _NEXT_STAGE.get(reached, "package"),
        "last_completed": reached.value,
        **_usage(interpreter),
        "error_guidance": guidance_for(error),
    }
    if isinstance(error, ExecutionLimitError):
        metadata["trap_reason"] = error.trap_reason
    if isinstance(error, TranspileError) and error.line is not None:
        metadata["line"] = error.line
        metadata["column"] = error.column

    return PipelineResult(
        ok=False,
        error_kind=ErrorKind(error.kind),
        message=error.message or "Unknown compilation error",
        duration_ms=_elapsed_ms(start),
        metadata=metadata,
    )


class TemplatePipeline:
    """Compiles untrusted template source into HTML.

    Holds only immutable configuration, so one instance may serve many
    concurrent invocations.
    """

    def __init__(
        self,
        policy: CompilationPolicy | None = None,
        capabilities: CapabilityTable | None = None,
        logger: PipelineLogger | None = None,
    ) -> None:
        self.policy = policy or CompilationPolicy()
        self.capabilities = capabilities or DEFAULT_CAPABILITIES
        self.logger = logger or PipelineLogger()

    def compile(self, source_text: str) -> PipelineResult:
        """Run the full pipeline for one source text.

        Never raises for guest input; every failure is reported through
        the returned PipelineResult.
        """
        start = time.perf_counter()
        reached = PipelineStage.RECEIVED
        executor = SandboxExecutor(self.policy, self.capabilities, self.logger)
        source_bytes = len(source_text.encode("utf-8")) if isinstance(source_text, str) else 0
        self.logger.log_compile_start(self.policy, source_bytes)

        try:
            if not isinstance(source_text, str):
                raise TranspileError("Source text must be a string")

            compiled = transpile(source_text, self.policy)
            reached = PipelineStage.TRANSPILED
            self.logger.log_stage(reached.value, compiled_bytes=len(compiled))

            outcome = executor.execute(compiled)
            reached = PipelineStage.EXECUTED

            resolver = ComponentResolver(outcome.interpreter, self.capabilities)
            component = resolver.resolve_entry_point(outcome.exports)
            tree = resolver.instantiate(component)
            reached = PipelineStage.RESOLVED
            self.logger.log_stage(
                reached.value,
                elements_created=outcome.elements_created,
                elements_expanded=resolver.elements_expanded,
            )

            html = render(tree, self.policy.max_html_bytes, deadline=outcome.interpreter.deadline)
            reached = PipelineStage.RENDERED
            self.logger.log_stage(reached.value, html_bytes=len(html))

            result = package_success(html, start, executor.interpreter)
        except PipelineError as e:
            self._log_security(e)
            result = package_failure(e, start, reached, executor.interpreter)
        except Exception as e:
            fault = UnknownRuntimeFault(f"Unexpected pipeline fault ({type(e).__name__})")
            result = package_failure(fault, start, reached, executor.interpreter)

        self.logger.log_compile_complete(result)
        return result

    def _log_security(self, error: PipelineError) -> None:
        if isinstance(error, ModuleResolutionError):
            self.logger.log_security_event("capability_denied", {"module": error.name})
        elif isinstance(error, ExecutionLimitError):
            self.logger.log_security_event(
                "budget_exhausted", {"trap_reason": error.trap_reason, "detail": error.message}
            )


def compile_template(
    source_text: str,
    policy: CompilationPolicy | None = None,
    logger: PipelineLogger | None = None,
) -> PipelineResult:
    """Compile one template source text to HTML.

    Args:
        source_text: Untrusted TSX/JSX/JS component source
        policy: Evaluation budgets (defaults to CompilationPolicy())
        logger: Optional PipelineLogger for structured events

    Returns:
        PipelineResult: ``ok`` with ``html``, or ``errorKind`` with ``message``
    """
    return TemplatePipeline(policy, logger=logger).compile(source_text)


async def compile_template_async(
    source_text: str,
    policy: CompilationPolicy | None = None,
    timeout: float | None = None,
    logger: PipelineLogger | None = None,
) -> PipelineResult:
    """Compile in a worker thread so the event loop stays responsive.

    Args:
        source_text: Untrusted component source
        policy: Evaluation budgets
        timeout: Outer wall-clock limit in seconds (None = rely on the
                 policy's cooperative timeout only)
        logger: Optional PipelineLogger

    Returns:
        PipelineResult: Same contract as compile_template
    """
    start = time.perf_counter()
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(compile_template, source_text, policy, logger),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        error = ExecutionLimitError(f"Compilation timed out after {timeout}s", "timeout")
        return package_failure(error, start)
