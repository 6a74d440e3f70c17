"""Sandbox executor: evaluates one compiled unit in a fresh, isolated scope.

Each call to ``execute`` builds a new Interpreter, runs the compiled unit
once and converts every fault to a typed pipeline failure at this boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from email_sandbox.capabilities import DEFAULT_CAPABILITIES, CapabilityTable
from email_sandbox.core.errors import ExecutionLimitError, PipelineError, UnknownRuntimeFault
from email_sandbox.core.logging import PipelineLogger
from email_sandbox.core.models import CompilationPolicy
from email_sandbox.interpreter import Interpreter
from email_sandbox.runtime.values import JSThrow, describe_thrown


@dataclass
class ExecutionOutcome:
    """Result of one executor run.

    Attributes:
        exports: The final ``module.exports`` value
        interpreter: The interpreter that produced it (its budgets carry
                     over into component resolution)
        console: Captured console lines
    """

    exports: Any
    interpreter: Interpreter
    console: list[str] = field(default_factory=list)

    @property
    def fuel_consumed(self) -> int:
        return self.interpreter.fuel_consumed

    @property
    def elements_created(self) -> int:
        return self.interpreter.elements_created


def convert_fault(exc: BaseException) -> PipelineError:
    """Map any exception raised by guest evaluation to a pipeline failure."""
    if isinstance(exc, PipelineError):
        return exc
    if isinstance(exc, JSThrow):
        return UnknownRuntimeFault(describe_thrown(exc.value))
    if isinstance(exc, RecursionError):
        return ExecutionLimitError("Maximum call stack size exceeded", "stack_overflow")
    if isinstance(exc, MemoryError):
        return ExecutionLimitError("Template exhausted available memory", "memory_limit")
    return UnknownRuntimeFault(f"Unexpected fault while evaluating template ({type(exc).__name__})")


class SandboxExecutor:
    """Runs compiled units against the capability table under a policy.

    Attributes:
        interpreter: Interpreter of the most recent execute() call, kept so
                     callers can read its usage counters after a failure
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
        self.interpreter: Interpreter | None = None

    def execute(self, compiled: str) -> ExecutionOutcome:
        """Evaluate ``compiled`` once and return its exports slot.

        Raises:
            PipelineError: Any evaluation fault, already classified
        """
        interpreter = self.interpreter = Interpreter(self.policy, self.capabilities)
        try:
            exports = interpreter.run(compiled)
        except Exception as exc:
            raise convert_fault(exc) from None

        self.logger.log_stage(
            "executed",
            fuel_consumed=interpreter.fuel_consumed,
            elements_created=interpreter.elements_created,
            console_lines=len(interpreter.console),
        )
        return ExecutionOutcome(exports=exports, interpreter=interpreter, console=interpreter.console)
