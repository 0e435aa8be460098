"""Command Trace - Immutable Record of One Command's State Machine Walk.

Every command the Orchestrator processes produces a CommandTrace: the
ordered steps it went through, each one completed, failed or skipped.

Key Concepts:
    - Discriminated union on ``status`` (Completed/Failed/Skipped)
    - Immutable: ``append`` returns a new trace
    - Failures carry an ErrorCategory so logs can group them by kind
    - ``to_log_attributes()`` flattens the trace for ``logger.bind``

Example Usage:
    >>> trace = CommandTrace()
    >>> trace = trace.append(CompletedStep(state=CommandState.INPUT_FILTERING, start_time=t0, end_time=t1))
    >>> trace.states
    (<CommandState.INPUT_FILTERING: 'input_filtering'>,)
    >>> logger.bind(**trace.to_log_attributes().root).info("Command finished")
"""

from __future__ import annotations

from collections import Counter
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, RootModel, computed_field, model_validator

from .domain_type import CommandState, ErrorCategory, SkipReason, StepStatus


def _now() -> datetime:
    return datetime.now(UTC)


class ErrorMessage(RootModel[str]):
    """Explicit error message from a failed step.

    Every failure must explain itself, so empty messages are rejected at
    construction time. Long messages are capped for log storage.
    """

    root: str = Field(min_length=1, max_length=1000)
    model_config = ConfigDict(frozen=True)


class ErrorSummary(RootModel[dict[ErrorCategory, int]]):
    """Failed-step counts per ErrorCategory.

    Computed Properties:
        total_errors: Sum across categories
        most_common: Category with the highest count
    """

    root: dict[ErrorCategory, int] = Field(default_factory=dict)
    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def total_errors(self) -> int:
        return sum(self.root.values())

    @computed_field
    @property
    def most_common(self) -> ErrorCategory | None:
        if not self.root:
            return None
        return max(self.root.items(), key=lambda x: x[1])[0]


class LogAttributes(RootModel[dict[str, Any]]):
    """Trace state flattened for ``logger.bind(**attrs.root)``.

    Keys always present:
        - command.total_steps: int
        - command.succeeded: bool
        - command.failed: bool
        - command.total_duration_ms: float
        - command.state_flow: list[str]
        - command.error_summary: dict[str, int]
    """

    root: dict[str, Any]
    model_config = ConfigDict(frozen=True)


class CompletedStep(BaseModel):
    """A state the command passed through successfully.

    Attributes:
        status: Always COMPLETED (discriminator field)
        state: Which CommandState ran
        detail: Optional short note (e.g., tool name, policy that redacted)
        start_time: When the state was entered
        end_time: When the state was left
    """

    status: Literal[StepStatus.COMPLETED] = StepStatus.COMPLETED
    state: CommandState
    detail: str | None = None
    start_time: datetime
    end_time: datetime = Field(default_factory=_now)

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time).total_seconds() * 1000


class FailedStep(BaseModel):
    """A state that ended in an error.

    Attributes:
        status: Always FAILED (discriminator field)
        state: Which CommandState failed
        error_category: Why it failed, for grouping
        error_kind: Exception class name (e.g., "ToolTimeout")
        error: Human-readable message, never containing tool arguments
        start_time: When the state was entered
        end_time: When the failure occurred
    """

    status: Literal[StepStatus.FAILED] = StepStatus.FAILED
    state: CommandState
    error_category: ErrorCategory
    error_kind: str
    error: ErrorMessage
    start_time: datetime
    end_time: datetime = Field(default_factory=_now)

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def duration_ms(self) -> float:
        """Time from entering the state until the failure."""
        return (self.end_time - self.start_time).total_seconds() * 1000


class SkippedStep(BaseModel):
    """A state the command did not need to run.

    Skips are normal control flow (blocked input, direct-result tools, text
    responses that need no dispatch); failures are FailedStep.

    Model Validator Enforces:
        - skip_reason CUSTOM requires custom_reason
        - any other skip_reason forbids custom_reason
    """

    status: Literal[StepStatus.SKIPPED] = StepStatus.SKIPPED
    state: CommandState
    skip_reason: SkipReason
    custom_reason: str | None = Field(default=None, min_length=1, max_length=500)
    timestamp: datetime = Field(default_factory=_now)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def require_custom_reason_if_custom(self) -> SkippedStep:
        if self.skip_reason == SkipReason.CUSTOM and self.custom_reason is None:
            raise ValueError("custom_reason required when skip_reason is CUSTOM")
        if self.skip_reason != SkipReason.CUSTOM and self.custom_reason is not None:
            raise ValueError("custom_reason only allowed when skip_reason is CUSTOM")
        return self


Step = Annotated[CompletedStep | FailedStep | SkippedStep, Field(discriminator="status")]


class CommandTrace(BaseModel):
    """Immutable, ordered record of a command's steps.

    Attributes:
        steps: Steps in execution order

    Computed Properties:
        states: CommandState of each step, in order
        succeeded: At least one step and no failures
        failed: Any step failed
        error_summary: ErrorCategory distribution of failed steps
        total_duration_ms: Sum over executed (non-skipped) steps
    """

    steps: tuple[Step, ...] = ()

    model_config = ConfigDict(frozen=True)

    def append(self, step: CompletedStep | FailedStep | SkippedStep) -> CommandTrace:
        """Return a new trace with ``step`` appended."""
        return self.model_copy(update={"steps": (*self.steps, step)})

    @computed_field
    @property
    def states(self) -> tuple[CommandState, ...]:
        return tuple(step.state for step in self.steps)

    @computed_field
    @property
    def succeeded(self) -> bool:
        return bool(self.steps) and not self.failed

    @computed_field
    @property
    def failed(self) -> bool:
        return any(isinstance(step, FailedStep) for step in self.steps)

    @computed_field
    @property
    def error_summary(self) -> ErrorSummary:
        errors = [step.error_category for step in self.steps if isinstance(step, FailedStep)]
        return ErrorSummary(dict(Counter(errors)))

    @computed_field
    @property
    def total_duration_ms(self) -> float:
        return sum(step.duration_ms for step in self.steps if isinstance(step, (CompletedStep, FailedStep)))

    @property
    def latest_step(self) -> CompletedStep | FailedStep | SkippedStep | None:
        return self.steps[-1] if self.steps else None

    @property
    def latest_failure(self) -> FailedStep | None:
        for step in reversed(self.steps):
            if isinstance(step, FailedStep):
                return step
        return None

    def to_log_attributes(self) -> LogAttributes:
        """Export trace state for structured log records."""
        return LogAttributes(
            {
                "command.total_steps": len(self.steps),
                "command.succeeded": self.succeeded,
                "command.failed": self.failed,
                "command.total_duration_ms": self.total_duration_ms,
                "command.state_flow": [state.value for state in self.states],
                "command.error_summary": {k.value: v for k, v in self.error_summary.root.items()},
            }
        )


__all__ = [
    "CommandTrace",
    "CompletedStep",
    "ErrorMessage",
    "ErrorSummary",
    "FailedStep",
    "LogAttributes",
    "SkippedStep",
    "Step",
]
