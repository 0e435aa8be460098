"""Unit tests for CommandTrace domain models.

Tests focus on business logic, not Pydantic validation:
- Immutable appends
- Computed properties (duration, success, summaries)
- Discriminated union behavior
- Model validator enforcement

No infrastructure dependencies - pure domain logic tests.
"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from command_center.domain.command_trace import (
    CommandTrace,
    CompletedStep,
    ErrorMessage,
    FailedStep,
    SkippedStep,
)
from command_center.domain.domain_type import CommandState, ErrorCategory, SkipReason, StepStatus

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def completed(state: CommandState, ms: float = 10) -> CompletedStep:
    return CompletedStep(state=state, start_time=T0, end_time=T0 + timedelta(milliseconds=ms))


def failed(state: CommandState, category: ErrorCategory, ms: float = 5) -> FailedStep:
    return FailedStep(
        state=state,
        error_category=category,
        error_kind="ToolTimeout",
        error=ErrorMessage("Tool did not finish"),
        start_time=T0,
        end_time=T0 + timedelta(milliseconds=ms),
    )


# =============================================================================
# Step Tests
# =============================================================================


class TestSteps:
    def test_duration_computed_from_timestamps(self):
        assert completed(CommandState.MODEL_INFERENCE, ms=250.5).duration_ms == pytest.approx(250.5)

    def test_failed_duration_tracks_time_until_failure(self):
        assert failed(CommandState.TOOL_DISPATCH, ErrorCategory.TIMEOUT, ms=150).duration_ms == pytest.approx(150.0)

    def test_empty_error_message_rejected(self):
        with pytest.raises(ValidationError):
            ErrorMessage("")

    def test_requires_custom_reason_when_skip_reason_is_custom(self):
        with pytest.raises(ValidationError, match="custom_reason required"):
            SkippedStep(state=CommandState.FOLLOW_UP_INFERENCE, skip_reason=SkipReason.CUSTOM)

    def test_rejects_custom_reason_when_not_custom(self):
        with pytest.raises(ValidationError, match="only allowed when skip_reason is CUSTOM"):
            SkippedStep(
                state=CommandState.FOLLOW_UP_INFERENCE,
                skip_reason=SkipReason.DIRECT_RESULT,
                custom_reason="not needed",
            )

    def test_accepts_custom_reason_with_custom_skip_reason(self):
        step = SkippedStep(
            state=CommandState.FOLLOW_UP_INFERENCE,
            skip_reason=SkipReason.CUSTOM,
            custom_reason="Operator disabled follow-ups",
        )

        assert step.custom_reason == "Operator disabled follow-ups"


# =============================================================================
# CommandTrace Tests
# =============================================================================


class TestCommandTrace:
    def test_append_returns_new_trace(self):
        trace = CommandTrace()
        appended = trace.append(completed(CommandState.IDLE))

        assert trace.steps == ()
        assert appended.states == (CommandState.IDLE,)

    def test_empty_trace_has_not_succeeded(self):
        trace = CommandTrace()

        assert not trace.succeeded
        assert not trace.failed
        assert trace.latest_step is None

    def test_success_requires_no_failures(self):
        trace = CommandTrace().append(completed(CommandState.IDLE)).append(completed(CommandState.DONE))

        assert trace.succeeded
        assert trace.latest_failure is None

    def test_failure_and_error_summary(self):
        trace = (
            CommandTrace()
            .append(completed(CommandState.MODEL_INFERENCE))
            .append(failed(CommandState.TOOL_DISPATCH, ErrorCategory.TIMEOUT))
            .append(failed(CommandState.FOLLOW_UP_INFERENCE, ErrorCategory.TIMEOUT))
            .append(failed(CommandState.OUTPUT_FILTERING, ErrorCategory.GUARDRAIL))
        )

        assert trace.failed
        assert not trace.succeeded
        assert trace.error_summary.total_errors == 3
        assert trace.error_summary.most_common == ErrorCategory.TIMEOUT
        assert trace.latest_failure.state == CommandState.OUTPUT_FILTERING

    def test_total_duration_ignores_skips(self):
        trace = (
            CommandTrace()
            .append(completed(CommandState.MODEL_INFERENCE, ms=100))
            .append(SkippedStep(state=CommandState.TOOL_DISPATCH, skip_reason=SkipReason.NO_TOOL_CALL))
            .append(failed(CommandState.OUTPUT_FILTERING, ErrorCategory.GUARDRAIL, ms=20))
        )

        assert trace.total_duration_ms == pytest.approx(120.0)

    def test_discriminated_union_from_plain_data(self):
        """Steps parsed from plain dicts land on the right class by ``status``."""
        trace = CommandTrace.model_validate(
            {
                "steps": [
                    {"status": "completed", "state": "input_filtering", "start_time": T0, "end_time": T0},
                    {
                        "status": "failed",
                        "state": "tool_dispatch",
                        "error_category": "tool",
                        "error_kind": "ToolExecutionFailed",
                        "error": "boom",
                        "start_time": T0,
                        "end_time": T0,
                    },
                    {"status": "skipped", "state": "follow_up_inference", "skip_reason": "upstream_failed"},
                ]
            }
        )

        assert [type(step) for step in trace.steps] == [CompletedStep, FailedStep, SkippedStep]
        assert [step.status for step in trace.steps] == [
            StepStatus.COMPLETED,
            StepStatus.FAILED,
            StepStatus.SKIPPED,
        ]

    def test_log_attributes(self):
        trace = (
            CommandTrace()
            .append(completed(CommandState.IDLE, ms=1))
            .append(failed(CommandState.INPUT_FILTERING, ErrorCategory.GUARDRAIL, ms=2))
        )

        attrs = trace.to_log_attributes().root

        assert attrs["command.total_steps"] == 2
        assert attrs["command.failed"] is True
        assert attrs["command.succeeded"] is False
        assert attrs["command.total_duration_ms"] == pytest.approx(3.0)
        assert attrs["command.state_flow"] == ["idle", "input_filtering"]
        assert attrs["command.error_summary"] == {"guardrail": 1}
