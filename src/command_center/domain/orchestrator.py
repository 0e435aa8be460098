"""Orchestrator - The Command-Processing State Machine.

Composes the Model Registry, Tool Registry, Guardrail Pipeline and one
session's Contextual Memory into a single request/response cycle:

    idle → input_filtering → context_assembly → model_inference
         → tool_dispatch | text_response → [follow_up_inference]
         → output_filtering → done

Guarantees:
    - Every command returns a CommandResult with a user-facing string. The
      one exception: a registry with no usable model raises
      UnknownModelIdentifier, since there is nothing to answer with.
    - Memory is a causal log: one user turn, then the assistant/tool turns
      in the order they were produced.
    - At most one follow-up inference per command, never with tools.
    - Only the first of several requested function calls is executed.
    - The model is resolved once per command; switching it mid-command
      takes effect from the next command.
    - User-facing text never includes tool arguments.

Cancellation:
    Cancelling the task during filtering or inference just stops. Once a
    tool handler has started it runs to completion in the background (its
    side effects are its own); the Orchestrator records a tool turn noting
    the cancellation, skips the follow-up, and re-raises CancelledError.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from .backends import InferenceOptions
from .command_trace import CommandTrace, CompletedStep, ErrorMessage, FailedStep, SkippedStep
from .domain_type import CommandOutcome, CommandState, SkipReason
from .domain_value import BackendResponse, FunctionCall, ToolResponse, Turn, render_result
from .errors import (
    BackendError,
    CommandCenterError,
    GuardrailBlocked,
    ToolExecutionFailed,
    ToolTimeout,
    UnknownTool,
)
from .guardrails import GuardrailPipeline
from .memory import ContextualMemory
from .model_catalog import ModelConfig, ModelRegistry
from .tools import Tool, ToolRegistry

PROMPT_TEMPLATE = "System Knowledge:\n{context}\n\nUser Request: {request}"

FOLLOW_UP_TEMPLATE = (
    "Based on the following tool execution result for {name}:\n"
    "```json\n{result}\n```\n"
    "Please provide a concise summary or next logical step."
)

BLOCKED_OUTPUT_PLACEHOLDER = "AI response was blocked due to safety policy violation."

DIRECT_RESULT_TOOLS = frozenset({"navigateTo", "runFeatureWithInput"})
DIRECT_RESULT_PREFIXES = ("runWorkspaceAction_",)

_UNSET: Any = object()


def build_prompt(context: str, request: str) -> str:
    return PROMPT_TEMPLATE.format(context=context, request=request)


class OrchestratorSettings(BaseModel):
    """Per-engine knobs, usually derived from application Settings.

    Attributes:
        model_timeout_seconds: Limit on each model call (None = no limit)
        tool_timeout_seconds: Limit on each tool handler (None = no limit)
        temperature: Sampling temperature of the first inference
        follow_up_temperature: Sampling temperature of the follow-up
        record_blocked_attempts: Add a system turn when input is blocked
        direct_result_tools: Tool names whose raw result is returned as-is
        direct_result_prefixes: Name prefixes with the same treatment
    """

    model_timeout_seconds: float | None = Field(default=60.0, gt=0)
    tool_timeout_seconds: float | None = Field(default=30.0, gt=0)
    temperature: float | None = 0.7
    follow_up_temperature: float | None = 0.5
    record_blocked_attempts: bool = False
    direct_result_tools: frozenset[str] = DIRECT_RESULT_TOOLS
    direct_result_prefixes: tuple[str, ...] = DIRECT_RESULT_PREFIXES

    model_config = ConfigDict(frozen=True)


class CommandResult(BaseModel):
    """What the caller gets back for one command.

    Attributes:
        text: User-facing message (always present)
        outcome: How the command finished
        model_id: Model that ran every inference of the command
        function_call: The call that was dispatched, if any
        tool_result: Raw handler result, if a tool succeeded
        block_reason: Guardrail reason when input or output was blocked
        trace: Steps the state machine went through
    """

    text: str
    outcome: CommandOutcome
    model_id: str
    function_call: FunctionCall | None = None
    tool_result: Any = None
    block_reason: str | None = None
    trace: CommandTrace = Field(default_factory=CommandTrace)

    model_config = ConfigDict(frozen=True)

    @property
    def states(self) -> tuple[CommandState, ...]:
        return self.trace.states


def _now() -> datetime:
    return datetime.now(UTC)


def _failed_step(state: CommandState, error: CommandCenterError, start: datetime) -> FailedStep:
    message = str(error) or error.kind
    return FailedStep(
        state=state,
        error_category=error.category,
        error_kind=error.kind,
        error=ErrorMessage(message[:1000]),
        start_time=start,
    )


class _CommandRun:
    """Mutable scratch state for one pass through the state machine."""

    def __init__(self, model: ModelConfig):
        self.model = model
        self.trace = CommandTrace()
        self.function_call: FunctionCall | None = None
        self.tool_result: Any = None

    def completed(self, state: CommandState, start: datetime, detail: str | None = None) -> None:
        self.trace = self.trace.append(CompletedStep(state=state, detail=detail, start_time=start))

    def failed(self, state: CommandState, error: CommandCenterError, start: datetime) -> None:
        self.trace = self.trace.append(_failed_step(state, error, start))

    def skipped(self, state: CommandState, reason: SkipReason) -> None:
        self.trace = self.trace.append(SkippedStep(state=state, skip_reason=reason))

    def result(self, text: str, outcome: CommandOutcome, *, block_reason: str | None = None) -> CommandResult:
        self.trace = self.trace.append(CompletedStep(state=CommandState.DONE, start_time=_now()))
        result = CommandResult(
            text=text,
            outcome=outcome,
            model_id=self.model.id,
            function_call=self.function_call,
            tool_result=self.tool_result,
            block_reason=block_reason,
            trace=self.trace,
        )
        logger.bind(**self.trace.to_log_attributes().root).info(
            "Command finished: outcome={} model={}", outcome.value, self.model.id
        )
        return result


class Orchestrator:
    """Runs commands for one conversation.

    Registries and the guardrail pipeline are shared between sessions; the
    memory is this session's own.

    Example:
        >>> engine = Orchestrator(models, tools, guardrails, ContextualMemory())
        >>> result = await engine.process_command("what is 2+2")
        >>> result.text
        '4'
    """

    def __init__(
        self,
        models: ModelRegistry,
        tools: ToolRegistry,
        guardrails: GuardrailPipeline,
        memory: ContextualMemory,
        settings: OrchestratorSettings | None = None,
    ):
        self.models = models
        self.tools = tools
        self.guardrails = guardrails
        self.memory = memory
        self.settings = settings or OrchestratorSettings()
        self._detached: set[asyncio.Task[Any]] = set()

    def is_direct_result(self, tool: Tool) -> bool:
        """Whether a tool's raw result goes straight back without a follow-up."""
        return (
            tool.is_ui_action
            or tool.name in self.settings.direct_result_tools
            or tool.name.startswith(self.settings.direct_result_prefixes)
        )

    async def process_command(
        self,
        command: str,
        *,
        model_timeout: float | None = _UNSET,
        tool_timeout: float | None = _UNSET,
    ) -> CommandResult:
        """Process one natural-language command.

        Args:
            command: Raw user text
            model_timeout: Override for this command's model calls
            tool_timeout: Override for this command's tool handler

        Raises:
            UnknownModelIdentifier: Neither the active nor the default model resolves
            asyncio.CancelledError: The calling task was cancelled
        """
        model_timeout = self.settings.model_timeout_seconds if model_timeout is _UNSET else model_timeout
        tool_timeout = self.settings.tool_timeout_seconds if tool_timeout is _UNSET else tool_timeout

        run = _CommandRun(self.models.get_active())
        run.completed(CommandState.IDLE, _now())

        # ---- input_filtering ------------------------------------------------
        start = _now()
        verdict = self.guardrails.filter_input(command)
        if verdict.blocked:
            reason = verdict.reason or "Unknown violation."
            run.failed(CommandState.INPUT_FILTERING, GuardrailBlocked(verdict.policy or "unknown", reason), start)
            run.skipped(CommandState.MODEL_INFERENCE, SkipReason.INPUT_BLOCKED)
            if self.settings.record_blocked_attempts:
                self.memory.add_turn(Turn.system(f"A user command was blocked by guardrail '{verdict.policy}': {reason}"))
            return run.result(
                f"Your request was blocked by safety policies. Reason: {reason}",
                CommandOutcome.INPUT_BLOCKED,
                block_reason=reason,
            )
        clean = verdict.clean_text
        run.completed(CommandState.INPUT_FILTERING, start, detail=",".join(verdict.applied) or None)

        # ---- context_assembly -----------------------------------------------
        start = _now()
        context = await self.memory.assemble_context(clean)
        prompt = build_prompt(context, clean)
        history = self.memory.get_history()
        self.memory.add_turn(Turn.user(clean))
        run.completed(CommandState.CONTEXT_ASSEMBLY, start)

        # ---- model_inference ------------------------------------------------
        start = _now()
        declarations = self.tools.list_declarations() if run.model.supports_tools else []
        options = InferenceOptions(temperature=self.settings.temperature, timeout_seconds=model_timeout)
        try:
            response = await self.models.call_backend(prompt, declarations, history, options, model=run.model)
        except BackendError as exc:
            logger.error("Model inference failed: model={} kind={} error={}", exc.model_id, exc.kind, exc)
            run.failed(CommandState.MODEL_INFERENCE, exc, start)
            self.memory.add_turn(Turn.assistant(f"Model call failed ({exc.kind}).", model_id=run.model.id))
            return run.result(
                f"The AI model '{run.model.name}' could not process the request ({exc.kind}). Please try again.",
                CommandOutcome.BACKEND_FAILED,
            )
        run.completed(CommandState.MODEL_INFERENCE, start)

        call = response.first_call
        if call is None:
            run.completed(CommandState.TEXT_RESPONSE, _now())
            run.skipped(CommandState.TOOL_DISPATCH, SkipReason.NO_TOOL_CALL)
            return self._filter_output(run, response.text or "No response from AI.", CommandOutcome.COMPLETED)

        if len(response.function_calls) > 1:
            logger.warning(
                "Model {} requested {} function calls, only '{}' will run",
                run.model.id,
                len(response.function_calls),
                call.name,
            )
        return await self._dispatch(run, response, call, tool_timeout, model_timeout)

    async def _dispatch(
        self,
        run: _CommandRun,
        response: BackendResponse,
        call: FunctionCall,
        tool_timeout: float | None,
        model_timeout: float | None,
    ) -> CommandResult:
        start = _now()
        run.function_call = call
        model_id = run.model.id

        tool = self.tools.get(call.name)
        if tool is None:
            error = UnknownTool(call.name)
            logger.warning("Model {} requested unknown tool '{}'", model_id, call.name)
            run.failed(CommandState.TOOL_DISPATCH, error, start)
            self.memory.add_turn(
                Turn.assistant(f"Tried to call an unknown tool: {call.name}.", model_id=model_id, function_call=call)
            )
            return run.result(
                f"I tried to use a tool called '{call.name}', but it doesn't seem to exist.",
                CommandOutcome.UNKNOWN_TOOL,
            )

        self.memory.add_turn(
            Turn.assistant(response.text or f"Calling tool '{call.name}'.", model_id=model_id, function_call=call)
        )

        try:
            result = await self._run_tool(tool, call, tool_timeout)
        except ToolExecutionFailed as exc:
            logger.error("Tool '{}' failed: model={} kind={} error={}", tool.name, model_id, exc.kind, exc)
            run.failed(CommandState.TOOL_DISPATCH, exc, start)
            self.memory.add_turn(
                Turn.tool(
                    f"Tool {tool.name} failed. Error: {exc}",
                    ToolResponse(
                        tool_name=tool.name,
                        result={"error": str(exc), "kind": exc.kind},
                        call_id=call.call_id,
                        is_error=True,
                    ),
                    model_id=model_id,
                )
            )
            return run.result(f"Action '{tool.name}' failed ({exc.kind}).", CommandOutcome.TOOL_FAILED)
        except asyncio.CancelledError:
            logger.warning("Command cancelled while tool '{}' was running, result will not be recorded", tool.name)
            self.memory.add_turn(
                Turn.tool(
                    f"Tool {tool.name} was still running when the command was cancelled.",
                    ToolResponse(tool_name=tool.name, result={"cancelled": True}, call_id=call.call_id, is_error=True),
                    model_id=model_id,
                )
            )
            raise

        rendered = render_result(result)
        run.tool_result = result
        logger.info("Tool '{}' executed for model {}", tool.name, model_id)
        self.memory.add_turn(
            Turn.tool(
                rendered,
                ToolResponse(tool_name=tool.name, result=result, call_id=call.call_id),
                model_id=model_id,
            )
        )
        run.completed(CommandState.TOOL_DISPATCH, start, detail=tool.name)

        if self.is_direct_result(tool):
            run.skipped(CommandState.FOLLOW_UP_INFERENCE, SkipReason.DIRECT_RESULT)
            return run.result(rendered, CommandOutcome.TOOL_EXECUTED)

        # ---- follow_up_inference --------------------------------------------
        start = _now()
        options = InferenceOptions(temperature=self.settings.follow_up_temperature, timeout_seconds=model_timeout)
        follow_up_prompt = FOLLOW_UP_TEMPLATE.format(name=tool.name, result=rendered)
        try:
            follow_up = await self.models.call_backend(
                follow_up_prompt, (), self.memory.get_history(), options, model=run.model
            )
        except BackendError as exc:
            logger.warning("Follow-up inference failed: model={} kind={}, returning raw tool result", exc.model_id, exc.kind)
            run.failed(CommandState.FOLLOW_UP_INFERENCE, exc, start)
            text = rendered
        else:
            run.completed(CommandState.FOLLOW_UP_INFERENCE, start)
            text = follow_up.text or rendered

        return self._filter_output(run, text, CommandOutcome.TOOL_EXECUTED)

    async def _run_tool(self, tool: Tool, call: FunctionCall, timeout: float | None) -> Any:
        """Validate arguments and run the handler under the tool timeout.

        The handler runs in its own task so a cancelled command leaves it
        running to completion instead of interrupting its side effects.

        Raises:
            ToolExecutionFailed: Invalid arguments, handler error or timeout
            asyncio.CancelledError: The command was cancelled
        """
        args = tool.validate_args(call.args)
        task = asyncio.ensure_future(tool.handler.execute(args))
        try:
            async with asyncio.timeout(timeout):
                return await asyncio.shield(task)
        except TimeoutError as exc:
            task.cancel()
            raise ToolTimeout(tool.name, f"Tool '{tool.name}' did not finish within {timeout}s") from exc
        except ToolExecutionFailed:
            raise
        except asyncio.CancelledError:
            if not task.done():
                self._detach(tool.name, task)
            raise
        except Exception as exc:
            raise ToolExecutionFailed(tool.name, f"{type(exc).__name__}: {exc}") from exc

    def _detach(self, tool_name: str, task: asyncio.Task[Any]) -> None:
        self._detached.add(task)

        def on_done(finished: asyncio.Task[Any]) -> None:
            self._detached.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.error("Detached tool '{}' failed after cancellation: {}", tool_name, type(error).__name__)
            else:
                logger.info("Detached tool '{}' completed after cancellation", tool_name)

        task.add_done_callback(on_done)

    def _filter_output(self, run: _CommandRun, text: str, outcome: CommandOutcome) -> CommandResult:
        start = _now()
        verdict = self.guardrails.filter_output(text)
        if verdict.blocked:
            reason = verdict.reason or "Unknown violation."
            run.failed(CommandState.OUTPUT_FILTERING, GuardrailBlocked(verdict.policy or "unknown", reason), start)
            self.memory.add_turn(
                Turn.assistant(f"{BLOCKED_OUTPUT_PLACEHOLDER} (Reason: {reason})", model_id=run.model.id)
            )
            return run.result(
                f"{BLOCKED_OUTPUT_PLACEHOLDER} Reason: {reason}",
                CommandOutcome.OUTPUT_BLOCKED,
                block_reason=reason,
            )

        run.completed(CommandState.OUTPUT_FILTERING, start, detail=",".join(verdict.applied) or None)
        self.memory.add_turn(Turn.assistant(verdict.clean_text, model_id=run.model.id))
        return run.result(verdict.clean_text, outcome)

    @property
    def pending_tools(self) -> int:
        """Tool handlers still running after their command was cancelled."""
        return len(self._detached)


__all__ = [
    "BLOCKED_OUTPUT_PLACEHOLDER",
    "CommandResult",
    "DIRECT_RESULT_PREFIXES",
    "DIRECT_RESULT_TOOLS",
    "FOLLOW_UP_TEMPLATE",
    "Orchestrator",
    "OrchestratorSettings",
    "PROMPT_TEMPLATE",
    "build_prompt",
]
