"""Model Backends - The Capability Behind Every Inference.

A ModelBackend turns (prompt, tool declarations, history, options) into a
BackendResponse holding text and/or requested function calls. The
ModelRegistry binds one backend per ModelProvider and the Orchestrator only
ever talks to backends through ``ModelRegistry.call_backend``.

Implementations:
    - PydanticAIBackend: Real providers through pydantic-ai's direct model
      request API. Tool execution stays with the Orchestrator, so the
      backend only declares tools and reports the calls the model asked for.
    - EchoBackend: Offline, deterministic backend for development and demos.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .domain_type import ModelProvider, TurnRole
from .domain_value import BackendResponse, FunctionCall, Turn, render_result
from .errors import BackendMalformedResponse

if TYPE_CHECKING:
    from pydantic_ai.messages import ModelMessage, ModelResponse, ToolCallPart
    from pydantic_ai.models import Model

    from .model_catalog import ModelConfig
    from .tools import ToolDeclaration


# Key pydantic-ai uses to wrap tool-call arguments that are not valid JSON.
INVALID_JSON_KEY = "INVALID_JSON"


class InferenceOptions(BaseModel):
    """Per-call inference knobs.

    Attributes:
        temperature: Sampling temperature, provider default when None
        max_output_tokens: Cap on generated tokens
        timeout_seconds: Enforced by the registry around the backend call
    """

    temperature: float | None = Field(default=None, ge=0, le=2)
    max_output_tokens: int | None = Field(default=None, gt=0)
    timeout_seconds: float | None = Field(default=None, gt=0)

    model_config = ConfigDict(frozen=True)


@runtime_checkable
class ModelBackend(Protocol):
    """Capability for answering one inference request.

    Implementations raise ``BackendError`` subclasses for failures they can
    classify; anything else is classified as unavailable by the registry.
    """

    async def invoke(
        self,
        prompt: str,
        tools: Sequence[ToolDeclaration],
        history: Sequence[Turn],
        options: InferenceOptions | None,
        *,
        model: ModelConfig,
    ) -> BackendResponse: ...


# pydantic-ai model string prefix per provider. CUSTOM configs carry a
# fully qualified model string in api_id.
PYDANTIC_AI_PREFIXES: dict[ModelProvider, str | None] = {
    ModelProvider.GOOGLE: "google-gla",
    ModelProvider.OPENAI: "openai",
    ModelProvider.ANTHROPIC: "anthropic",
    ModelProvider.LOCAL: "ollama",
    ModelProvider.CUSTOM: None,
}


def default_model_string(config: ModelConfig) -> str:
    """Map a ModelConfig onto a pydantic-ai "provider:model" string."""
    prefix = PYDANTIC_AI_PREFIXES.get(config.provider)
    return f"{prefix}:{config.api_id}" if prefix else config.api_id


class PydanticAIBackend:
    """Backend Adapter Over pydantic-ai.

    Uses ``pydantic_ai.direct.model_request`` rather than an Agent: an Agent
    would run tools itself, while the command center has to see each call
    to apply its own dispatch rules.

    Args:
        model_factory: Maps a ModelConfig onto a pydantic-ai model (instance
            or model string). Defaults to ``default_model_string``.
    """

    def __init__(self, model_factory: Callable[[ModelConfig], Model | str] | None = None):
        self._model_factory = model_factory or default_model_string

    async def invoke(
        self,
        prompt: str,
        tools: Sequence[ToolDeclaration],
        history: Sequence[Turn],
        options: InferenceOptions | None,
        *,
        model: ModelConfig,
    ) -> BackendResponse:
        from pydantic_ai.direct import model_request
        from pydantic_ai.models import ModelRequestParameters
        from pydantic_ai.settings import ModelSettings
        from pydantic_ai.tools import ToolDefinition

        messages = to_model_messages(history, prompt, tool_parts=bool(tools))
        parameters = ModelRequestParameters(
            function_tools=[
                ToolDefinition(
                    name=tool.name,
                    description=tool.description,
                    parameters_json_schema=tool.parameters,
                )
                for tool in tools
            ],
        )

        settings = ModelSettings()
        if options and options.temperature is not None:
            settings["temperature"] = options.temperature
        if options and options.max_output_tokens is not None:
            settings["max_tokens"] = options.max_output_tokens

        response = await model_request(
            self._model_factory(model),
            messages,
            model_settings=settings or None,
            model_request_parameters=parameters,
        )
        return from_model_response(response, model_id=model.id)


def to_model_messages(history: Sequence[Turn], prompt: str, *, tool_parts: bool = True) -> list[ModelMessage]:
    """Translate the turn log plus the current prompt into pydantic-ai messages.

    Assistant function calls without a matching tool turn (unknown tools) are
    sent as plain text, since providers reject unanswered tool calls. With
    ``tool_parts=False`` every call and result is sent as text, for requests
    that declare no tools.
    """
    from pydantic_ai.messages import (
        ModelRequest,
        ModelResponse,
        SystemPromptPart,
        TextPart,
        ToolCallPart,
        ToolReturnPart,
        UserPromptPart,
    )

    # Only pairs with both halves still in the window become structured parts.
    called = {turn.function_call.call_id for turn in history if turn.function_call is not None}
    answered = {
        turn.tool_response.call_id
        for turn in history
        if tool_parts and turn.role == TurnRole.TOOL and turn.tool_response and turn.tool_response.call_id
    } & called

    messages: list[ModelMessage] = []
    for turn in history:
        if turn.role == TurnRole.USER:
            messages.append(ModelRequest(parts=[UserPromptPart(content=turn.content)]))
        elif turn.role == TurnRole.SYSTEM:
            messages.append(ModelRequest(parts=[SystemPromptPart(content=turn.content)]))
        elif turn.role == TurnRole.ASSISTANT:
            call = turn.function_call
            if call is not None and call.call_id in answered:
                part = ToolCallPart(tool_name=call.name, args=call.args, tool_call_id=call.call_id)
                messages.append(ModelResponse(parts=[part]))
            else:
                messages.append(ModelResponse(parts=[TextPart(content=turn.content)]))
        elif turn.role == TurnRole.TOOL:
            response = turn.tool_response
            if response is not None and response.call_id in answered:
                part = ToolReturnPart(
                    tool_name=response.tool_name,
                    content=render_result(response.result),
                    tool_call_id=response.call_id,
                )
                messages.append(ModelRequest(parts=[part]))
            else:
                messages.append(ModelRequest(parts=[UserPromptPart(content=turn.content)]))

    messages.append(ModelRequest(parts=[UserPromptPart(content=prompt)]))
    return messages


def _call_arguments(part: ToolCallPart, model_id: str) -> dict[str, Any]:
    """Strictly decode a tool call's arguments into a dict.

    ``ToolCallPart.args_as_dict`` tolerates bad JSON by wrapping it in an
    ``INVALID_JSON`` key, so string arguments are decoded here instead.
    """
    raw = part.args
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            args = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise BackendMalformedResponse(model_id, f"Unparseable arguments for '{part.tool_name}': {exc}") from exc
    else:
        args = raw
    if not isinstance(args, dict):
        raise BackendMalformedResponse(
            model_id, f"Arguments for '{part.tool_name}' must be an object, got {type(args).__name__}"
        )
    if INVALID_JSON_KEY in args:
        raise BackendMalformedResponse(model_id, f"Unparseable arguments for '{part.tool_name}'")
    return dict(args)


def from_model_response(response: ModelResponse, *, model_id: str) -> BackendResponse:
    """Collect text and tool calls out of a pydantic-ai ModelResponse."""
    from pydantic_ai.messages import TextPart, ToolCallPart

    texts: list[str] = []
    calls: list[FunctionCall] = []
    for part in response.parts:
        if isinstance(part, TextPart):
            texts.append(part.content)
        elif isinstance(part, ToolCallPart):
            args = _call_arguments(part, model_id)
            calls.append(FunctionCall(name=part.tool_name, args=args, call_id=part.tool_call_id))

    text = "".join(texts).strip() or None
    return BackendResponse(text=text, function_calls=tuple(calls))


class EchoBackend:
    """Deterministic Offline Backend.

    Echoes the user's request back. A request of the form
    ``!toolName {"arg": "value"}`` is answered with a function call instead,
    provided the tool was declared, so tool dispatch can be exercised
    without a provider account.
    """

    REQUEST_MARKER = "User Request:"

    async def invoke(
        self,
        prompt: str,
        tools: Sequence[ToolDeclaration],
        history: Sequence[Turn],
        options: InferenceOptions | None,
        *,
        model: ModelConfig,
    ) -> BackendResponse:
        request = prompt.rsplit(self.REQUEST_MARKER, 1)[-1].strip()

        if request.startswith("!"):
            name, _, raw_args = request[1:].partition(" ")
            declared = {tool.name for tool in tools}
            if name in declared:
                try:
                    args = json.loads(raw_args) if raw_args.strip() else {}
                except json.JSONDecodeError:
                    args = {}
                if isinstance(args, dict):
                    return BackendResponse(function_calls=(FunctionCall(name=name, args=args),))

        return BackendResponse(text=f"[{model.name}] {request}")


__all__ = [
    "EchoBackend",
    "InferenceOptions",
    "ModelBackend",
    "PYDANTIC_AI_PREFIXES",
    "PydanticAIBackend",
    "default_model_string",
    "from_model_response",
    "to_model_messages",
]
