"""Test doubles shared by unit and integration tests."""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime

from command_center.domain.backends import InferenceOptions
from command_center.domain.domain_value import BackendResponse, FunctionCall, Turn
from command_center.domain.model_catalog import ModelConfig
from command_center.domain.tools import ToolDeclaration

FIXED_NOW = datetime(2024, 1, 1, 14, 30, tzinfo=UTC)


class BackendCall:
    """What one ``invoke`` received."""

    def __init__(self, prompt, tools, history, options, model):
        self.prompt: str = prompt
        self.tools: list[ToolDeclaration] = list(tools)
        self.history: tuple[Turn, ...] = tuple(history)
        self.options: InferenceOptions | None = options
        self.model: ModelConfig = model

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.tools]


class ScriptedBackend:
    """Backend answering from a script, one entry per call.

    Entries are a BackendResponse, an exception to raise, or a callable
    taking the BackendCall. When the script runs out, the backend answers
    with plain text.
    """

    def __init__(self, *script: BackendResponse | Exception | Callable[[BackendCall], BackendResponse]):
        self.script = list(script)
        self.calls: list[BackendCall] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def push(self, *entries) -> None:
        self.script.extend(entries)

    async def invoke(self, prompt: str, tools: Sequence, history: Sequence, options, *, model: ModelConfig):
        call = BackendCall(prompt, tools, history, options, model)
        self.calls.append(call)
        if not self.script:
            return BackendResponse(text="ok")
        entry = self.script.pop(0)
        if isinstance(entry, Exception):
            raise entry
        if callable(entry):
            return entry(call)
        return entry


def text(content: str) -> BackendResponse:
    return BackendResponse(text=content)


def calls(name: str, **args) -> BackendResponse:
    return BackendResponse(function_calls=(FunctionCall(name=name, args=args),))

