"""Tool Registry - The Catalog of Model-Callable Actions.

Tools are named, schema-described actions the model may ask to invoke.
Each Tool pairs:

    - a declaration (name, description, JSON schema) the model sees
    - a Pydantic args model that validates arguments before invocation
    - a handler satisfying the ToolHandler capability (``execute(args)``)
    - classification tags and an owning-service label for introspection

Tool Registration:
    Typed async functions become tools through ``function_tool``; the args
    model is built from the signature and the description from the
    docstring, so a tool reads like any other documented function:

    >>> async def get_time(timezone: str = "UTC") -> str:
    ...     '''Returns the current time.'''
    >>> registry.register(function_tool(get_time, name="getTime", tags={"utility"}))

Lookup is a flat dict keyed by name: O(1) regardless of how many tags or
services the catalog grows into.
"""

from __future__ import annotations

import inspect
import threading
import typing
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol, runtime_checkable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from .errors import ToolArgumentsInvalid

# Tools carrying this tag mutate UI/application state directly; their raw
# result goes straight back to the caller without a follow-up inference.
UI_ACTION_TAG = "ui_action"

TOOL_NAME_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_]{0,63}$"


class ToolDeclaration(BaseModel):
    """What the model is told about a tool."""

    name: str
    description: str
    parameters: dict[str, Any]

    model_config = ConfigDict(frozen=True)


@runtime_checkable
class ToolHandler(Protocol):
    """Capability for executing one tool invocation.

    ``args`` has already been validated against the tool's args model.
    Raise to signal failure; the Orchestrator records it as a tool turn.
    """

    async def execute(self, args: dict[str, Any]) -> Any: ...


class FunctionHandler:
    """Adapts a plain (async or sync) function into a ToolHandler."""

    def __init__(self, func: Callable[..., Awaitable[Any] | Any]):
        self.func = func

    async def execute(self, args: dict[str, Any]) -> Any:
        result = self.func(**args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionHandler({getattr(self.func, '__name__', self.func)!r})"


class NoArgs(BaseModel):
    """Args model for tools that take no parameters."""

    model_config = ConfigDict(extra="forbid")


class Tool(BaseModel):
    """A Registered, Callable Action.

    Attributes:
        name: Globally unique within a registry
        description: Shown to the model (write it for the model!)
        args_model: Pydantic model validating the accepted arguments
        handler: Executes the action
        tags: Classification labels (e.g., "system", "navigation")
        service: Owning service label (e.g., "CoreApplication")
    """

    name: str = Field(pattern=TOOL_NAME_PATTERN)
    description: str
    args_model: type[BaseModel] = NoArgs
    handler: ToolHandler
    tags: frozenset[str] = frozenset()
    service: str = "CoreApplication"

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def declaration(self) -> ToolDeclaration:
        return ToolDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.args_model.model_json_schema(),
        )

    @property
    def is_ui_action(self) -> bool:
        return UI_ACTION_TAG in self.tags

    def validate_args(self, args: dict[str, Any]) -> dict[str, Any]:
        """Validate raw model-supplied arguments against the args model.

        Error text names offending fields only, never their values, since
        arguments may carry sensitive data.

        Raises:
            ToolArgumentsInvalid: If validation fails
        """
        try:
            validated = self.args_model.model_validate(args)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in error['loc']) or '<root>'}: {error['msg']}" for error in exc.errors()
            )
            raise ToolArgumentsInvalid(self.name, f"Invalid arguments for '{self.name}': {problems}") from exc
        return validated.model_dump()

    async def invoke(self, args: dict[str, Any]) -> Any:
        """Validate then execute."""
        return await self.handler.execute(self.validate_args(args))


def _first_paragraph(doc: str | None) -> str:
    if not doc:
        return ""
    return inspect.cleandoc(doc).split("\n\n", 1)[0].replace("\n", " ").strip()


def function_tool(
    func: Callable[..., Awaitable[Any] | Any],
    *,
    name: str | None = None,
    description: str | None = None,
    tags: Iterable[str] = (),
    service: str = "CoreApplication",
) -> Tool:
    """Build a Tool from a typed function.

    Each parameter becomes a field of a generated args model (extra keys
    forbidden). Parameters without annotations accept any value.
    """
    hints = typing.get_type_hints(func, include_extras=True)
    fields: dict[str, Any] = {}
    for param in inspect.signature(func).parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = hints.get(param.name, Any)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[param.name] = (annotation, default)

    tool_name = name or func.__name__
    args_model = (
        create_model(f"{tool_name}Args", __config__=ConfigDict(extra="forbid"), **fields) if fields else NoArgs
    )
    return Tool(
        name=tool_name,
        description=description or _first_paragraph(func.__doc__) or tool_name,
        args_model=args_model,
        handler=FunctionHandler(func),
        tags=frozenset(tags),
        service=service,
    )


class ToolRegistry:
    """Registry for model-callable tools.

    Writes (register/unregister) are serialized and copy-on-write; readers
    work on whatever dict is current without locking.
    """

    def __init__(self, tools: Iterable[Tool] = ()):
        self._write_lock = threading.Lock()
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> bool:
        """Register a tool.

        Returns:
            False if the name is already taken; the existing tool is kept.
        """
        with self._write_lock:
            if tool.name in self._tools:
                logger.error("Attempted to register duplicate tool name '{}' (service: {})", tool.name, tool.service)
                return False
            self._tools = {**self._tools, tool.name: tool}
        logger.debug("Registered tool '{}' (service: {}, tags: {})", tool.name, tool.service, sorted(tool.tags))
        return True

    def unregister(self, name: str) -> bool:
        with self._write_lock:
            if name not in self._tools:
                return False
            self._tools = {k: v for k, v in self._tools.items() if k != name}
        logger.debug("Unregistered tool '{}'", name)
        return True

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def list_declarations(self) -> list[ToolDeclaration]:
        return [tool.declaration for tool in self._tools.values()]

    def list_by_tag(self, tag: str) -> list[Tool]:
        return [tool for tool in self._tools.values() if tag in tool.tags]

    def list_by_service(self, service: str) -> list[Tool]:
        return [tool for tool in self._tools.values() if tool.service == service]

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools


__all__ = [
    "FunctionHandler",
    "NoArgs",
    "Tool",
    "ToolDeclaration",
    "ToolHandler",
    "ToolRegistry",
    "UI_ACTION_TAG",
    "function_tool",
]
