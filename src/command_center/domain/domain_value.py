"""Value Layer - Identities, Turns and Backend Exchanges.

This module provides the immutable values that flow between the components
of the command center:

    - Identity: TurnId, SessionId (UUID wrappers)
    - Conversation: Turn with optional FunctionCall / ToolResponse payloads
    - Backend exchange: BackendResponse (text and/or requested function calls)

All values are frozen Pydantic models so they can be shared across async
tasks and handed out from memory snapshots without defensive copying.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, RootModel

from .domain_type import TurnRole


class TurnId(RootModel[UUID]):
    """Unique Identifier for Individual Turns.

    Uses Pydantic's RootModel pattern to create a strongly-typed UUID wrapper.

    Usage:
        >>> turn_id = TurnId()  # Auto-generates UUID
        >>> str(turn_id.root)
        '550e8400-e29b-41d4-a716-446655440000'
    """

    root: UUID = Field(default_factory=uuid4)
    model_config = ConfigDict(frozen=True)


class SessionId(RootModel[UUID]):
    """Unique Identifier for a Conversation Session.

    Each session owns one ContextualMemory. Keeping a distinct type from
    TurnId prevents mixing the two up at API boundaries.
    """

    root: UUID = Field(default_factory=uuid4)
    model_config = ConfigDict(frozen=True)


def _new_call_id() -> str:
    return f"call_{uuid4().hex[:16]}"


class FunctionCall(BaseModel):
    """A tool invocation requested by the model.

    Attributes:
        name: Tool name as the model spelled it (may not be registered)
        args: Raw arguments, validated later against the tool's schema
        call_id: Correlates the request with its tool response turn
    """

    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    call_id: str = Field(default_factory=_new_call_id)

    model_config = ConfigDict(frozen=True)


class ToolResponse(BaseModel):
    """Outcome of a tool invocation, recorded on a ``tool`` turn."""

    tool_name: str
    result: Any = None
    call_id: str | None = None
    is_error: bool = False

    model_config = ConfigDict(frozen=True)


class Turn(BaseModel):
    """One Recorded Unit of Conversation.

    Ordering is causally significant: a ``tool`` turn immediately follows
    the ``assistant`` turn whose function call it answers.

    Attributes:
        id: Unique turn identifier
        role: user, assistant, tool or system
        content: Human-readable text of the turn
        function_call: Set on assistant turns that requested a tool
        tool_response: Set on tool turns
        timestamp: When the turn was produced (UTC)
        model_id: Model that produced or handled the turn
    """

    id: TurnId = Field(default_factory=TurnId)
    role: TurnRole
    content: str
    function_call: FunctionCall | None = None
    tool_response: ToolResponse | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    model_id: str | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def user(cls, content: str) -> Turn:
        return cls(role=TurnRole.USER, content=content)

    @classmethod
    def system(cls, content: str) -> Turn:
        return cls(role=TurnRole.SYSTEM, content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        *,
        model_id: str | None = None,
        function_call: FunctionCall | None = None,
    ) -> Turn:
        return cls(
            role=TurnRole.ASSISTANT,
            content=content,
            model_id=model_id,
            function_call=function_call,
        )

    @classmethod
    def tool(
        cls,
        content: str,
        response: ToolResponse,
        *,
        model_id: str | None = None,
    ) -> Turn:
        return cls(
            role=TurnRole.TOOL,
            content=content,
            tool_response=response,
            model_id=model_id,
        )


class BackendResponse(BaseModel):
    """What a Model Backend returns for one inference.

    Either field may be empty, not both: a backend that produces neither
    text nor function calls is reported as a malformed response.
    """

    text: str | None = None
    function_calls: tuple[FunctionCall, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def first_call(self) -> FunctionCall | None:
        """Only the first requested call is ever executed per command."""
        return self.function_calls[0] if self.function_calls else None

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.function_calls


def render_result(result: Any) -> str:
    """Render a tool result as text for turns and user-facing messages."""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json(indent=2)
    try:
        return json.dumps(result, indent=2, default=str)
    except (TypeError, ValueError):
        return str(result)


__all__ = [
    "BackendResponse",
    "FunctionCall",
    "SessionId",
    "ToolResponse",
    "Turn",
    "TurnId",
    "render_result",
]
