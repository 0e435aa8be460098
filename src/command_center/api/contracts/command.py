"""Command API contracts - thin mappings over domain types."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ...domain.domain_type import CommandOutcome, CommandState, TurnRole
from ...domain.domain_value import FunctionCall, Turn, render_result
from ...domain.orchestrator import CommandResult


class CommandRequest(BaseModel):
    """Request to run a natural-language command."""

    text: str = Field(
        min_length=1,
        max_length=10_000,
        description="The user's command",
        examples=["Open the code explainer", "what is 2+2"],
    )
    session_id: UUID | None = Field(
        default=None,
        description="Existing session to continue, or None to start a new one",
        examples=["3fa85f64-5717-4562-b3fc-2c963f66afa6"],
    )


class CommandResponse(BaseModel):
    """Result of one command."""

    session_id: UUID = Field(description="Session id for subsequent requests")
    text: str = Field(description="User-facing message")
    outcome: CommandOutcome
    model_id: str
    function_call: FunctionCall | None = None
    block_reason: str | None = None
    states: list[CommandState] = Field(description="States the command went through, in order")

    model_config = ConfigDict(protected_namespaces=())

    @classmethod
    def from_result(cls, session_id: UUID, result: CommandResult) -> CommandResponse:
        return cls(
            session_id=session_id,
            text=result.text,
            outcome=result.outcome,
            model_id=result.model_id,
            function_call=result.function_call,
            block_reason=result.block_reason,
            states=list(result.states),
        )


class TurnResponse(BaseModel):
    """One turn of session history."""

    role: TurnRole
    content: str
    timestamp: datetime
    model_id: str | None = None
    function_call: FunctionCall | None = None
    tool_name: str | None = None
    tool_result: str | None = Field(default=None, description="Tool result rendered as text")
    is_error: bool = False

    model_config = ConfigDict(protected_namespaces=())

    @classmethod
    def from_turn(cls, turn: Turn) -> TurnResponse:
        response = turn.tool_response
        return cls(
            role=turn.role,
            content=turn.content,
            timestamp=turn.timestamp,
            model_id=turn.model_id,
            function_call=turn.function_call,
            tool_name=response.tool_name if response else None,
            tool_result=render_result(response.result) if response else None,
            is_error=response.is_error if response else False,
        )


class SessionHistoryResponse(BaseModel):
    """A session's turn window, oldest first."""

    session_id: UUID
    turn_count: int = Field(ge=0)
    turns: list[TurnResponse]


class FactRequest(BaseModel):
    """Value to remember under a key for one session."""

    value: str = Field(
        min_length=1,
        max_length=2_000,
        description="Fact included in the session's assembled context",
        examples=["Deploys go to the staging cluster first"],
    )


class FactsResponse(BaseModel):
    """A session's remembered facts."""

    session_id: UUID
    facts: dict[str, str]
