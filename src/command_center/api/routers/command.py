"""Command API Router - thin HTTP layer over the session service."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from ...domain.memory import ContextualMemory
from ...service import CommandService
from ..contracts import (
    CommandRequest,
    CommandResponse,
    FactRequest,
    FactsResponse,
    SessionHistoryResponse,
    TurnResponse,
)
from ..deps import get_command_service

router = APIRouter(prefix="/command", tags=["command"])


@router.post("/", response_model=CommandResponse)
async def run_command(
    request: CommandRequest,
    service: Annotated[CommandService, Depends(get_command_service)],
) -> CommandResponse:
    """
    Run a natural-language command.

    Guardrail blocks, unknown tools, tool failures and backend failures all
    come back as a 200 with the matching ``outcome``; the engine always has
    a message to show.
    """
    session_id, result = await service.run_command(request.text, request.session_id)
    return CommandResponse.from_result(session_id, result)


@router.get("/{session_id}/history", response_model=SessionHistoryResponse)
async def get_history(
    session_id: UUID,
    service: Annotated[CommandService, Depends(get_command_service)],
) -> SessionHistoryResponse:
    """Get a session's turn window."""
    turns = service.history(session_id)
    if turns is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return SessionHistoryResponse(
        session_id=session_id,
        turn_count=len(turns),
        turns=[TurnResponse.from_turn(turn) for turn in turns],
    )


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    session_id: UUID,
    service: Annotated[CommandService, Depends(get_command_service)],
) -> None:
    """End a session and drop its memory."""
    if not service.close_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")


def _session_memory(service: CommandService, session_id: UUID) -> ContextualMemory:
    memory = service.memory(session_id)
    if memory is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return memory


@router.get("/{session_id}/facts", response_model=FactsResponse)
async def list_facts(
    session_id: UUID,
    service: Annotated[CommandService, Depends(get_command_service)],
) -> FactsResponse:
    """Get the facts remembered for a session."""
    memory = _session_memory(service, session_id)
    return FactsResponse(session_id=session_id, facts=memory.facts)


@router.put("/{session_id}/facts/{key}", response_model=FactsResponse)
async def remember_fact(
    session_id: UUID,
    key: str,
    request: FactRequest,
    service: Annotated[CommandService, Depends(get_command_service)],
) -> FactsResponse:
    """
    Remember a fact for a session.

    Facts are added to the context of every later command in the session
    and are not subject to the turn window.
    """
    memory = _session_memory(service, session_id)
    memory.remember(key, request.value)
    return FactsResponse(session_id=session_id, facts=memory.facts)


@router.delete("/{session_id}/facts/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def forget_fact(
    session_id: UUID,
    key: str,
    service: Annotated[CommandService, Depends(get_command_service)],
) -> None:
    """Forget one remembered fact."""
    if not _session_memory(service, session_id).forget(key):
        raise HTTPException(status_code=404, detail=f"Fact '{key}' not found")
