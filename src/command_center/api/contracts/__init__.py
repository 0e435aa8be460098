from .admin import GuardrailInfo, ModelListResponse, SetActiveModelRequest, SetGuardrailRequest, ToolInfo
from .command import (
    CommandRequest,
    CommandResponse,
    FactRequest,
    FactsResponse,
    SessionHistoryResponse,
    TurnResponse,
)
from .health import HealthResponse

__all__ = [
    "CommandRequest",
    "CommandResponse",
    "FactRequest",
    "FactsResponse",
    "GuardrailInfo",
    "HealthResponse",
    "ModelListResponse",
    "SessionHistoryResponse",
    "SetActiveModelRequest",
    "SetGuardrailRequest",
    "ToolInfo",
    "TurnResponse",
]
