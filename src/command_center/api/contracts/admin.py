"""Admin API contracts - models, tools and guardrails."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ...domain.domain_type import GuardrailDirection
from ...domain.model_catalog import ModelConfig


class ModelListResponse(BaseModel):
    """Registered models plus the active and default pointers."""

    active_id: str
    default_id: str
    models: list[ModelConfig]


class SetActiveModelRequest(BaseModel):
    model_id: str = Field(min_length=1, description="Model id or alias", examples=["gpt-4o", "claude"])

    model_config = ConfigDict(protected_namespaces=())


class ToolInfo(BaseModel):
    """A registered tool as the model sees it, plus its classification."""

    name: str
    description: str
    service: str
    tags: list[str]
    parameters: dict[str, Any]


class GuardrailInfo(BaseModel):
    name: str
    direction: GuardrailDirection
    description: str
    enabled: bool


class SetGuardrailRequest(BaseModel):
    enabled: bool
