"""Admin API Router - models, tools and guardrails.

Endpoints:
- GET /models, PUT /models/active
- GET /tools
- GET /guardrails, PUT /guardrails/{name}
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ...domain.guardrails import GuardrailPipeline
from ...domain.model_catalog import ModelRegistry
from ...domain.tools import ToolRegistry
from ..contracts import GuardrailInfo, ModelListResponse, SetActiveModelRequest, SetGuardrailRequest, ToolInfo
from ..deps import get_guardrails, get_model_registry, get_tool_registry

router = APIRouter(tags=["admin"])


def _model_list(registry: ModelRegistry) -> ModelListResponse:
    return ModelListResponse(
        active_id=registry.get_active().id,
        default_id=registry.default_id,
        models=registry.list_configs(),
    )


@router.get("/models", response_model=ModelListResponse)
async def list_models(
    registry: Annotated[ModelRegistry, Depends(get_model_registry)],
) -> ModelListResponse:
    """List registered models."""
    return _model_list(registry)


@router.put("/models/active", response_model=ModelListResponse)
async def set_active_model(
    request: SetActiveModelRequest,
    registry: Annotated[ModelRegistry, Depends(get_model_registry)],
) -> ModelListResponse:
    """Switch the active model. The previous model stays active on 404."""
    if not registry.set_active(request.model_id):
        raise HTTPException(status_code=404, detail=f"Model '{request.model_id}' not found")
    return _model_list(registry)


@router.get("/tools", response_model=list[ToolInfo])
async def list_tools(
    registry: Annotated[ToolRegistry, Depends(get_tool_registry)],
    tag: str | None = None,
    service: str | None = None,
) -> list[ToolInfo]:
    """List registered tools, optionally filtered by tag and/or owning service."""
    tools = registry.list_by_service(service) if service else registry.list_tools()
    if tag:
        tagged = {t.name for t in registry.list_by_tag(tag)}
        tools = [t for t in tools if t.name in tagged]
    return [
        ToolInfo(
            name=t.name,
            description=t.description,
            service=t.service,
            tags=sorted(t.tags),
            parameters=t.declaration.parameters,
        )
        for t in tools
    ]


def _guardrail_infos(pipeline: GuardrailPipeline) -> list[GuardrailInfo]:
    states = pipeline.policy_states()
    return [
        GuardrailInfo(
            name=policy.name,
            direction=policy.direction,
            description=policy.description,
            enabled=states.get(policy.name, False),
        )
        for policy in pipeline.policies
    ]


@router.get("/guardrails", response_model=list[GuardrailInfo])
async def list_guardrails(
    pipeline: Annotated[GuardrailPipeline, Depends(get_guardrails)],
) -> list[GuardrailInfo]:
    """List guardrail policies in evaluation order."""
    return _guardrail_infos(pipeline)


@router.put("/guardrails/{name}", response_model=GuardrailInfo)
async def set_guardrail(
    name: str,
    request: SetGuardrailRequest,
    pipeline: Annotated[GuardrailPipeline, Depends(get_guardrails)],
) -> GuardrailInfo:
    """Enable or disable one guardrail policy."""
    if not pipeline.set_policy(name, request.enabled):
        raise HTTPException(status_code=404, detail=f"Guardrail policy '{name}' not found")
    return next(info for info in _guardrail_infos(pipeline) if info.name == name)
