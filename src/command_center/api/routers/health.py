"""Health check router

Endpoints:
- GET /health: Service health status, version and active model
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from ...config import get_settings
from ...domain.model_catalog import ModelRegistry
from ..contracts import HealthResponse
from ..deps import get_model_registry

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    registry: Annotated[ModelRegistry, Depends(get_model_registry)],
) -> HealthResponse:
    """API health check"""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        service=settings.app_name,
        version=settings.app_version,
        active_model=registry.get_active().id,
    )
