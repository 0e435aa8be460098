"""API dependency wiring."""

from functools import lru_cache

from ..config import get_settings
from ..domain.guardrails import GuardrailPipeline
from ..domain.model_catalog import ModelRegistry
from ..domain.tools import ToolRegistry
from ..service import CommandService, create_command_service


@lru_cache(maxsize=1)
def get_command_service() -> CommandService:
    """
    Create the command service from settings (cached singleton).

    Service factory handles all construction logic - deps.py is just thin DI glue.
    """
    return create_command_service(get_settings())


def get_model_registry() -> ModelRegistry:
    return get_command_service().models


def get_tool_registry() -> ToolRegistry:
    return get_command_service().tools


def get_guardrails() -> GuardrailPipeline:
    return get_command_service().guardrails
