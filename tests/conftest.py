"""
Shared test fixtures and configuration.

Environment strategy:
- Unit and integration tests both use .env.test (echo backend, no provider
  keys, no network). Integration tests drive the FastAPI app in-process.
"""

import sys
from pathlib import Path

import pytest
from dotenv import load_dotenv

ENV_FILE = Path(__file__).parent.parent / ".env.test"

load_dotenv(ENV_FILE, override=True)

from command_center.domain.builtin_tools import build_builtin_tools, register_builtin_tools
from command_center.domain.domain_type import ModelProvider
from command_center.domain.guardrails import GuardrailPipeline, default_policies
from command_center.domain.knowledge import Feature, FeatureTaxonomy
from command_center.domain.memory import ContextualMemory
from command_center.domain.model_catalog import ModelConfig, ModelRegistry
from command_center.domain.orchestrator import Orchestrator, OrchestratorSettings
from command_center.domain.tools import ToolRegistry

from .support import FIXED_NOW, ScriptedBackend


@pytest.fixture
def tool_model() -> ModelConfig:
    return ModelConfig(
        id="tool-model",
        name="Tool Model",
        provider=ModelProvider.CUSTOM,
        api_id="test:tool-model",
        supports_tools=True,
        aliases=("tm",),
    )


@pytest.fixture
def text_model() -> ModelConfig:
    return ModelConfig(
        id="text-model",
        name="Text Model",
        provider=ModelProvider.LOCAL,
        api_id="text-model",
        supports_tools=False,
    )


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def models(tool_model: ModelConfig, text_model: ModelConfig, backend: ScriptedBackend) -> ModelRegistry:
    return ModelRegistry(
        [tool_model, text_model],
        default_id="tool-model",
        backends={ModelProvider.CUSTOM: backend, ModelProvider.LOCAL: backend},
    )


@pytest.fixture
def taxonomy() -> FeatureTaxonomy:
    return FeatureTaxonomy(
        features=(
            Feature(
                id="ai-code-explainer",
                name="AI Code Explainer",
                description="Explains a code snippet.",
                inputs="A code snippet (initialCode).",
                category="AI Tools",
            ),
            Feature(
                id="regex-sandbox",
                name="Regex Sandbox",
                description="Tests regular expressions against sample text.",
                category="Developer Tools",
            ),
        )
    )


@pytest.fixture
def guardrails() -> GuardrailPipeline:
    return GuardrailPipeline(default_policies())


@pytest.fixture
def tools(models: ModelRegistry, guardrails: GuardrailPipeline, taxonomy: FeatureTaxonomy) -> ToolRegistry:
    """Tool registry holding the built-in catalog with a fixed clock."""
    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        build_builtin_tools(
            models=models,
            tools=registry,
            guardrails=guardrails,
            taxonomy=taxonomy,
            clock=lambda: FIXED_NOW,
        ),
    )
    return registry


@pytest.fixture
def memory(taxonomy: FeatureTaxonomy) -> ContextualMemory:
    return ContextualMemory(20, taxonomy=taxonomy)


@pytest.fixture
def orchestrator(
    models: ModelRegistry,
    tools: ToolRegistry,
    guardrails: GuardrailPipeline,
    memory: ContextualMemory,
) -> Orchestrator:
    return Orchestrator(models, tools, guardrails, memory, OrchestratorSettings())


@pytest.fixture(autouse=True)
def _quiet_logs():
    """Keep loguru output at WARNING and above during tests."""
    from loguru import logger

    logger.remove()
    logger.add(sys.stderr, level="WARNING")
    yield
    logger.remove()
