"""
Tests for ModelCatalog and ModelRegistry domain logic.

These tests demonstrate:
- Testing business logic (identifier resolution, active pointer fallback)
- Testing backend routing and error classification
- NOT testing enum validation (that's Pydantic's job)
- NOT testing frozen=True (that's Pydantic's job)
"""

import asyncio
from pathlib import Path

import pytest
from pydantic import ValidationError

from command_center.domain.backends import InferenceOptions
from command_center.domain.domain_type import ModelProvider
from command_center.domain.domain_value import BackendResponse
from command_center.domain.errors import (
    BackendMalformedResponse,
    BackendTimeout,
    BackendUnavailable,
    UnknownModelIdentifier,
)
from command_center.domain.model_catalog import ModelCatalog, ModelConfig, ModelRegistry

from ...support import ScriptedBackend


@pytest.fixture
def model_catalog() -> ModelCatalog:
    """Load the real model catalog from configuration."""
    catalog_path = Path(__file__).parents[3] / "src" / "command_center" / "domain" / "model_metadata.json"
    return ModelCatalog.from_json_file(catalog_path)


def test_model_catalog_loads_from_json(model_catalog: ModelCatalog):
    """The shipped catalog resolves its default and every alias."""
    assert model_catalog.find(model_catalog.default).id == "gemini-pro"
    assert model_catalog.find("claude").id == "claude-3-opus"
    assert model_catalog.find("gpt4o").provider == ModelProvider.OPENAI


def test_model_catalog_find_unknown_raises(model_catalog: ModelCatalog):
    with pytest.raises(UnknownModelIdentifier):
        model_catalog.find("no-such-model")


def test_model_catalog_rejects_duplicate_identifiers(tool_model: ModelConfig):
    """
    Demonstrates: Testing our validator's business rule.

    An alias that collides with another config's id would make lookups
    ambiguous, so the catalog refuses to load.
    """
    clash = ModelConfig(id="other", name="Other", provider=ModelProvider.OPENAI, api_id="other", aliases=("tool-model",))

    with pytest.raises(ValidationError, match="Duplicate model identifiers"):
        ModelCatalog(default="tool-model", models=(tool_model, clash))


def test_model_catalog_rejects_unknown_default(tool_model: ModelConfig):
    with pytest.raises(ValidationError, match="not in the catalog"):
        ModelCatalog(default="missing", models=(tool_model,))


def test_estimate_cost():
    config = ModelConfig(
        id="priced",
        name="Priced",
        provider=ModelProvider.OPENAI,
        api_id="priced",
        cost_per_1k_input=0.01,
        cost_per_1k_output=0.03,
    )

    assert config.estimate_cost(2000, 1000) == pytest.approx(0.05)


# =============================================================================
# Active pointer
# =============================================================================


class TestActivePointer:
    """Registry switching and fallback behavior."""

    def test_default_is_active_initially(self, models: ModelRegistry):
        assert models.active_id == "tool-model"
        assert models.get_active().id == "tool-model"

    def test_set_active_resolves_aliases(self, models: ModelRegistry):
        assert models.set_active("text-model") is True
        assert models.get_active().id == "text-model"

        assert models.set_active("tm") is True
        assert models.active_id == "tool-model"

    def test_set_active_unknown_keeps_previous(self, models: ModelRegistry):
        models.set_active("text-model")

        assert models.set_active("nope") is False
        assert models.get_active().id == "text-model"

    def test_get_active_falls_back_to_default(self, models: ModelRegistry):
        """Unregistering the active model leaves a dangling pointer; get_active recovers."""
        models.set_active("text-model")
        models.unregister("text-model")

        assert models.get_active().id == "tool-model"

    def test_get_active_raises_without_default(self, models: ModelRegistry):
        models.unregister("tool-model")
        models.unregister("text-model")

        with pytest.raises(UnknownModelIdentifier):
            models.get_active()

    def test_register_overwrites_by_id(self, models: ModelRegistry, tool_model: ModelConfig):
        models.register(tool_model.model_copy(update={"name": "Renamed", "aliases": ("renamed",)}))

        assert len(models) == 2
        assert models.get("renamed").name == "Renamed"
        assert "tm" not in models

    def test_from_catalog_ignores_unknown_default_override(self, model_catalog: ModelCatalog):
        registry = ModelRegistry.from_catalog(model_catalog, default_id="not-a-model")

        assert registry.default_id == "gemini-pro"

    def test_from_catalog_accepts_alias_override(self, model_catalog: ModelCatalog):
        registry = ModelRegistry.from_catalog(model_catalog, default_id="gpt4o")

        assert registry.default_id == "gpt-4o"
        assert registry.get_active().id == "gpt-4o"


# =============================================================================
# Backend routing
# =============================================================================


class TestCallBackend:
    """call_backend routes by provider and classifies failures."""

    @pytest.mark.asyncio
    async def test_routes_to_active_provider(self, models: ModelRegistry, backend: ScriptedBackend):
        backend.push(BackendResponse(text="hello"))

        response = await models.call_backend("hi")

        assert response.text == "hello"
        assert backend.calls[0].model.id == "tool-model"

    @pytest.mark.asyncio
    async def test_pinned_model_ignores_active_pointer(
        self, models: ModelRegistry, backend: ScriptedBackend, text_model: ModelConfig
    ):
        models.set_active("tool-model")

        await models.call_backend("hi", model=text_model)

        assert backend.calls[0].model.id == "text-model"
        assert models.active_id == "tool-model"

    @pytest.mark.asyncio
    async def test_missing_backend_is_unavailable(self, tool_model: ModelConfig):
        registry = ModelRegistry([tool_model], default_id="tool-model")

        with pytest.raises(BackendUnavailable):
            await registry.call_backend("hi")

    @pytest.mark.asyncio
    async def test_backend_exception_is_unavailable(self, models: ModelRegistry, backend: ScriptedBackend):
        backend.push(ConnectionError("refused"))

        with pytest.raises(BackendUnavailable, match="ConnectionError"):
            await models.call_backend("hi")

    @pytest.mark.asyncio
    async def test_empty_response_is_malformed(self, models: ModelRegistry, backend: ScriptedBackend):
        backend.push(BackendResponse())

        with pytest.raises(BackendMalformedResponse):
            await models.call_backend("hi")

    @pytest.mark.asyncio
    async def test_wrong_type_is_malformed(self, models: ModelRegistry, backend: ScriptedBackend):
        backend.push(lambda call: {"text": "not a BackendResponse"})

        with pytest.raises(BackendMalformedResponse):
            await models.call_backend("hi")

    @pytest.mark.asyncio
    async def test_slow_backend_times_out(self, tool_model: ModelConfig):
        class SlowBackend:
            async def invoke(self, prompt, tools, history, options, *, model):
                await asyncio.sleep(5)
                return BackendResponse(text="late")

        registry = ModelRegistry(
            [tool_model], default_id="tool-model", backends={ModelProvider.CUSTOM: SlowBackend()}
        )

        with pytest.raises(BackendTimeout):
            await registry.call_backend("hi", options=InferenceOptions(timeout_seconds=0.05))
