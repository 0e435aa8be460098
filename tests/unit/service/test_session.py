"""
Tests for the CommandService session layer.

Demonstrates:
- Per-session memory over shared registries
- Serialized commands within a session, concurrent across sessions
- The settings-driven factory wiring the built-in catalog
"""

import asyncio
from uuid import uuid4

import pytest

from command_center.config import Settings
from command_center.domain.domain_type import CommandOutcome, ModelProvider, TurnRole
from command_center.domain.domain_value import BackendResponse
from command_center.domain.guardrails import GuardrailPipeline
from command_center.domain.knowledge import KeywordRetriever
from command_center.domain.model_catalog import ModelRegistry
from command_center.domain.tools import ToolRegistry
from command_center.service import CommandService, create_command_service
from command_center.service.session import build_backends, taxonomy_documents

from ...support import FIXED_NOW, ScriptedBackend, calls, text


@pytest.fixture
def service(models: ModelRegistry, tools: ToolRegistry, guardrails: GuardrailPipeline, taxonomy) -> CommandService:
    return CommandService(models, tools, guardrails, taxonomy=taxonomy, memory_max_turns=4)


@pytest.fixture
def settings() -> Settings:
    return Settings(MODEL_BACKEND="echo", TAVILY_API_KEY=None, GUARDRAIL_PII_DETECTION=False)


def test_open_session_is_idempotent(service: CommandService):
    session_id = service.open_session()

    assert service.open_session(session_id) == session_id
    assert service.session_count == 1
    assert service.history(session_id) == ()


def test_open_session_with_client_supplied_id(service: CommandService):
    session_id = uuid4()

    assert service.open_session(session_id) == session_id
    assert service.has_session(session_id)


def test_close_session(service: CommandService):
    session_id = service.open_session()

    assert service.close_session(session_id) is True
    assert service.close_session(session_id) is False
    assert service.history(session_id) is None
    assert service.memory(session_id) is None


def test_least_recently_used_session_is_evicted(models, tools, guardrails):
    """
    Demonstrates: The session map is bounded.

    Opening past the limit drops the session touched longest ago; reusing a
    session counts as touching it.
    """
    service = CommandService(models, tools, guardrails, max_sessions=2)
    first = service.open_session()
    second = service.open_session()
    service.open_session(first)

    third = service.open_session()

    assert service.session_count == 2
    assert service.has_session(first)
    assert service.has_session(third)
    assert not service.has_session(second)


@pytest.mark.asyncio
async def test_busy_session_is_never_evicted(models, tools, guardrails, backend: ScriptedBackend):
    release = asyncio.Event()
    started = asyncio.Event()

    class BlockingBackend:
        async def invoke(self, prompt, tools, history, options, *, model):
            started.set()
            await release.wait()
            return BackendResponse(text="finished")

    models.register_backend(ModelProvider.CUSTOM, BlockingBackend())
    service = CommandService(models, tools, guardrails, max_sessions=1)
    busy = service.open_session()
    running = asyncio.create_task(service.run_command("slow", busy))
    await started.wait()

    other = service.open_session()

    assert service.has_session(busy)
    assert service.has_session(other)
    release.set()
    _, result = await running
    assert result.text == "finished"

    service.open_session()
    assert service.session_count == 1


def test_max_sessions_must_be_positive(models, tools, guardrails):
    with pytest.raises(ValueError, match="max_sessions"):
        CommandService(models, tools, guardrails, max_sessions=0)


@pytest.mark.asyncio
async def test_sessions_have_separate_memory(service: CommandService, backend: ScriptedBackend):
    backend.push(text("one"), text("two"))

    first, _ = await service.run_command("hello")
    second, _ = await service.run_command("hello again")

    assert first != second
    assert [t.content for t in service.history(first)] == ["hello", "one"]
    assert [t.content for t in service.history(second)] == ["hello again", "two"]


@pytest.mark.asyncio
async def test_session_memory_window_comes_from_service(service: CommandService, backend: ScriptedBackend):
    session_id = service.open_session()
    for _ in range(3):
        await service.run_command("ping", session_id)

    assert len(service.history(session_id)) == 4


@pytest.mark.asyncio
async def test_registries_are_shared_between_sessions(service: CommandService, backend: ScriptedBackend):
    backend.push(calls("setAiModel", modelId="text-model"), text("Switched."), text("hi"))

    await service.run_command("use the text model")
    _, result = await service.run_command("hello")

    assert result.model_id == "text-model"


@pytest.mark.asyncio
async def test_commands_in_one_session_are_serialized(
    models: ModelRegistry, tools: ToolRegistry, guardrails: GuardrailPipeline
):
    active = 0
    peak = 0

    class CountingBackend:
        async def invoke(self, prompt, tools, history, options, *, model):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return BackendResponse(text="done")

    models.register_backend(ModelProvider.CUSTOM, CountingBackend())
    service = CommandService(models, tools, guardrails)
    session_id = service.open_session()

    await asyncio.gather(*(service.run_command(f"job {i}", session_id) for i in range(3)))

    assert peak == 1
    roles = [t.role for t in service.history(session_id)]
    assert roles == [TurnRole.USER, TurnRole.ASSISTANT] * 3


# =============================================================================
# Factory
# =============================================================================


def test_build_backends_binds_every_provider():
    backends = build_backends("echo")

    assert set(backends) == set(ModelProvider)
    assert len({id(b) for b in backends.values()}) == 1


def test_taxonomy_documents(taxonomy):
    documents = taxonomy_documents(taxonomy)

    assert [d.id for d in documents] == ["ai-code-explainer", "regex-sandbox"]
    assert documents[0].source == "feature catalog"


def test_create_command_service_from_settings(settings: Settings):
    service = create_command_service(settings)

    assert service.models.active_id == "gemini-pro"
    assert "navigateTo" in service.tools
    assert "searchKnowledgeBase" in service.tools
    assert "webSearch" not in service.tools
    assert service.guardrails.get_policy_state("pii_detection") is False


@pytest.mark.asyncio
async def test_session_context_retrieves_from_feature_catalog(settings: Settings):
    service = create_command_service(settings)
    session_id = service.open_session()

    context = await service.memory(session_id).assemble_context("explain this code snippet")

    assert isinstance(service.retriever, KeywordRetriever)
    assert "Relevant knowledge:" in context


def test_create_command_service_with_tavily_key():
    service = create_command_service(Settings(TAVILY_API_KEY="tvly-test"))

    assert "webSearch" in service.tools


@pytest.mark.asyncio
async def test_echo_service_runs_tools_end_to_end(settings: Settings):
    service = create_command_service(settings, clock=lambda: FIXED_NOW)

    _, result = await service.run_command('!getTime {"timezone": "UTC"}')

    assert result.outcome == CommandOutcome.TOOL_EXECUTED
    assert result.tool_result == "14:30"


@pytest.mark.asyncio
async def test_system_status_reports_sessions(settings: Settings):
    service = create_command_service(settings)
    service.open_session()

    _, result = await service.run_command("!getSystemStatus {}")

    assert result.tool_result["status"]["activeSessions"] == 2
