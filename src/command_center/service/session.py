"""Session Service - One Engine, Many Conversations.

Owns the process-wide shared state (model registry, tool registry,
guardrail pipeline) and one Orchestrator + ContextualMemory per session.

Concurrency:
    Commands within one session are serialized by a per-session
    asyncio.Lock, so a session's memory only ever sees one command at a
    time. Different sessions run concurrently.

Sessions live in memory only. Past ``max_sessions`` the least recently
used idle session is evicted when a new one opens.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Callable
from pathlib import Path
from uuid import UUID

from loguru import logger

from ..config import Settings
from ..domain.backends import EchoBackend, ModelBackend, PydanticAIBackend
from ..domain.builtin_tools import build_builtin_tools, register_builtin_tools
from ..domain.domain_type import ModelProvider
from ..domain.domain_value import SessionId, Turn
from ..domain.guardrails import GuardrailPipeline, default_policies
from ..domain.knowledge import FeatureTaxonomy, KeywordRetriever, KnowledgeDocument, KnowledgeRetriever
from ..domain.memory import ContextualMemory
from ..domain.model_catalog import ModelCatalog, ModelRegistry
from ..domain.orchestrator import CommandResult, Orchestrator, OrchestratorSettings
from ..domain.tools import ToolRegistry


class _Session:
    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator
        self.lock = asyncio.Lock()


class CommandService:
    """
    Session manager over shared registries.

    Service responsibilities:
    1. Own the shared ModelRegistry, ToolRegistry and GuardrailPipeline
    2. Create a ContextualMemory + Orchestrator per session on first use
    3. Serialize commands within a session
    4. Evict least recently used sessions past ``max_sessions``
    """

    def __init__(
        self,
        models: ModelRegistry,
        tools: ToolRegistry,
        guardrails: GuardrailPipeline,
        *,
        taxonomy: FeatureTaxonomy | None = None,
        retriever: KnowledgeRetriever | None = None,
        orchestrator_settings: OrchestratorSettings | None = None,
        memory_max_turns: int = 20,
        retrieval_history_turns: int = 6,
        max_sessions: int = 1000,
    ):
        if max_sessions < 1:
            raise ValueError(f"max_sessions must be at least 1, got {max_sessions}")
        self.models = models
        self.tools = tools
        self.guardrails = guardrails
        self.taxonomy = taxonomy or FeatureTaxonomy()
        self.retriever = retriever
        self.orchestrator_settings = orchestrator_settings or OrchestratorSettings()
        self.memory_max_turns = memory_max_turns
        self.retrieval_history_turns = retrieval_history_turns
        self.max_sessions = max_sessions
        # Least recently used first
        self._sessions: OrderedDict[UUID, _Session] = OrderedDict()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _new_memory(self) -> ContextualMemory:
        return ContextualMemory(
            self.memory_max_turns,
            taxonomy=self.taxonomy,
            retriever=self.retriever,
            retrieval_history_turns=self.retrieval_history_turns,
        )

    def open_session(self, session_id: UUID | None = None) -> UUID:
        """Return ``session_id`` (or a new id), creating its session if needed."""
        session_id = session_id or SessionId().root
        if session_id in self._sessions:
            self._sessions.move_to_end(session_id)
        else:
            self._evict_idle()
            orchestrator = Orchestrator(
                self.models,
                self.tools,
                self.guardrails,
                self._new_memory(),
                self.orchestrator_settings,
            )
            self._sessions[session_id] = _Session(orchestrator)
            logger.info("Opened session {}", session_id)
        return session_id

    def _evict_idle(self) -> None:
        """Drop least recently used sessions until there is room for one more.

        Sessions with a command in flight are never evicted; if every session
        is busy the cap is exceeded until one finishes.
        """
        for session_id in list(self._sessions):
            if len(self._sessions) < self.max_sessions:
                return
            if self._sessions[session_id].lock.locked():
                continue
            del self._sessions[session_id]
            logger.info("Evicted idle session {} (limit {})", session_id, self.max_sessions)
        if len(self._sessions) >= self.max_sessions:
            logger.warning("All {} sessions are busy, exceeding the session limit", len(self._sessions))

    def close_session(self, session_id: UUID) -> bool:
        if self._sessions.pop(session_id, None) is None:
            return False
        logger.info("Closed session {}", session_id)
        return True

    def has_session(self, session_id: UUID) -> bool:
        return session_id in self._sessions

    def history(self, session_id: UUID) -> tuple[Turn, ...] | None:
        session = self._sessions.get(session_id)
        return session.orchestrator.memory.get_history() if session else None

    def memory(self, session_id: UUID) -> ContextualMemory | None:
        session = self._sessions.get(session_id)
        return session.orchestrator.memory if session else None

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def run_command(self, text: str, session_id: UUID | None = None) -> tuple[UUID, CommandResult]:
        """Run one command in a session, opening the session if needed.

        Returns:
            The session id and the command's result
        """
        session_id = self.open_session(session_id)
        session = self._sessions[session_id]
        async with session.lock:
            result = await session.orchestrator.process_command(text)
        return session_id, result


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def build_backends(kind: str) -> dict[ModelProvider, ModelBackend]:
    """One backend instance bound to every provider."""
    backend: ModelBackend = PydanticAIBackend() if kind == "pydantic_ai" else EchoBackend()
    return {provider: backend for provider in ModelProvider}


def taxonomy_documents(taxonomy: FeatureTaxonomy) -> list[KnowledgeDocument]:
    return [
        KnowledgeDocument(
            id=feature.id,
            content=f"{feature.name}: {feature.description} Inputs: {feature.inputs}",
            source="feature catalog",
            metadata={"category": feature.category},
        )
        for feature in taxonomy.features
    ]


def create_command_service(
    settings: Settings,
    *,
    backends: dict[ModelProvider, ModelBackend] | None = None,
    clock: Callable | None = None,
) -> CommandService:
    """
    Factory function for creating CommandService from settings.

    Service owns its own construction logic - deps.py just calls this.

    Args:
        settings: Application settings
        backends: Backend per provider; built from ``settings.model_backend`` when omitted
        clock: Time source for the getTime tool

    Returns:
        CommandService with the built-in tools registered
    """
    catalog = ModelCatalog.from_json_file(Path(settings.model_catalog_path))
    models = ModelRegistry.from_catalog(
        catalog,
        default_id=settings.default_model_id,
        backends=backends or build_backends(settings.model_backend),
    )

    taxonomy_path = Path(settings.feature_taxonomy_path)
    if taxonomy_path.exists():
        taxonomy = FeatureTaxonomy.from_json_file(taxonomy_path)
    else:
        logger.warning("Feature taxonomy not found at {}, starting without one", taxonomy_path)
        taxonomy = FeatureTaxonomy()

    guardrails = GuardrailPipeline(default_policies(), enabled=settings.guardrail_flags)
    tools = ToolRegistry()
    retriever = KeywordRetriever(taxonomy_documents(taxonomy))

    service = CommandService(
        models,
        tools,
        guardrails,
        taxonomy=taxonomy,
        retriever=retriever,
        orchestrator_settings=OrchestratorSettings(
            model_timeout_seconds=settings.model_timeout_seconds,
            tool_timeout_seconds=settings.tool_timeout_seconds,
            temperature=settings.model_temperature,
            follow_up_temperature=settings.follow_up_temperature,
            record_blocked_attempts=settings.record_blocked_attempts,
        ),
        memory_max_turns=settings.memory_max_turns,
        retrieval_history_turns=settings.retrieval_history_turns,
        max_sessions=settings.max_sessions,
    )

    catalog_tools = build_builtin_tools(
        models=models,
        tools=tools,
        guardrails=guardrails,
        taxonomy=taxonomy,
        retriever=retriever,
        tavily_api_key=settings.tavily_api_key,
        clock=clock,
        status_extras=lambda: {"activeSessions": service.session_count},
    )
    registered = register_builtin_tools(tools, catalog_tools)
    logger.info(
        "Command service ready: {} models (active: {}), {} tools, backend: {}",
        len(models),
        models.active_id,
        registered,
        settings.model_backend,
    )
    return service


__all__ = ["CommandService", "build_backends", "create_command_service", "taxonomy_documents"]
