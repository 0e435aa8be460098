"""Domain Layer - The Command Orchestration Engine.

Key Components:
    - ModelRegistry: Model catalog, active pointer and provider backends
    - ToolRegistry: Dynamic catalog of model-callable tools
    - GuardrailPipeline: Toggleable input/output content policies
    - ContextualMemory: Bounded turn window plus context assembly
    - Orchestrator: The state machine composing all of the above
    - CommandTrace: Immutable record of each command's steps

Design Principles:
    - Explicit Dependencies: registries and memory are constructed objects
      passed to the Orchestrator, never module-level singletons
    - Immutable Values: turns, configs and traces are frozen Pydantic models
    - Capabilities at the Seams: backends and tool handlers are protocols
"""

from .backends import EchoBackend, InferenceOptions, ModelBackend, PydanticAIBackend
from .builtin_tools import build_builtin_tools, register_builtin_tools
from .command_trace import CommandTrace, CompletedStep, FailedStep, SkippedStep
from .domain_type import (
    CommandOutcome,
    CommandState,
    ErrorCategory,
    GuardrailDirection,
    ModelProvider,
    SkipReason,
    StepStatus,
    TurnRole,
)
from .domain_value import BackendResponse, FunctionCall, SessionId, ToolResponse, Turn, TurnId
from .errors import (
    BackendError,
    BackendMalformedResponse,
    BackendTimeout,
    BackendUnavailable,
    CommandCenterError,
    GuardrailBlocked,
    ToolArgumentsInvalid,
    ToolExecutionFailed,
    ToolTimeout,
    UnknownModelIdentifier,
    UnknownTool,
)
from .guardrails import GuardrailPipeline, GuardrailPolicy, GuardrailResult, GuardrailVerdict, default_policies
from .knowledge import FeatureTaxonomy, KeywordRetriever, KnowledgeDocument, KnowledgeRetriever, NoRetrieval
from .memory import ContextualMemory
from .model_catalog import ModelCatalog, ModelConfig, ModelRegistry
from .orchestrator import CommandResult, Orchestrator, OrchestratorSettings
from .tools import FunctionHandler, Tool, ToolDeclaration, ToolHandler, ToolRegistry, function_tool

__all__ = [
    "BackendError",
    "BackendMalformedResponse",
    "BackendResponse",
    "BackendTimeout",
    "BackendUnavailable",
    "CommandCenterError",
    "CommandOutcome",
    "CommandResult",
    "CommandState",
    "CommandTrace",
    "CompletedStep",
    "ContextualMemory",
    "EchoBackend",
    "ErrorCategory",
    "FailedStep",
    "FeatureTaxonomy",
    "FunctionCall",
    "FunctionHandler",
    "GuardrailBlocked",
    "GuardrailDirection",
    "GuardrailPipeline",
    "GuardrailPolicy",
    "GuardrailResult",
    "GuardrailVerdict",
    "InferenceOptions",
    "KeywordRetriever",
    "KnowledgeDocument",
    "KnowledgeRetriever",
    "ModelBackend",
    "ModelCatalog",
    "ModelConfig",
    "ModelProvider",
    "ModelRegistry",
    "NoRetrieval",
    "Orchestrator",
    "OrchestratorSettings",
    "PydanticAIBackend",
    "SessionId",
    "SkipReason",
    "SkippedStep",
    "StepStatus",
    "Tool",
    "ToolArgumentsInvalid",
    "ToolDeclaration",
    "ToolExecutionFailed",
    "ToolHandler",
    "ToolRegistry",
    "ToolResponse",
    "ToolTimeout",
    "Turn",
    "TurnId",
    "TurnRole",
    "UnknownModelIdentifier",
    "UnknownTool",
    "build_builtin_tools",
    "default_policies",
    "function_tool",
    "register_builtin_tools",
]
