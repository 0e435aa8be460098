"""Domain Type System - Core Enumerations.

Defines type-safe constants using Python's StrEnum for domain concepts.
Using StrEnum instead of plain Enum provides automatic string coercion
and better JSON serialization without custom encoders.
"""

from enum import StrEnum


class ModelProvider(StrEnum):
    """Model Backend Provider Labels.

    Each ModelConfig names the provider whose backend answers for it. The
    ModelRegistry binds one ModelBackend per provider, so adding a provider
    means adding a value here and registering a backend for it.

    The pydantic-ai adapter maps these onto its own model-string prefixes
    (see ``PydanticAIBackend``).
    """

    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"
    CUSTOM = "custom"


class TurnRole(StrEnum):
    """Who produced a Turn in the conversation log."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class GuardrailDirection(StrEnum):
    """Which side of the model call a guardrail policy inspects.

    INPUT policies run on the user's command before inference, OUTPUT
    policies on generated text before it is shown or stored. BOTH runs in
    either pipeline.
    """

    INPUT = "input"
    OUTPUT = "output"
    BOTH = "both"


class CommandState(StrEnum):
    """Orchestrator States.

    One command walks a subset of these in order:

        idle → input_filtering → context_assembly → model_inference
             → tool_dispatch | text_response → [follow_up_inference]
             → output_filtering → done
    """

    IDLE = "idle"
    INPUT_FILTERING = "input_filtering"
    CONTEXT_ASSEMBLY = "context_assembly"
    MODEL_INFERENCE = "model_inference"
    TOOL_DISPATCH = "tool_dispatch"
    TEXT_RESPONSE = "text_response"
    FOLLOW_UP_INFERENCE = "follow_up_inference"
    OUTPUT_FILTERING = "output_filtering"
    DONE = "done"


class CommandOutcome(StrEnum):
    """How a command finished, from the caller's point of view.

    Every outcome still carries a user-facing message; only a registry with
    no usable default model raises instead of returning one.
    """

    COMPLETED = "completed"
    TOOL_EXECUTED = "tool_executed"
    INPUT_BLOCKED = "input_blocked"
    OUTPUT_BLOCKED = "output_blocked"
    UNKNOWN_TOOL = "unknown_tool"
    TOOL_FAILED = "tool_failed"
    BACKEND_FAILED = "backend_failed"


class StepStatus(StrEnum):
    """Outcome of any state machine step."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ErrorCategory(StrEnum):
    """Classification of command errors for logging and the command trace."""

    GUARDRAIL = "guardrail"
    VALIDATION = "validation"
    TOOL = "tool"
    EXTERNAL_SERVICE = "external"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    CONFIGURATION = "configuration"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class SkipReason(StrEnum):
    """Standard reasons a state was skipped during a command."""

    INPUT_BLOCKED = "input_blocked"
    DIRECT_RESULT = "direct_result"
    NO_TOOL_CALL = "no_tool_call"
    UPSTREAM_FAILED = "upstream_failed"
    CUSTOM = "custom"


__all__ = [
    "CommandOutcome",
    "CommandState",
    "ErrorCategory",
    "GuardrailDirection",
    "ModelProvider",
    "SkipReason",
    "StepStatus",
    "TurnRole",
]
