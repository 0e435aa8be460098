"""Command Center error taxonomy.

Guardrail blocks, unknown tools and tool failures are recovered inside the
Orchestrator and surface to callers as a CommandResult. Backend errors are
recovered when there is a message to show. UnknownModelIdentifier raised
from ``ModelRegistry.get_active()`` is the one failure that propagates.

Every error carries an ``ErrorCategory`` so the command trace and the logs
can group failures by kind.
"""

from __future__ import annotations

from .domain_type import ErrorCategory


class CommandCenterError(Exception):
    """Base error for the command center."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    @property
    def kind(self) -> str:
        return type(self).__name__


class GuardrailBlocked(CommandCenterError):
    """A guardrail policy refused the input or output text."""

    category = ErrorCategory.GUARDRAIL

    def __init__(self, policy: str, reason: str):
        super().__init__(f"Blocked by guardrail '{policy}': {reason}")
        self.policy = policy
        self.reason = reason


class UnknownTool(CommandCenterError):
    """The model requested a tool that isn't registered."""

    category = ErrorCategory.TOOL

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is not registered")
        self.name = name


class ToolExecutionFailed(CommandCenterError):
    """A tool handler raised, or could not be invoked."""

    category = ErrorCategory.TOOL

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class ToolArgumentsInvalid(ToolExecutionFailed):
    """Tool arguments failed schema validation before invocation."""

    category = ErrorCategory.VALIDATION


class ToolTimeout(ToolExecutionFailed):
    """Tool handler did not finish within the configured timeout."""

    category = ErrorCategory.TIMEOUT


class BackendError(CommandCenterError):
    """Model backend call failed."""

    category = ErrorCategory.EXTERNAL_SERVICE

    def __init__(self, model_id: str, message: str):
        super().__init__(message)
        self.model_id = model_id


class BackendUnavailable(BackendError):
    """Transport, auth or provider failure."""


class BackendTimeout(BackendError):
    """Backend did not answer within the configured timeout."""

    category = ErrorCategory.TIMEOUT


class BackendMalformedResponse(BackendError):
    """Backend answered with something that isn't a BackendResponse."""

    category = ErrorCategory.MALFORMED_RESPONSE


class UnknownModelIdentifier(CommandCenterError):
    """A model identifier doesn't resolve to a registered config."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, identifier: str):
        super().__init__(f"Model '{identifier}' is not registered")
        self.identifier = identifier


__all__ = [
    "BackendError",
    "BackendMalformedResponse",
    "BackendTimeout",
    "BackendUnavailable",
    "CommandCenterError",
    "GuardrailBlocked",
    "ToolArgumentsInvalid",
    "ToolExecutionFailed",
    "ToolTimeout",
    "UnknownModelIdentifier",
    "UnknownTool",
]
