"""Service layer - session management over the shared engine components."""

from .session import CommandService, create_command_service

__all__ = ["CommandService", "create_command_service"]
