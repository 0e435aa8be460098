"""Command Center package exports."""

from .config import Settings, settings
from .domain import Orchestrator
from .service import CommandService

__all__ = [
    "CommandService",
    "Orchestrator",
    "Settings",
    "settings",
]
