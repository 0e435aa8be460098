"""API router exports"""

from .admin import router as admin_router
from .command import router as command_router
from .health import router as health_router

__all__ = ["admin_router", "command_router", "health_router"]
