"""Fixtures for driving the FastAPI app in-process."""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client():
    """FastAPI test client over a fresh command service."""
    from command_center.api.deps import get_command_service
    from command_center.main import app

    get_command_service.cache_clear()
    with TestClient(app) as test_client:
        yield test_client
    get_command_service.cache_clear()
