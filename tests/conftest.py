# tests/conftest.py
"""
Shared fixtures:
- fake_repository: in-memory store, empty by default
- client: FastAPI TestClient with the repository dependency overridden
"""

import pytest
from fastapi.testclient import TestClient

from tests.factories import FakeOeeRepository


@pytest.fixture
def fake_repository() -> FakeOeeRepository:
    return FakeOeeRepository()


@pytest.fixture
def client(fake_repository):
    from machine_oee.api.v1.oee import get_repository
    from machine_oee.main import app

    app.dependency_overrides[get_repository] = lambda: fake_repository
    # No context manager: the lifespan would open a real database pool.
    yield TestClient(app)
    app.dependency_overrides.clear()
