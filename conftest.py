"""
Pytest configuration and fixtures shared by the test modules.

This module provides:
- A throwaway FastAPI app exposing the REST query dependency
- Settings override helpers
- Test client for the dependency tests
"""

from collections.abc import Generator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from rest_query.api.deps import RestQueryDep
from rest_query.core.config import Settings, get_settings


@pytest.fixture
def app() -> FastAPI:
    """App with a single ``/items`` route echoing the converted query."""
    test_app = FastAPI()

    @test_app.get("/items")
    def list_items(query: RestQueryDep) -> dict[str, Any]:
        return query.to_dict()

    return test_app


@pytest.fixture
def override_settings(app: FastAPI):
    """
    Replace the settings dependency for the duration of a test.

    Usage:
        def test_x(client, override_settings):
            override_settings(DEFAULT_LIMIT=10)
    """

    def _override(**values: Any) -> Settings:
        custom = Settings(**values)
        app.dependency_overrides[get_settings] = lambda: custom
        return custom

    yield _override
    app.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client
