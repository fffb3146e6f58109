"""Pytest configuration and fixtures."""

import os

import pytest

# Unit tests run against in-memory storage unless integration tests are requested
if not os.environ.get("RUN_INTEGRATION"):
    os.environ.pop("SUPABASE_URL", None)
    os.environ.pop("SUPABASE_SECRET_KEY", None)

from app.database import get_service  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from grameenlink.marketplace.applications import (  # noqa: E402
    ApplicationService,
    InMemoryApplicationStorage,
)


@pytest.fixture
def service():
    """Fresh application service per test."""
    return ApplicationService(storage=InMemoryApplicationStorage())


@pytest.fixture
def client(service):
    """Create a test client wired to the per-test service."""
    app.dependency_overrides[get_service] = lambda: service
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_service, None)
        limiter.enabled = True


@pytest.fixture
def employer_headers():
    return {"X-Actor-Id": "employer-1", "X-Actor-Role": "employer"}


@pytest.fixture
def other_employer_headers():
    return {"X-Actor-Id": "employer-2", "X-Actor-Role": "employer"}


@pytest.fixture
def worker_headers():
    return {"X-Actor-Id": "worker-1", "X-Actor-Role": "worker"}


@pytest.fixture
def other_worker_headers():
    return {"X-Actor-Id": "worker-2", "X-Actor-Role": "worker"}


@pytest.fixture
def job_id(client, employer_headers):
    """An active job posted through the API."""
    response = client.post(
        "/api/v1/jobs",
        json={"title": "Paddy transplanting", "salary": 400, "company_name": "Singh Farms"},
        headers=employer_headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def application_id(client, job_id, worker_headers):
    """A pending application from worker-1."""
    response = client.post(
        "/api/v1/applications", json={"job_id": job_id}, headers=worker_headers
    )
    assert response.status_code == 201
    return response.json()["id"]
