"""
Pytest fixtures for GrameenLink core tests.
"""

import pytest

from grameenlink.marketplace.applications import (
    Actor,
    ApplicationService,
    InMemoryApplicationStorage,
)
from grameenlink.marketplace.config import MarketplaceConfig


@pytest.fixture
def storage():
    """Create in-memory storage for testing."""
    return InMemoryApplicationStorage()


@pytest.fixture
def config():
    """Create test configuration."""
    return MarketplaceConfig(poll_interval_seconds=0.05, settle_delay_seconds=0.01)


@pytest.fixture
def service(storage, config):
    """Create application service with in-memory storage."""
    return ApplicationService(storage=storage, config=config)


@pytest.fixture
def employer():
    return Actor(id="employer-1", role="employer")


@pytest.fixture
def other_employer():
    return Actor(id="employer-2", role="employer")


@pytest.fixture
def worker():
    return Actor(id="worker-1", role="worker")


@pytest.fixture
def other_worker():
    return Actor(id="worker-2", role="worker")


@pytest.fixture
def job(service, employer):
    """An active single-worker job posted by ``employer``."""
    return service.create_job(
        employer_id=employer.id,
        title="Wheat harvest helper",
        category="agriculture",
        salary=450.0,
        company_name="Patel Farms",
        location={"village": "Rampur", "district": "Sitapur"},
    )


@pytest.fixture
def application(service, job, worker):
    """A pending application from ``worker`` to ``job``."""
    return service.submit(job.id, worker.id, notes="Available all week")
