"""
Shared test fixtures for the rollup service tests.

Provides required environment variables and a TestClient whose container,
query service, reading source and scheduler dependencies are backed by
in-memory fakes.
The lifespan is not run, so no database or Redis connection is opened.

CHANGELOG:
- 2026-10-16: Override the reading source dependency (STORY-026)
- 2026-10-05: Fake-backed container and query service fixtures (STORY-022)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

from collections.abc import Iterator
from datetime import UTC
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from energy_rollup.api.deps import (
    get_container,
    get_query_service,
    get_reading_source,
    get_scheduler,
)
from energy_rollup.main import app
from energy_rollup.scheduler import AggregationScheduler
from energy_rollup.services.aggregation_job import EnergyAggregationJob
from energy_rollup.services.energy_query import EnergyQueryService
from tests.fakes import FakeBucketStore, FakeCache, FakeCheckpointStore, FakeReadingSource

NOW = 1_767_225_600 + 5400  # 2026-01-01T01:30:00Z


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure required env vars are set for every test."""
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@localhost/db")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.delenv("TIMEZONE", raising=False)


@pytest.fixture()
def readings() -> FakeReadingSource:
    return FakeReadingSource()


@pytest.fixture()
def buckets(readings: FakeReadingSource) -> FakeBucketStore:
    return FakeBucketStore(readings)


@pytest.fixture()
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture()
def query_service(
    readings: FakeReadingSource, buckets: FakeBucketStore, cache: FakeCache,
) -> EnergyQueryService:
    return EnergyQueryService(readings, buckets, cache, UTC, clock=lambda: NOW)


@pytest.fixture()
def job(
    readings: FakeReadingSource, buckets: FakeBucketStore, cache: FakeCache,
) -> EnergyAggregationJob:
    return EnergyAggregationJob(
        readings, buckets, FakeCheckpointStore(), cache, clock=lambda: NOW,
    )


@pytest.fixture()
def container() -> MagicMock:
    """Stand-in for ServiceContainer with UTC settings."""
    container = MagicMock()
    container.settings.tz = UTC
    return container


@pytest.fixture()
def client(
    readings: FakeReadingSource,
    query_service: EnergyQueryService,
    job: EnergyAggregationJob,
    container: MagicMock,
) -> Iterator[TestClient]:
    """TestClient with container, query service and scheduler overridden.

    Yields:
        TestClient: Configured test client with dependency overrides.
    """
    scheduler = AggregationScheduler(job, interval_s=60)
    app.dependency_overrides[get_container] = lambda: container
    app.dependency_overrides[get_query_service] = lambda: query_service
    app.dependency_overrides[get_reading_source] = lambda: readings
    app.dependency_overrides[get_scheduler] = lambda: scheduler

    yield TestClient(app)

    app.dependency_overrides.clear()
