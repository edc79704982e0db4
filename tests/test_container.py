"""
Tests for ServiceContainer wiring (STORY-022).

CHANGELOG:
- 2026-10-09: Concurrency passed through to the job (STORY-024)
- 2026-10-05: Initial creation (STORY-022)

TODO:
- None
"""

from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest

from energy_rollup.config import Settings
from energy_rollup.container import ServiceContainer


@pytest.fixture()
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("TIMEZONE", "Europe/Brussels")
    monkeypatch.setenv("CACHE_TTL_S", "90")
    monkeypatch.setenv("AGGREGATION_MAX_CONCURRENCY", "3")
    monkeypatch.setenv("AGGREGATION_JOB_ENABLED", "false")
    return Settings()


@patch("energy_rollup.container.create_redis")
@patch("energy_rollup.container.create_session_factory")
@patch("energy_rollup.container.create_engine")
def test_from_settings_wires_collaborators(
    create_engine: MagicMock,
    create_session_factory: MagicMock,
    create_redis: MagicMock,
    settings: Settings,
) -> None:
    container = ServiceContainer.from_settings(settings)

    create_engine.assert_called_once_with(settings)
    create_session_factory.assert_called_once_with(create_engine.return_value)
    create_redis.assert_called_once_with(settings)

    assert container.engine is create_engine.return_value
    assert container.cache._client is create_redis.return_value
    assert container.cache._default_ttl == 90
    assert container.query._cache_ttl == 90
    assert container.query._tz == ZoneInfo("Europe/Brussels")
    assert container.query._readings is container.readings
    assert container.job._buckets is container.buckets
    assert container.job._checkpoints is container.checkpoints
    assert container.job._max_concurrency == 3
    assert container.job._enabled is False


@pytest.mark.asyncio()
async def test_close_disposes_engine_even_if_redis_close_fails(settings: Settings) -> None:
    cache = MagicMock()
    cache.close = AsyncMock(side_effect=ConnectionError("gone"))
    engine = MagicMock()
    engine.dispose = AsyncMock()
    container = ServiceContainer(
        settings=settings,
        engine=engine,
        session_factory=MagicMock(),
        cache=cache,
        readings=MagicMock(),
        buckets=MagicMock(),
        checkpoints=MagicMock(),
        query=MagicMock(),
        job=MagicMock(),
    )

    await container.close()

    cache.close.assert_awaited_once()
    engine.dispose.assert_awaited_once()
