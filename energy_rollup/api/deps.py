"""
FastAPI dependency injection providers.

Resolves the process-wide service container and scheduler stored on
``app.state`` by the lifespan, for use with FastAPI's Depends() mechanism.
Tests override these with ``app.dependency_overrides``.

CHANGELOG:
- 2026-10-16: Add reading source dependency (STORY-026)
- 2026-10-06: Add scheduler dependency (STORY-022)
- 2026-10-05: Resolve collaborators from the service container (STORY-022)

TODO:
- None
"""

from typing import Annotated

from fastapi import Depends, Request

from energy_rollup.container import ServiceContainer
from energy_rollup.protocols import ReadingSource
from energy_rollup.scheduler import AggregationScheduler
from energy_rollup.services.energy_query import EnergyQueryService


def get_container(request: Request) -> ServiceContainer:
    """Return the container built at startup."""
    return request.app.state.container


def get_query_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> EnergyQueryService:
    """Return the energy query service."""
    return container.query


def get_reading_source(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ReadingSource:
    """Return the raw reading repository."""
    return container.readings


def get_scheduler(request: Request) -> AggregationScheduler:
    """Return the aggregation scheduler started at startup."""
    return request.app.state.scheduler


# Annotated dependencies for use in route signatures:
#   async def my_route(query: QueryService): ...
Container = Annotated[ServiceContainer, Depends(get_container)]
QueryService = Annotated[EnergyQueryService, Depends(get_query_service)]
Readings = Annotated[ReadingSource, Depends(get_reading_source)]
Scheduler = Annotated[AggregationScheduler, Depends(get_scheduler)]
