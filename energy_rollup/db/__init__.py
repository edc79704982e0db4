"""
Database package for SQLAlchemy models and session management.

CHANGELOG:
- 2026-10-05: Export factories only, singletons removed (STORY-022)
- 2026-10-03: Export EnergyReading, EnergyBucket, EnergyBucketAggregationJob (STORY-021)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

from energy_rollup.db.models import (
    Base,
    EnergyBucket,
    EnergyBucketAggregationJob,
    EnergyReading,
)
from energy_rollup.db.session import create_engine, create_session_factory

__all__ = [
    "Base",
    "EnergyBucket",
    "EnergyBucketAggregationJob",
    "EnergyReading",
    "create_engine",
    "create_session_factory",
]
