"""
SQLAlchemy-backed implementations of the reading, bucket and checkpoint stores.

CHANGELOG:
- 2026-10-07: Export CheckpointRepository (STORY-023)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""

from energy_rollup.repositories.buckets import BucketRepository
from energy_rollup.repositories.checkpoints import CheckpointRepository
from energy_rollup.repositories.readings import ReadingRepository

__all__ = ["BucketRepository", "CheckpointRepository", "ReadingRepository"]
