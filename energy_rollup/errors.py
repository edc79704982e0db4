"""
Exception types raised by the rollup engine and query services.

CHANGELOG:
- 2026-10-07: Add CheckpointConflictError (STORY-023)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""


class EnergyRollupError(Exception):
    """Base class for errors raised by this service."""


class CheckpointConflictError(EnergyRollupError):
    """Another aggregation run claimed the checkpoint.

    Raised when a guarded checkpoint write affects no row because the
    stored generation no longer matches the one this run claimed. The
    run stops without advancing the checkpoint.
    """

    def __init__(self, job_id: int, expected_generation: int) -> None:
        super().__init__(
            f"Checkpoint {job_id} was claimed by another run "
            f"(expected generation {expected_generation})"
        )
        self.job_id = job_id
        self.expected_generation = expected_generation


class InvalidTimeframeError(EnergyRollupError, ValueError):
    """Unknown timeframe name or inconsistent explicit range."""
