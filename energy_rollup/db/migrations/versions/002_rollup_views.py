"""
Create hourly and daily rollup materialized views over energy_buckets.

- energy_hourly_buckets: 1-minute buckets summed per UTC-aligned hour.
- energy_daily_buckets: 1-minute buckets summed per local calendar day,
  using the TIMEZONE setting at migration time for midnight alignment.

Each view carries summed kWh and readings_count plus the first sample of
the earliest bucket and the last sample of the latest bucket in the
window. A unique index on bucket_start allows REFRESH ... CONCURRENTLY.

Revision ID: 002
Revises: 001
Create Date: 2026-10-04

CHANGELOG:
- 2026-10-04: Initial creation (STORY-022)

TODO:
- None
"""

from typing import Sequence, Union

from alembic import op

from energy_rollup.config import get_settings

# Revision identifiers used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_CHANNELS = ("home", "grid", "car", "solar")


def _rollup_select(window_start: str, window_end: str) -> str:
    """Build the SELECT that folds minute buckets into one window."""
    sums = ", ".join(f"SUM({c}_kwh) AS {c}_kwh" for c in _CHANNELS)
    firsts = ", ".join(
        f"(array_agg(first_{c} ORDER BY bucket_start))[1] AS first_{c}"
        for c in _CHANNELS
    )
    lasts = ", ".join(
        f"(array_agg(last_{c} ORDER BY bucket_start DESC))[1] AS last_{c}"
        for c in _CHANNELS
    )
    return (
        f"SELECT {window_start} AS bucket_start, "
        f"{window_end} AS bucket_end, "
        f"{sums}, "
        "SUM(readings_count)::bigint AS readings_count, "
        "MIN(first_timestamp) AS first_timestamp, "
        "MAX(last_timestamp) AS last_timestamp, "
        f"{firsts}, {lasts} "
        "FROM energy_buckets "
        f"GROUP BY {window_start}, {window_end}"
    )


def upgrade() -> None:
    """Create both rollup views and their unique indexes."""
    tz = get_settings().TIMEZONE.replace("'", "''")

    op.execute(
        "CREATE MATERIALIZED VIEW energy_hourly_buckets AS "
        + _rollup_select(
            "(bucket_start / 3600) * 3600",
            "(bucket_start / 3600) * 3600 + 3600",
        )
    )
    op.execute(
        "CREATE UNIQUE INDEX energy_hourly_buckets_bucket_start_idx "
        "ON energy_hourly_buckets (bucket_start)"
    )

    local_midnight = (
        f"date_trunc('day', to_timestamp(bucket_start) AT TIME ZONE '{tz}')"
    )
    op.execute(
        "CREATE MATERIALIZED VIEW energy_daily_buckets AS "
        + _rollup_select(
            f"EXTRACT(EPOCH FROM ({local_midnight}) AT TIME ZONE '{tz}')::bigint",
            f"EXTRACT(EPOCH FROM ({local_midnight} + INTERVAL '1 day') "
            f"AT TIME ZONE '{tz}')::bigint",
        )
    )
    op.execute(
        "CREATE UNIQUE INDEX energy_daily_buckets_bucket_start_idx "
        "ON energy_daily_buckets (bucket_start)"
    )


def downgrade() -> None:
    """Drop rollup views in reverse order."""
    op.execute("DROP MATERIALIZED VIEW IF EXISTS energy_daily_buckets CASCADE")
    op.execute("DROP MATERIALIZED VIEW IF EXISTS energy_hourly_buckets CASCADE")
