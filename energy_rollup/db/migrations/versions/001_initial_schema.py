"""
Initial schema: raw readings, 1-minute buckets and the job checkpoint.

Creates energy_readings (append-only raw samples), energy_buckets (one
row per rolled-up minute, keyed by bucket_start) and
energy_bucket_aggregation_jobs (checkpoint rows of the aggregation job).

Revision ID: 001
Revises: None
Create Date: 2026-10-03

CHANGELOG:
- 2026-10-07: Add generation column to the checkpoint table (STORY-023)
- 2026-10-03: Initial creation (STORY-021)

TODO:
- None
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_CHANNELS = ("home", "grid", "car", "solar")


def upgrade() -> None:
    """Create readings, buckets and checkpoint tables.

    Steps:
        1. Create energy_readings with an index on timestamp.
        2. Create energy_buckets with bucket_start as primary key.
        3. Create energy_bucket_aggregation_jobs.
    """
    op.create_table(
        "energy_readings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        *(sa.Column(name, sa.Double(), nullable=False) for name in _CHANNELS),
        sa.Column("created_at", sa.BigInteger(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("energy_readings_timestamp_idx", "energy_readings", ["timestamp"])

    op.create_table(
        "energy_buckets",
        sa.Column("bucket_start", sa.BigInteger(), nullable=False),
        sa.Column("bucket_end", sa.BigInteger(), nullable=False),
        *(sa.Column(f"{name}_kwh", sa.Double(), nullable=False) for name in _CHANNELS),
        sa.Column("readings_count", sa.Integer(), nullable=False),
        sa.Column("first_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("last_timestamp", sa.BigInteger(), nullable=False),
        *(sa.Column(f"first_{name}", sa.Double(), nullable=False) for name in _CHANNELS),
        *(sa.Column(f"last_{name}", sa.Double(), nullable=False) for name in _CHANNELS),
        sa.PrimaryKeyConstraint("bucket_start"),
    )

    op.create_table(
        "energy_bucket_aggregation_jobs",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("last_processed_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("last_run_at", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("generation", sa.BigInteger(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Drop all tables created by this revision."""
    op.drop_table("energy_bucket_aggregation_jobs")
    op.drop_table("energy_buckets")
    op.drop_index("energy_readings_timestamp_idx", table_name="energy_readings")
    op.drop_table("energy_readings")
