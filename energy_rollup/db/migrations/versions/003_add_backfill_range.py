"""
Add the requested backfill range to the checkpoint table.

Adds nullable range_start and range_end to energy_bucket_aggregation_jobs.
The backfill row records the minute range it was started for, and a later
backfill only resumes from that row when it asks for the same range.

Revision ID: 003
Revises: 002
Create Date: 2026-10-16

CHANGELOG:
- 2026-10-16: Initial creation (STORY-026)

TODO:
- None
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add range_start and range_end (NULL on the live checkpoint row)."""
    op.add_column(
        "energy_bucket_aggregation_jobs",
        sa.Column("range_start", sa.BigInteger(), nullable=True),
    )
    op.add_column(
        "energy_bucket_aggregation_jobs",
        sa.Column("range_end", sa.BigInteger(), nullable=True),
    )


def downgrade() -> None:
    """Drop the backfill range columns."""
    op.drop_column("energy_bucket_aggregation_jobs", "range_end")
    op.drop_column("energy_bucket_aggregation_jobs", "range_start")
