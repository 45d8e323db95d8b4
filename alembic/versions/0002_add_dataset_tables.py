"""add fred_series and cbp_data tables

Revision ID: 0002_add_dataset_tables
Revises: 0001_create_sync_log
Create Date: 2026-10-17 09:30:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_add_dataset_tables"
down_revision = "0001_create_sync_log"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "fred_series",
        sa.Column("series_id", sa.String(length=30), nullable=False),
        sa.Column("obs_date", sa.Date(), nullable=False),
        sa.Column("value", sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint("series_id", "obs_date"),
    )

    op.create_table(
        "cbp_data",
        sa.Column("year", sa.SmallInteger(), nullable=False),
        sa.Column("fips_state", sa.String(length=2), nullable=False),
        sa.Column("fips_county", sa.String(length=3), nullable=False),
        sa.Column("naics", sa.String(length=6), nullable=False),
        sa.Column("emp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("emp_nf", sa.String(length=1), nullable=True),
        sa.Column("qp1", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("qp1_nf", sa.String(length=1), nullable=True),
        sa.Column("ap", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("ap_nf", sa.String(length=1), nullable=True),
        sa.Column("est", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("year", "fips_state", "fips_county", "naics"),
    )


def downgrade() -> None:
    op.drop_table("cbp_data")
    op.drop_table("fred_series")
