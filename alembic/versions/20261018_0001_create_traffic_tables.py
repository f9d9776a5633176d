"""create traffic_snapshots, traffic_latest and usage_logs tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "traffic_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("month_year", sa.String(length=7), nullable=False),
        sa.Column("monthly_visits", sa.BigInteger(), nullable=True),
        sa.Column("avg_session_duration_seconds", sa.Integer(), nullable=True),
        sa.Column("bounce_rate", sa.Float(), nullable=True),
        sa.Column("pages_per_visit", sa.Float(), nullable=True),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(length=64), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_traffic_snapshots"),
        sa.UniqueConstraint("domain", "month_year", name="uq_traffic_snapshots_domain_month"),
    )
    op.create_index("ix_traffic_snapshots_domain", "traffic_snapshots", ["domain"], unique=False)
    op.create_index("ix_traffic_snapshots_month_year", "traffic_snapshots", ["month_year"], unique=False)
    op.create_index("ix_traffic_snapshots_checked_at", "traffic_snapshots", ["checked_at"], unique=False)

    op.create_table(
        "traffic_latest",
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("monthly_visits", sa.BigInteger(), nullable=True),
        sa.Column("avg_session_duration_seconds", sa.Integer(), nullable=True),
        sa.Column("bounce_rate", sa.Float(), nullable=True),
        sa.Column("pages_per_visit", sa.Float(), nullable=True),
        sa.Column("month_year", sa.String(length=7), nullable=False),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("domain", name="pk_traffic_latest"),
    )
    op.create_index("ix_traffic_latest_checked_at", "traffic_latest", ["checked_at"], unique=False)

    op.create_table(
        "usage_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_rows", sa.Integer(), nullable=False),
        sa.Column("total_errors", sa.Integer(), nullable=False),
        sa.Column("total_visits", sa.BigInteger(), nullable=False),
        sa.Column("cache_hits", sa.Integer(), nullable=False),
        sa.Column("cache_misses", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_usage_logs"),
        sa.UniqueConstraint("date", name="uq_usage_logs_date"),
    )


def downgrade() -> None:
    op.drop_table("usage_logs")
    op.drop_index("ix_traffic_latest_checked_at", table_name="traffic_latest")
    op.drop_table("traffic_latest")
    op.drop_index("ix_traffic_snapshots_checked_at", table_name="traffic_snapshots")
    op.drop_index("ix_traffic_snapshots_month_year", table_name="traffic_snapshots")
    op.drop_index("ix_traffic_snapshots_domain", table_name="traffic_snapshots")
    op.drop_table("traffic_snapshots")
