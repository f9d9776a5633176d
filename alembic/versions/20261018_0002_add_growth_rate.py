"""add growth_rate to traffic_snapshots and traffic_latest

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 15:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("traffic_snapshots") as batch_op:
        batch_op.add_column(
            sa.Column(
                "growth_rate",
                sa.Float(),
                nullable=True,
                comment="Signed month-over-month change, percent",
            )
        )
    with op.batch_alter_table("traffic_latest") as batch_op:
        batch_op.add_column(sa.Column("growth_rate", sa.Float(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("traffic_latest") as batch_op:
        batch_op.drop_column("growth_rate")
    with op.batch_alter_table("traffic_snapshots") as batch_op:
        batch_op.drop_column("growth_rate")
