"""progress cache

Revision ID: 0001_progress_cache
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_progress_cache"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "progress_cache",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("namespace", sa.String(length=64), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("namespace", "key", name="uq_progress_cache_namespace_key"),
    )
    op.create_index(
        op.f("ix_progress_cache_namespace"), "progress_cache", ["namespace"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_progress_cache_namespace"), table_name="progress_cache")
    op.drop_table("progress_cache")
