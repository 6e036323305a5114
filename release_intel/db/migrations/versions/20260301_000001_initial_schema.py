"""Initial schema for Release Intel.

Revision ID: 0001
Revises:
Create Date: 2026-03-01

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create releases table
    op.create_table(
        "releases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("release_date", sa.Date(), nullable=False),
        sa.Column("manufacturer", sa.String(100), default="Unknown"),
        sa.Column("msrp", sa.Float(), nullable=False),
        sa.Column("estimated_resale", sa.Float(), nullable=True),
        sa.Column("hype_score", sa.Float(), nullable=True),
        sa.Column("image_url", sa.String(1000), nullable=True),
        sa.Column("top_chases_json", sa.Text(), default="[]"),
        sa.Column("print_run", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_released", sa.Boolean(), default=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_releases_name", "releases", ["name"])
    op.create_index("ix_releases_category", "releases", ["category"])
    op.create_index("ix_releases_created_at", "releases", ["created_at"])

    # Create release_products table
    op.create_table(
        "release_products",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("release_id", sa.String(36), sa.ForeignKey("releases.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("name_key", sa.String(255), nullable=False),
        sa.Column("product_type", sa.String(30), default="other"),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("msrp", sa.Float(), nullable=True),
        sa.Column("estimated_resale", sa.Float(), nullable=True),
        sa.Column("release_date", sa.Date(), nullable=True),
        sa.Column("preorder_date", sa.Date(), nullable=True),
        sa.Column("image_url", sa.String(1000), nullable=True),
        sa.Column("buy_url", sa.String(1000), nullable=True),
        sa.Column("contents_summary", sa.Text(), nullable=True),
        sa.Column("source_tier", sa.String(1), nullable=False),
        sa.Column("source_url", sa.String(1000), nullable=False),
        sa.Column("confidence", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("release_id", "name_key", name="uq_release_products_release_name"),
    )
    op.create_index("ix_release_products_release_id", "release_products", ["release_id"])
    op.create_index("ix_release_products_category", "release_products", ["category"])

    # Create release_product_changes table
    op.create_table(
        "release_product_changes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "release_product_id",
            sa.String(36),
            sa.ForeignKey("release_products.id"),
            nullable=False,
        ),
        sa.Column("field", sa.String(50), nullable=False),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("source_url", sa.String(1000), nullable=True),
        sa.Column("detected_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_release_product_changes_release_product_id",
        "release_product_changes",
        ["release_product_id"],
    )
    op.create_index(
        "ix_release_product_changes_detected_at", "release_product_changes", ["detected_at"]
    )

    # Create release_product_strategies table
    op.create_table(
        "release_product_strategies",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "release_product_id",
            sa.String(36),
            sa.ForeignKey("release_products.id"),
            nullable=False,
        ),
        sa.Column("primary", sa.String(20), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("reason_summary", sa.Text(), nullable=False),
        sa.Column("key_factors_json", sa.Text(), default="[]"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_release_product_strategies_release_product_id",
        "release_product_strategies",
        ["release_product_id"],
    )

    # Create pipeline_runs table
    op.create_table(
        "pipeline_runs",
        sa.Column("run_id", sa.String(64), primary_key=True),
        sa.Column("pipeline", sa.String(50), nullable=False),
        sa.Column("trigger", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("result_json", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
    )
    op.create_index("ix_pipeline_runs_pipeline", "pipeline_runs", ["pipeline"])
    op.create_index("ix_pipeline_runs_started_at", "pipeline_runs", ["started_at"])
    # At most one running row per pipeline
    op.create_index(
        "uq_pipeline_runs_running",
        "pipeline_runs",
        ["pipeline"],
        unique=True,
        sqlite_where=sa.text("status = 'running'"),
        postgresql_where=sa.text("status = 'running'"),
    )


def downgrade() -> None:
    op.drop_table("pipeline_runs")
    op.drop_table("release_product_strategies")
    op.drop_table("release_product_changes")
    op.drop_table("release_products")
    op.drop_table("releases")
