"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "regulatory_updates",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("source_id", sa.String(100), nullable=False),
        sa.Column("fingerprint", sa.String(64), nullable=False),
        sa.Column("title", sa.String(1000), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("url", sa.String(2000), server_default=""),
        sa.Column("source_name", sa.String(200), nullable=False),
        sa.Column("authority", sa.String(100), nullable=False),
        sa.Column("region", sa.String(100), nullable=False),
        sa.Column("update_type", sa.String(50), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False),
        sa.Column("categories", postgresql.JSONB, nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ingested_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.UniqueConstraint("source_id", "fingerprint", name="uq_regulatory_updates_source_fingerprint"),
    )
    op.create_index("ix_regulatory_updates_source_id", "regulatory_updates", ["source_id"])
    op.create_index("ix_regulatory_updates_priority", "regulatory_updates", ["priority"])
    op.create_index("ix_regulatory_updates_published_at", "regulatory_updates", ["published_at"])

    op.create_table(
        "ingestion_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), server_default="running"),
        sa.Column("trigger", sa.String(50), server_default="full"),
        sa.Column("config_hash", sa.String(64), nullable=True),
        sa.Column("duration_seconds", sa.Float, nullable=True),
        sa.Column("sources_processed", sa.Integer, server_default="0"),
        sa.Column("sources_failed", sa.Integer, server_default="0"),
        sa.Column("articles_extracted", sa.Integer, server_default="0"),
        sa.Column("duplicates_skipped", sa.Integer, server_default="0"),
        sa.Column("errors", sa.Integer, server_default="0"),
        sa.Column("error_message", sa.Text, nullable=True),
    )
    op.create_index("ix_ingestion_runs_started_at", "ingestion_runs", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_ingestion_runs_started_at", table_name="ingestion_runs")
    op.drop_table("ingestion_runs")
    op.drop_index("ix_regulatory_updates_published_at", table_name="regulatory_updates")
    op.drop_index("ix_regulatory_updates_priority", table_name="regulatory_updates")
    op.drop_index("ix_regulatory_updates_source_id", table_name="regulatory_updates")
    op.drop_table("regulatory_updates")
