"""Create events and job_runs tables"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("source_link", sa.String(length=2048), nullable=False),
        sa.Column("title", sa.String(length=1024), nullable=False),
        sa.Column("clean_title", sa.String(length=1024), nullable=False),
        sa.Column("summary_en", sa.Text(), nullable=False),
        sa.Column("summary_hi", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=16), nullable=False),
        sa.Column("location_text", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("geocoded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("place_name", sa.String(length=512), nullable=True),
        sa.Column("priority_score", sa.Integer(), nullable=False),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("videos", sa.JSON(), nullable=False),
        sa.Column("raw_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("incident_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source", sa.String(length=100), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("priority_score BETWEEN 1 AND 5", name="ck_events_priority_range"),
        sa.CheckConstraint("latitude BETWEEN -90 AND 90", name="ck_events_latitude_range"),
        sa.CheckConstraint("longitude BETWEEN -180 AND 180", name="ck_events_longitude_range"),
    )
    op.create_index("uq_events_source_link", "events", ["source_link"], unique=True)
    op.create_index("ix_events_created_at", "events", ["created_at"], unique=False)
    op.create_index("ix_events_category", "events", ["category"], unique=False)
    op.create_index("ix_events_category_created", "events", ["category", "created_at"], unique=False)
    op.create_index("ix_events_coords", "events", ["latitude", "longitude"], unique=False)

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("stage", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("task_name", sa.String(length=100), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("items_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.String(length=512), nullable=True),
        sa.Column("trace_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_job_runs_stage_status", "job_runs", ["stage", "status"], unique=False)
    op.create_index("ix_job_runs_trace", "job_runs", ["trace_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_job_runs_trace", table_name="job_runs")
    op.drop_index("ix_job_runs_stage_status", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_index("ix_events_coords", table_name="events")
    op.drop_index("ix_events_category_created", table_name="events")
    op.drop_index("ix_events_category", table_name="events")
    op.drop_index("ix_events_created_at", table_name="events")
    op.drop_index("uq_events_source_link", table_name="events")
    op.drop_table("events")
