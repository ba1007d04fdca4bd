"""batch jobs and runs

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 00:00:02
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_0002"
down_revision: str | None = "20261018_0001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "batch_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("document_ids_json", sa.JSON(), nullable=False),
        sa.Column("models_json", sa.JSON(), nullable=False),
        sa.Column("system_prompt", sa.Text(), nullable=False),
        sa.Column("user_prompt", sa.Text(), nullable=False),
        sa.Column("output_shape", sa.String(length=32), nullable=False, server_default="single-object"),
        sa.Column("validation_schema_json", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("total_documents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("completed_documents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("successful_runs", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("failed_runs", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_document_id", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_batch_jobs_status",
        ),
        sa.CheckConstraint(
            "output_shape IN ('single-object', 'record-stream')",
            name="ck_batch_jobs_output_shape",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_batch_jobs_owner", "batch_jobs", ["owner"], unique=False)
    op.create_index("ix_batch_jobs_status", "batch_jobs", ["status"], unique=False)

    op.create_table(
        "runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("batch_job_id", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("model", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("raw_response", sa.Text(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        sa.Column("json_valid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("attributes_valid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("formats_valid", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("validation_passed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("validation_detail_json", sa.JSON(), nullable=False),
        sa.Column("guidance_json", sa.JSON(), nullable=False),
        sa.Column("execution_time_ms", sa.Integer(), nullable=True),
        sa.Column("tokens_in", sa.Integer(), nullable=True),
        sa.Column("tokens_out", sa.Integer(), nullable=True),
        sa.Column("cost_in", sa.Float(), nullable=True),
        sa.Column("cost_out", sa.Float(), nullable=True),
        sa.Column("null_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "NOT attributes_valid OR json_valid",
            name="ck_runs_attributes_require_json",
        ),
        sa.CheckConstraint(
            "NOT formats_valid OR attributes_valid",
            name="ck_runs_formats_require_attributes",
        ),
        sa.ForeignKeyConstraint(["batch_job_id"], ["batch_jobs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_runs_batch_job_id", "runs", ["batch_job_id"], unique=False)
    op.create_index("ix_runs_document_id", "runs", ["document_id"], unique=False)
    op.create_index("ix_runs_model", "runs", ["model"], unique=False)
    op.create_index("ix_runs_batch_document", "runs", ["batch_job_id", "document_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_runs_batch_document", table_name="runs")
    op.drop_index("ix_runs_model", table_name="runs")
    op.drop_index("ix_runs_document_id", table_name="runs")
    op.drop_index("ix_runs_batch_job_id", table_name="runs")
    op.drop_table("runs")
    op.drop_index("ix_batch_jobs_status", table_name="batch_jobs")
    op.drop_index("ix_batch_jobs_owner", table_name="batch_jobs")
    op.drop_table("batch_jobs")
