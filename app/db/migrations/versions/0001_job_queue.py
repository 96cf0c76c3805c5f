"""Job queue and job log tables."""

from alembic import op
import sqlalchemy as sa


revision = "0001_job_queue"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "job_queue",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("job_type", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("result", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_job_queue_job_type", "job_queue", ["job_type"], unique=False)
    op.create_index("ix_job_queue_status", "job_queue", ["status"], unique=False)
    op.create_index("ix_job_queue_priority", "job_queue", ["priority"], unique=False)
    op.create_index("ix_job_queue_user_id", "job_queue", ["user_id"], unique=False)
    op.create_index("ix_job_queue_created_at", "job_queue", ["created_at"], unique=False)
    op.create_index("ix_job_queue_claim_order", "job_queue", ["status", "priority", "created_at"], unique=False)

    op.create_table(
        "job_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("job_id", sa.String(length=36), sa.ForeignKey("job_queue.id", ondelete="CASCADE"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("level", sa.String(length=20), nullable=False, server_default="info"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_job_logs_job_id", "job_logs", ["job_id"], unique=False)


def downgrade() -> None:
    op.drop_table("job_logs")
    op.drop_table("job_queue")
