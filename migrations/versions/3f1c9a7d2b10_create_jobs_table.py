"""create jobs table for the background worker

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("type", sa.Text, nullable=False, comment="Job type identifier"),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            server_default=sa.text("'{}'"),
            comment="Handler input",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="queued",
            comment="Job status: queued|running|done|failed",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Number of attempts made",
        ),
        sa.Column(
            "run_after",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time to run job",
        ),
        # Outcome
        sa.Column("result", sa.JSON, nullable=True, comment="Handler output, set on success"),
        sa.Column("last_error", sa.Text, nullable=True, comment="Last error message"),
        sa.Column(
            "dedupe_key",
            sa.Text,
            nullable=True,
            comment="Deduplication key for idempotent enqueueing",
        ),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        # Constraints
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'done', 'failed')",
            name="jobs_status_check",
        ),
        sa.CheckConstraint("attempts >= 0", name="jobs_attempts_check"),
    )

    # Claim query: status = 'queued' AND run_after <= now ORDER BY created_at
    op.create_index(
        "ix_jobs_status_run_after_created_at",
        "jobs",
        ["status", "run_after", "created_at"],
    )

    # Producers look up active jobs by dedupe key
    op.create_index(
        "ix_jobs_dedupe_key_active",
        "jobs",
        ["dedupe_key"],
        postgresql_where=sa.text(
            "dedupe_key IS NOT NULL AND status IN ('queued', 'running', 'done')"
        ),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_jobs_dedupe_key_active", table_name="jobs")
    op.drop_index("ix_jobs_status_run_after_created_at", table_name="jobs")
    op.drop_table("jobs")
