"""add queues and jobs tables

Revision ID: 3c1e8a7d52f4
Revises:
Create Date: 2025-10-06 09:14:27.318044

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1e8a7d52f4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LIVE_STATES_SQL = "state IN ('waiting', 'delayed', 'active')"


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "queues",
        sa.Column("name", sa.Text, primary_key=True),
        sa.Column(
            "paused",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
            comment="Workers stop claiming when set",
        ),
        sa.Column(
            "default_options",
            sa.JSON,
            nullable=False,
            comment="Job defaults the queue was created with",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("queue_name", sa.Text, nullable=False),
        sa.Column(
            "job_type", sa.Text, nullable=False, comment="Selects the handler that runs the job"
        ),
        sa.Column("payload", sa.JSON, nullable=False, comment="Job-specific parameters"),
        # Scheduling
        sa.Column(
            "state",
            sa.Text,
            nullable=False,
            server_default="waiting",
            comment="waiting|delayed|active|completed|failed",
        ),
        sa.Column(
            "priority",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Higher values are claimed first",
        ),
        sa.Column(
            "available_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time to run job",
        ),
        # Retry policy
        sa.Column(
            "attempts_made",
            sa.SmallInteger,
            nullable=False,
            server_default="0",
            comment="Executions started so far",
        ),
        sa.Column("max_attempts", sa.SmallInteger, nullable=False, server_default="1"),
        sa.Column(
            "backoff",
            sa.JSON,
            nullable=False,
            comment="{type: fixed|exponential, delay_ms}",
        ),
        sa.Column(
            "remove_on_complete",
            sa.Integer,
            nullable=True,
            comment="Completed jobs kept in the queue",
        ),
        sa.Column(
            "remove_on_fail", sa.Integer, nullable=True, comment="Failed jobs kept in the queue"
        ),
        # Identity and recurrence
        sa.Column(
            "job_key",
            sa.Text,
            nullable=True,
            comment="Caller identity key, unique among live jobs",
        ),
        sa.Column(
            "repeat", sa.JSON, nullable=True, comment="Recurrence rule for periodic jobs"
        ),
        # Outcome
        sa.Column("result", sa.JSON, nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("error_code", sa.Text, nullable=True),
        sa.Column("stalled_count", sa.SmallInteger, nullable=False, server_default="0"),
        # Worker coordination
        sa.Column("locked_by", sa.Text, nullable=True),
        sa.Column("locked_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("heartbeat_at", sa.TIMESTAMP(timezone=True), nullable=True),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("processed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("finished_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        # Constraints
        sa.CheckConstraint(
            "state IN ('waiting', 'delayed', 'active', 'completed', 'failed')",
            name="jobs_state_check",
        ),
        sa.CheckConstraint("attempts_made >= 0", name="jobs_attempts_check"),
    )

    # Claim order: queue, state and type filter, then priority and eligibility
    op.create_index(
        "ix_jobs_claim", "jobs", ["queue_name", "state", "job_type", "priority", "available_at"]
    )
    op.create_index("ix_jobs_finished", "jobs", ["queue_name", "state", "finished_at"])
    op.create_index("ix_jobs_heartbeat_at", "jobs", ["state", "heartbeat_at"])

    # Identity keys are unique among live jobs only, so a recurring job can
    # reuse its key once the previous instance finished
    op.create_index(
        "ix_jobs_job_key_live",
        "jobs",
        ["queue_name", "job_key"],
        unique=True,
        postgresql_where=sa.text(f"job_key IS NOT NULL AND {LIVE_STATES_SQL}"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_jobs_job_key_live", table_name="jobs")
    op.drop_index("ix_jobs_heartbeat_at", table_name="jobs")
    op.drop_index("ix_jobs_finished", table_name="jobs")
    op.drop_index("ix_jobs_claim", table_name="jobs")
    op.drop_table("jobs")
    op.drop_table("queues")
