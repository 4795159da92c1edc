"""
Queue and job models for the backing store.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    SmallInteger,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from verifyflow.infra.database import Base, UTCDateTime, utcnow


class JobState(str, Enum):
    """Job lifecycle states."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


LIVE_STATES = (JobState.WAITING.value, JobState.DELAYED.value, JobState.ACTIVE.value)
TERMINAL_STATES = (JobState.COMPLETED.value, JobState.FAILED.value)

_LIVE_STATES_SQL = "state IN ('waiting', 'delayed', 'active')"


class QueueRecord(Base):
    """A named queue and its persisted control flags."""

    __tablename__ = "queues"

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    paused: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, comment="Workers stop claiming when set"
    )
    default_options: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="Job defaults the queue was created with"
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )


class Job(Base):
    """
    A unit of work on a named queue.

    The integer id is assigned in insertion order and breaks ties between
    jobs of equal priority and equal eligibility time.
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    queue_name: Mapped[str] = mapped_column(Text, nullable=False)
    job_type: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Selects the handler that runs the job"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="Job-specific parameters"
    )

    # Scheduling
    state: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobState.WAITING.value,
        comment="waiting|delayed|active|completed|failed",
    )
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Higher values are claimed first"
    )
    available_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, comment="Earliest time to run job"
    )

    # Retry policy
    attempts_made: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, comment="Executions started so far"
    )
    max_attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)
    backoff: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict, comment="{type: fixed|exponential, delay_ms}"
    )
    remove_on_complete: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Completed jobs kept in the queue"
    )
    remove_on_fail: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Failed jobs kept in the queue"
    )

    # Identity and recurrence
    job_key: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Caller identity key, unique among live jobs"
    )
    repeat: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Recurrence rule for periodic jobs"
    )

    # Outcome
    result: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    stalled_count: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)

    # Worker coordination
    locked_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    heartbeat_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "state IN ('waiting', 'delayed', 'active', 'completed', 'failed')",
            name="jobs_state_check",
        ),
        CheckConstraint("attempts_made >= 0", name="jobs_attempts_check"),
        Index("ix_jobs_claim", "queue_name", "state", "job_type", "priority", "available_at"),
        Index("ix_jobs_finished", "queue_name", "state", "finished_at"),
        Index("ix_jobs_heartbeat_at", "state", "heartbeat_at"),
        Index(
            "ix_jobs_job_key_live",
            "queue_name",
            "job_key",
            unique=True,
            postgresql_where=text(f"job_key IS NOT NULL AND {_LIVE_STATES_SQL}"),
            sqlite_where=text(f"job_key IS NOT NULL AND {_LIVE_STATES_SQL}"),
        ),
    )

    def can_retry(self) -> bool:
        """Check if another attempt is allowed after a failure."""
        return self.attempts_made < self.max_attempts
