"""
Queue and job Pydantic schemas.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from verifyflow.config.settings import BackoffType
from verifyflow.v1.infra.queues.models import JobState
from verifyflow.v1.infra.queues.recurrence import RecurrenceRule


class BackoffPolicy(BaseModel):
    """Delay rule applied before a failed job is retried."""

    type: BackoffType = Field(default=BackoffType.EXPONENTIAL, description="fixed or exponential")
    delay_ms: int = Field(default=0, ge=0, description="Base delay in milliseconds")


class JobOptions(BaseModel):
    """
    Per-job options. Unset fields fall through to the domain defaults and
    then to the queue defaults.
    """

    model_config = ConfigDict(extra="forbid")

    priority: int | None = Field(default=None, ge=0, description="Higher runs sooner")
    delay_ms: int | None = Field(default=None, ge=0, description="Minimum wait before eligible")
    attempts: int | None = Field(default=None, ge=1, description="Maximum executions")
    backoff: BackoffPolicy | None = None
    remove_on_complete: int | None = Field(
        default=None, ge=0, description="Completed jobs to keep in the queue"
    )
    remove_on_fail: int | None = Field(
        default=None, ge=0, description="Failed jobs to keep in the queue"
    )
    job_key: str | None = Field(
        default=None, min_length=1, description="Identity key, unique among live jobs"
    )
    repeat: RecurrenceRule | None = None

    def merged_over(self, base: "JobOptions") -> "JobOptions":
        """Return ``base`` with every field set here taking precedence."""
        overrides = {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }
        return base.model_copy(update=overrides)


class JobHandle(BaseModel):
    """What a submitter gets back once the backing store accepted a job."""

    job_id: str
    queue: str
    job_type: str
    state: JobState
    job_key: str | None = None
    available_at: datetime
    deduplicated: bool = Field(
        default=False, description="A live job with the same key already existed"
    )


class JobContext(BaseModel):
    """The view of a claimed job passed to its handler."""

    model_config = ConfigDict(frozen=True)

    id: str
    queue: str
    job_type: str
    payload: dict[str, Any]
    attempts_made: int
    max_attempts: int
    job_key: str | None = None


class FollowUp(BaseModel):
    """A job the engine should submit after the current one succeeds."""

    queue: str
    job_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    options: JobOptions | None = None


class HandlerResult(BaseModel):
    """Handler outcome: the stored result plus any follow-up submissions."""

    result: dict[str, Any] | None = None
    follow_ups: list[FollowUp] = Field(default_factory=list)


class JobSummary(BaseModel):
    """Job snapshot included in queue statistics."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    job_type: str
    state: str
    priority: int
    attempts_made: int
    max_attempts: int
    payload: dict[str, Any]
    result: dict[str, Any] | None = None
    last_error: str | None = None
    error_code: str | None = None
    job_key: str | None = None
    created_at: datetime
    available_at: datetime
    processed_at: datetime | None = None
    finished_at: datetime | None = None


class QueueCounts(BaseModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0


class QueueStats(BaseModel):
    """Read-only snapshot of one queue."""

    queue_name: str
    paused: bool
    counts: QueueCounts
    jobs: dict[str, list[JobSummary]]


class QueueHealth(BaseModel):
    status: Literal["ready", "not_ready", "error"]
    paused: bool | None = None
    error: str | None = None


class HealthReport(BaseModel):
    """Aggregate readiness of every known queue."""

    status: Literal["healthy", "degraded", "unhealthy"]
    queues: dict[str, QueueHealth]
    timestamp: datetime
