from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class RunStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunRecord:
    """Represents a row from the job_runs table: one delivery of an event to one function."""

    id: str
    function_id: str
    event_id: str
    event_name: str
    event_data: dict[str, Any]
    max_attempts: int
    status: str = RunStatus.PENDING
    attempts: int = 0
    available_at: datetime | None = None
    locked_at: datetime | None = None
    error_message: str | None = None
    output: Any = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class StepRecord:
    """Represents a row from the job_run_steps table."""

    run_id: str
    step_name: str
    output: Any = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class UserRecord:
    """Subset of the users table read by account jobs."""

    id: str
    email: str
    name: str | None = None
    deletion_scheduled_at: datetime | None = None


@dataclass(frozen=True)
class DeletionTokenRecord:
    """Represents a row from the account_deletion_tokens table."""

    identifier: str
    token: str
    expires: datetime


@dataclass(frozen=True)
class SessionRecord:
    """Subset of the user_sessions table read by session jobs."""

    id: str
    user_id: str
    session_token: str
    last_active_at: datetime
    expires_at: datetime | None = None
    deletion_scheduled_at: datetime | None = None


@dataclass
class AnalysisOutcome:
    """Detection and PMI fields returned by the compute worker for one case."""

    total_counts: dict[str, Any]
    oldest_stage_detected: str
    explanation: str | None = None
    pmi_fields: dict[str, Any] = field(default_factory=dict)
