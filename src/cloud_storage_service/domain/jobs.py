"""Job assignment and worker request models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cloud_storage_service.domain.problems import ProblemDetail


class JobStatus(StrEnum):
    """Lifecycle states of a job assignment."""

    NEW = "New"
    QUEUED = "Queued"
    SCHEDULED = "Scheduled"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELED = "Canceled"


TERMINAL_JOB_STATUSES = frozenset(
    {
        JobStatus.COMPLETED,
        JobStatus.FAILED,
        JobStatus.CANCELED,
    }
)


class JobAssignment(BaseModel):
    """Persisted job assignment record."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    status: JobStatus = JobStatus.NEW
    job_input: dict[str, Any] = Field(default_factory=dict, alias="jobInput")
    job_output: dict[str, Any] = Field(default_factory=dict, alias="jobOutput")
    progress: float | None = None
    error: ProblemDetail | None = None
    tracker: dict[str, Any] | None = None
    date_modified: datetime = Field(
        default_factory=lambda: datetime.now(UTC), alias="dateModified"
    )


class WorkerRequest(BaseModel):
    """Named worker operation with its JSON input."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    operation_name: str = Field(alias="operationName", min_length=1)
    input: dict[str, Any] = Field(default_factory=dict)
    tracker: dict[str, Any] | None = None

    @property
    def job_assignment_database_id(self) -> str | None:
        value = self.input.get("jobAssignmentDatabaseId")
        return value if isinstance(value, str) and value else None


__all__ = ["JobAssignment", "JobStatus", "TERMINAL_JOB_STATUSES", "WorkerRequest"]
