"""Job assignment lifecycle stored in a document table."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from cloud_storage_service.domain.errors import CloudStorageServiceError
from cloud_storage_service.domain.jobs import TERMINAL_JOB_STATUSES, JobAssignment, JobStatus
from cloud_storage_service.domain.ports import DocumentTable
from cloud_storage_service.domain.problems import ProblemDetail

logger = logging.getLogger(__name__)


class JobAssignmentNotFoundError(CloudStorageServiceError):
    """Raised when a job assignment record does not exist."""


class TableJobAssignmentHelper:
    """`JobAssignmentHelper` reading and writing `JobAssignment` documents."""

    def __init__(
        self,
        table: DocumentTable,
        job_assignment_database_id: str,
        tracker: dict[str, Any] | None = None,
    ) -> None:
        self._table = table
        self._job_assignment_database_id = job_assignment_database_id
        self._request_tracker = tracker
        self._job_assignment: JobAssignment | None = None

    @property
    def job_assignment_database_id(self) -> str:
        return self._job_assignment_database_id

    @property
    def job_assignment(self) -> JobAssignment:
        if self._job_assignment is None:
            raise RuntimeError("Job assignment helper is not initialized.")
        return self._job_assignment

    @property
    def job_input(self) -> dict[str, Any]:
        return self.job_assignment.job_input

    @property
    def status(self) -> JobStatus:
        return self.job_assignment.status

    @property
    def progress(self) -> float | None:
        return self.job_assignment.progress

    @property
    def tracker(self) -> dict[str, Any] | None:
        if self._request_tracker is not None:
            return self._request_tracker
        return self._job_assignment.tracker if self._job_assignment is not None else None

    async def initialize(self) -> None:
        """Load the record and move it to Running unless it is already terminal."""

        self._job_assignment = await self._load()
        if self._job_assignment.status in TERMINAL_JOB_STATUSES:
            logger.info(
                "Job assignment '%s' is already %s.",
                self._job_assignment_database_id,
                self._job_assignment.status,
            )
            return
        if self._job_assignment.status != JobStatus.RUNNING:
            await self._set_status(JobStatus.RUNNING)

    async def complete(self, job_output: dict[str, Any] | None = None) -> None:
        def mutate(job_assignment: JobAssignment) -> None:
            job_assignment.status = JobStatus.COMPLETED
            if job_output is not None:
                job_assignment.job_output = job_output

        await self.update_job_assignment(mutate)
        logger.info("Job assignment '%s' completed.", self._job_assignment_database_id)

    async def fail(self, problem: ProblemDetail) -> None:
        def mutate(job_assignment: JobAssignment) -> None:
            job_assignment.status = JobStatus.FAILED
            job_assignment.error = problem

        await self.update_job_assignment(mutate)
        logger.warning(
            "Job assignment '%s' failed: %s (%s)",
            self._job_assignment_database_id,
            problem.title,
            problem.detail,
        )

    async def update_job_assignment(self, mutator: Callable[[JobAssignment], None]) -> None:
        """Reload, mutate and store the record."""

        job_assignment = await self._load()
        mutator(job_assignment)
        job_assignment.date_modified = datetime.now(UTC)
        await self._table.put(
            self._job_assignment_database_id,
            job_assignment.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        self._job_assignment = job_assignment

    async def _set_status(self, status: JobStatus) -> None:
        def mutate(job_assignment: JobAssignment) -> None:
            job_assignment.status = status

        await self.update_job_assignment(mutate)

    async def _load(self) -> JobAssignment:
        document = await self._table.get(self._job_assignment_database_id)
        if document is None:
            raise JobAssignmentNotFoundError(
                f"Job assignment '{self._job_assignment_database_id}' not found"
            )
        return JobAssignment.model_validate(document)


def table_job_assignment_helper_factory(
    table: DocumentTable,
) -> Callable[[str, dict[str, Any] | None], TableJobAssignmentHelper]:
    """Return a `JobAssignmentHelperFactory` bound to `table`."""

    def build(
        job_assignment_database_id: str,
        tracker: dict[str, Any] | None,
    ) -> TableJobAssignmentHelper:
        return TableJobAssignmentHelper(table, job_assignment_database_id, tracker)

    return build


__all__ = [
    "JobAssignmentNotFoundError",
    "TableJobAssignmentHelper",
    "table_job_assignment_helper_factory",
]
