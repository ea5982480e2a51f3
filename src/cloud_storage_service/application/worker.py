"""Worker operation dispatch."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from cloud_storage_service.application.services import CopyService, RestoreService
from cloud_storage_service.domain.errors import CloudStorageServiceError, InvalidInputError
from cloud_storage_service.domain.jobs import TERMINAL_JOB_STATUSES, WorkerRequest
from cloud_storage_service.domain.ports import JobAssignmentHelper, JobAssignmentHelperFactory
from cloud_storage_service.domain.problems import ProblemDetail, ProblemType

logger = logging.getLogger(__name__)

_DEFAULT_TIME_LIMIT_SECONDS = 900.0

Operation = Callable[[JobAssignmentHelper, datetime], Awaitable[None]]


class WorkerRequestError(CloudStorageServiceError):
    """Raised when a worker request names no known operation or job assignment."""


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Worker:
    """Run named operations against job assignments.

    Every operation loads its job assignment first and returns without work
    when the job is already terminal. Invalid input fails the job with the
    input's problem detail; any other exception fails it with
    `generic-failure`.
    """

    def __init__(
        self,
        job_assignment_helper_factory: JobAssignmentHelperFactory,
        copy_service: CopyService,
        restore_service: RestoreService,
        time_limit_seconds: float = _DEFAULT_TIME_LIMIT_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._job_assignment_helper_factory = job_assignment_helper_factory
        self._time_limit_seconds = time_limit_seconds
        self._clock = clock

        async def restore_file(helper: JobAssignmentHelper, _: datetime) -> None:
            await restore_service.restore_file(helper)

        async def restore_files(helper: JobAssignmentHelper, _: datetime) -> None:
            await restore_service.restore_files(helper)

        async def restore_folder(helper: JobAssignmentHelper, _: datetime) -> None:
            await restore_service.restore_folder(helper)

        async def complete_restore(helper: JobAssignmentHelper, _: datetime) -> None:
            await restore_service.complete_restore(helper)

        self._operations: dict[str, Operation] = {
            "CopyFile": copy_service.copy_file,
            "CopyFiles": copy_service.copy_files,
            "CopyFolder": copy_service.copy_folder,
            "ContinueCopy": copy_service.continue_copy,
            "RestoreFile": restore_file,
            "RestoreFiles": restore_files,
            "RestoreFolder": restore_folder,
            "CompleteRestore": complete_restore,
        }

    @property
    def operation_names(self) -> list[str]:
        return sorted(self._operations)

    def validate(self, request: WorkerRequest) -> None:
        """Reject requests that cannot be dispatched."""

        if request.operation_name not in self._operations:
            raise WorkerRequestError(f"Unknown operation '{request.operation_name}'")
        if request.job_assignment_database_id is None:
            raise WorkerRequestError(
                f"Operation '{request.operation_name}' requires input 'jobAssignmentDatabaseId'"
            )

    async def do_work(self, request: WorkerRequest) -> None:
        """Run one request to completion. Failures are recorded on the job."""

        self.validate(request)
        job_assignment_database_id = request.job_assignment_database_id
        assert job_assignment_database_id is not None
        operation = self._operations[request.operation_name]
        time_limit = self._clock() + timedelta(seconds=self._time_limit_seconds)
        helper = self._job_assignment_helper_factory(job_assignment_database_id, request.tracker)

        logger.info(
            "Running operation '%s' for job assignment '%s'.",
            request.operation_name,
            job_assignment_database_id,
        )
        try:
            await helper.initialize()
            if helper.status in TERMINAL_JOB_STATUSES:
                return
            await operation(helper, time_limit)
        except InvalidInputError as exc:
            logger.warning(
                "Operation '%s' rejected input of '%s': %s",
                request.operation_name,
                job_assignment_database_id,
                exc,
            )
            await self._fail(helper, exc.problem)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Operation '%s' failed for '%s'.",
                request.operation_name,
                job_assignment_database_id,
            )
            await self._fail(
                helper,
                ProblemDetail.of(
                    ProblemType.GENERIC_FAILURE,
                    title="Generic failure",
                    detail=str(exc),
                ),
            )

    async def _fail(self, helper: JobAssignmentHelper, problem: ProblemDetail) -> None:
        try:
            await helper.fail(problem)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Failed to mark job assignment '%s' as failed.",
                helper.job_assignment_database_id,
            )


__all__ = ["Operation", "Worker", "WorkerRequestError"]
