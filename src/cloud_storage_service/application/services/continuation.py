"""Time-boxed copy runs that checkpoint and re-invoke themselves."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from cloud_storage_service.domain.jobs import JobAssignment
from cloud_storage_service.domain.ports import JobAssignmentHelper, WorkerInvoker
from cloud_storage_service.domain.problems import ProblemDetail, ProblemType
from cloud_storage_service.infrastructure.transfers import (
    CheckpointStore,
    FileCopier,
    ProgressCallback,
)

logger = logging.getLogger(__name__)

CONTINUE_COPY_OPERATION = "ContinueCopy"

# (abort_at, progress_update) -> copier
FileCopierFactory = Callable[[datetime, ProgressCallback], FileCopier]


@dataclass(slots=True, frozen=True)
class ContinuationSettings:
    """Time budget split for one invocation."""

    safety_margin_seconds: float = 120.0
    bail_out_seconds: float = 10.0
    abort_margin_seconds: float = 30.0
    slice_seconds: float = 60.0
    progress_threshold: float = 0.5
    settle_seconds: float = 1.0


def _utc_now() -> datetime:
    return datetime.now(UTC)


def progress_percentage(bytes_copied: int, bytes_total: int) -> float:
    """Copied bytes as a percentage rounded to one decimal."""

    return round(bytes_copied / bytes_total * 100, 1)


class ContinuationProtocol:
    """Run a FileCopier within an invocation's time limit and hand off the rest.

    - The copier runs in slices until `time_limit - safety_margin`. While work
      remains after a slice, the checkpoint is rewritten.
    - A copy failure fails the job with `copy-failure`.
    - Work left at the end of the budget is checkpointed and `ContinueCopy`
      is invoked for the job. This invocation does not wait for it.
    - When no work remains the checkpoint is deleted and the job completed.
    """

    def __init__(
        self,
        checkpoint_store: CheckpointStore,
        worker_invoker: WorkerInvoker,
        file_copier_factory: FileCopierFactory,
        settings: ContinuationSettings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._checkpoint_store = checkpoint_store
        self._worker_invoker = worker_invoker
        self._file_copier_factory = file_copier_factory
        self._settings = settings or ContinuationSettings()
        self._clock = clock

    def build_copier(self, helper: JobAssignmentHelper, time_limit: datetime) -> FileCopier:
        """Return a copier whose progress is persisted on the job assignment."""

        threshold = self._settings.progress_threshold
        job_id = helper.job_assignment_database_id

        async def progress_update(
            files_total: int,
            files_copied: int,
            bytes_total: int,
            bytes_copied: int,
        ) -> None:
            if bytes_total <= 0:
                return
            progress = progress_percentage(bytes_copied, bytes_total)
            logger.info(
                "Job assignment '%s': %.1f%% (%d/%d files).",
                job_id,
                progress,
                files_copied,
                files_total,
            )
            if helper.progress is not None and abs(helper.progress - progress) <= threshold:
                return

            def set_progress(job_assignment: JobAssignment) -> None:
                job_assignment.progress = progress

            await helper.update_job_assignment(set_progress)

        abort_at = time_limit - timedelta(seconds=self._settings.abort_margin_seconds)
        return self._file_copier_factory(abort_at, progress_update)

    async def resume(self, helper: JobAssignmentHelper, time_limit: datetime) -> None:
        """Continue a job from its checkpoint. A missing checkpoint fails the job."""

        job_id = helper.job_assignment_database_id
        state = await self._checkpoint_store.load(job_id)
        if state is None or not state.work_items:
            logger.error(
                "Failed to retrieve remaining work items for '%s'. Failing job.", job_id
            )
            await helper.fail(
                ProblemDetail.of(
                    ProblemType.GENERIC_FAILURE,
                    title="Generic failure",
                    detail="Failed to retrieve remaining work items from database",
                )
            )
            return

        logger.info("Loaded %d work item(s) for '%s'.", len(state.work_items), job_id)
        copier = self.build_copier(helper, time_limit)
        copier.set_state(state)
        await self.run(helper, copier, time_limit)

    async def run(
        self,
        helper: JobAssignmentHelper,
        copier: FileCopier,
        time_limit: datetime,
    ) -> None:
        """Drive `copier` until done, failed or out of budget."""

        job_id = helper.job_assignment_database_id
        run_until = time_limit - timedelta(seconds=self._settings.safety_margin_seconds)
        bail_out = time_limit - timedelta(seconds=self._settings.bail_out_seconds)
        slice_length = timedelta(seconds=self._settings.slice_seconds)

        while True:
            slice_end = self._clock() + slice_length
            continue_running = slice_end < run_until
            await copier.run_until(slice_end if continue_running else run_until, bail_out)

            error = copier.error
            if error is not None:
                logger.error("Failing job '%s' as copy resulted in a failure: %s", job_id, error)
                await helper.fail(
                    ProblemDetail.of(
                        ProblemType.COPY_FAILURE,
                        title="Copy failure",
                        detail=str(error),
                    )
                )
                return

            state = copier.get_state()
            if not state.work_items:
                break

            logger.info(
                "%d work item(s) remaining for '%s'. Storing checkpoint.",
                len(state.work_items),
                job_id,
            )
            await self._checkpoint_store.delete(job_id)
            await self._checkpoint_store.save(state, job_id)

            if not continue_running:
                logger.info("Invoking %s for '%s'.", CONTINUE_COPY_OPERATION, job_id)
                await self._worker_invoker.invoke(
                    CONTINUE_COPY_OPERATION,
                    {"jobAssignmentDatabaseId": job_id},
                    helper.tracker,
                )
                return

        await self._checkpoint_store.delete(job_id)
        await asyncio.sleep(self._settings.settle_seconds)
        logger.info("Copy for '%s' succeeded. Marking job as completed.", job_id)
        await helper.complete()


__all__ = [
    "CONTINUE_COPY_OPERATION",
    "ContinuationProtocol",
    "ContinuationSettings",
    "FileCopierFactory",
    "progress_percentage",
]
