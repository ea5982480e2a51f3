from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from cloud_storage_service.application.services import (
    ContinuationProtocol,
    ContinuationSettings,
)
from cloud_storage_service.application.services.continuation import progress_percentage
from cloud_storage_service.domain.errors import TransferError
from cloud_storage_service.domain.jobs import JobAssignment, JobStatus
from cloud_storage_service.domain.locators import S3Locator
from cloud_storage_service.domain.problems import ProblemType
from cloud_storage_service.domain.work_items import (
    DestinationFile,
    FileCopierState,
    MultipartSegment,
    SourceFile,
    WorkItem,
)
from cloud_storage_service.infrastructure.jobs import TableJobAssignmentHelper
from cloud_storage_service.infrastructure.tables import InMemoryDocumentTable
from cloud_storage_service.infrastructure.transfers import (
    CheckpointStore,
    FileCopier,
    PrepareResult,
    ProgressCallback,
    SegmentResult,
)

JOB_ID = "/job-assignments/job-1"
TRACKER = {"id": "tracker-1", "label": "copy"}


class FakeProcessor:
    def __init__(self, fail: bool = False) -> None:
        self._fail = fail
        self.copied: list[str] = []

    async def prepare(self, work_item: WorkItem) -> PrepareResult:
        if self._fail:
            raise TransferError("source unreadable")
        url = work_item.source_file.locator.url
        return PrepareResult(content_length=10, source_url=url)

    async def copy_single(self, work_item: WorkItem) -> None:
        self.copied.append(work_item.source_file.locator.url)

    async def start_multipart(self, work_item: WorkItem) -> str:
        raise AssertionError("small files are never multipart")

    async def copy_segment(self, work_item: WorkItem, segment: MultipartSegment) -> SegmentResult:
        raise AssertionError("small files are never multipart")

    async def complete_multipart(
        self,
        work_item: WorkItem,
        segments: list[MultipartSegment],
    ) -> None:
        raise AssertionError("small files are never multipart")


class RecordingInvoker:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any], dict[str, Any] | None]] = []

    async def invoke(
        self,
        operation_name: str,
        input: dict[str, Any],
        tracker: dict[str, Any] | None = None,
    ) -> None:
        self.calls.append((operation_name, input, tracker))


def _pair(name: str) -> tuple[SourceFile, DestinationFile]:
    return (
        SourceFile(locator=S3Locator(bucket="src-bucket", key=name)),
        DestinationFile(locator=S3Locator(bucket="dst-bucket", key=name)),
    )


async def _helper(table: InMemoryDocumentTable) -> TableJobAssignmentHelper:
    await table.put(
        JOB_ID,
        JobAssignment(id=JOB_ID, status=JobStatus.SCHEDULED).model_dump(
            mode="json", by_alias=True, exclude_none=True
        ),
    )
    helper = TableJobAssignmentHelper(table, JOB_ID, tracker=TRACKER)
    await helper.initialize()
    return helper


def _protocol(
    table: InMemoryDocumentTable,
    processor: FakeProcessor,
    invoker: RecordingInvoker,
) -> ContinuationProtocol:
    def build_copier(abort_at: datetime, progress_update: ProgressCallback) -> FileCopier:
        return FileCopier(processor, progress_update=progress_update)

    return ContinuationProtocol(
        checkpoint_store=CheckpointStore(table),
        worker_invoker=invoker,
        file_copier_factory=build_copier,
        settings=ContinuationSettings(settle_seconds=0.0),
    )


async def _job(table: InMemoryDocumentTable) -> JobAssignment:
    document = await table.get(JOB_ID)
    assert document is not None
    return JobAssignment.model_validate(document)


def test_progress_percentage_rounds_to_one_decimal() -> None:
    assert progress_percentage(1, 3) == 33.3
    assert progress_percentage(10, 10) == 100.0


def test_run_completes_job_when_all_work_is_done() -> None:
    table = InMemoryDocumentTable()
    processor = FakeProcessor()
    invoker = RecordingInvoker()
    protocol = _protocol(table, processor, invoker)

    async def scenario() -> JobAssignment:
        helper = await _helper(table)
        time_limit = datetime.now(UTC) + timedelta(minutes=15)
        copier = protocol.build_copier(helper, time_limit)
        copier.add_file(*_pair("a.txt"))
        copier.add_file(*_pair("b.txt"))
        await protocol.run(helper, copier, time_limit)
        assert await CheckpointStore(table).load(JOB_ID) is None
        return await _job(table)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.COMPLETED
    assert job.progress == 100.0
    assert len(processor.copied) == 2
    assert invoker.calls == []


def test_run_checkpoints_and_continues_when_budget_is_spent() -> None:
    table = InMemoryDocumentTable()
    processor = FakeProcessor()
    invoker = RecordingInvoker()
    protocol = _protocol(table, processor, invoker)

    async def scenario() -> tuple[JobAssignment, FileCopierState | None]:
        helper = await _helper(table)
        time_limit = datetime.now(UTC) + timedelta(seconds=100)
        copier = protocol.build_copier(helper, time_limit)
        copier.add_file(*_pair("a.txt"))
        copier.add_file(*_pair("b.txt"))
        await protocol.run(helper, copier, time_limit)
        return await _job(table), await CheckpointStore(table).load(JOB_ID)

    job, state = asyncio.run(scenario())

    assert job.status is JobStatus.RUNNING
    assert state is not None
    assert len(state.work_items) == 2
    assert processor.copied == []
    assert invoker.calls == [("ContinueCopy", {"jobAssignmentDatabaseId": JOB_ID}, TRACKER)]


def test_run_fails_job_with_copy_failure() -> None:
    table = InMemoryDocumentTable()
    protocol = _protocol(table, FakeProcessor(fail=True), RecordingInvoker())

    async def scenario() -> JobAssignment:
        helper = await _helper(table)
        time_limit = datetime.now(UTC) + timedelta(minutes=15)
        copier = protocol.build_copier(helper, time_limit)
        copier.add_file(*_pair("a.txt"))
        await protocol.run(helper, copier, time_limit)
        return await _job(table)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.FAILED
    assert job.error is not None
    assert job.error.type == ProblemType.COPY_FAILURE.uri
    assert job.error.title == "Copy failure"
    assert job.error.detail == "source unreadable"


def test_resume_continues_from_checkpoint_and_cleans_up() -> None:
    table = InMemoryDocumentTable()
    processor = FakeProcessor()
    invoker = RecordingInvoker()
    protocol = _protocol(table, processor, invoker)
    source, destination = _pair("c.txt")
    state = FileCopierState(
        files_total=2,
        files_copied=2,
        bytes_total=20,
        bytes_copied=20,
        work_items=[WorkItem(source_file=source, destination_file=destination)],
    )

    async def scenario() -> tuple[JobAssignment, FileCopierState | None]:
        helper = await _helper(table)
        await CheckpointStore(table).save(state, JOB_ID)
        await protocol.resume(helper, datetime.now(UTC) + timedelta(minutes=15))
        return await _job(table), await CheckpointStore(table).load(JOB_ID)

    job, remaining = asyncio.run(scenario())

    assert job.status is JobStatus.COMPLETED
    assert remaining is None
    assert processor.copied == [source.locator.url]


def test_resume_without_checkpoint_fails_job() -> None:
    table = InMemoryDocumentTable()
    protocol = _protocol(table, FakeProcessor(), RecordingInvoker())

    async def scenario() -> JobAssignment:
        helper = await _helper(table)
        await protocol.resume(helper, datetime.now(UTC) + timedelta(minutes=15))
        return await _job(table)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.FAILED
    assert job.error is not None
    assert job.error.type == ProblemType.GENERIC_FAILURE.uri
    assert job.error.detail == "Failed to retrieve remaining work items from database"
