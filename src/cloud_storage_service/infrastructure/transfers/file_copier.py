"""Resumable multi-file copy engine with bounded concurrency."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from cloud_storage_service.domain.errors import (
    ConfigurationError,
    TransferError,
    UnsupportedLocatorError,
)
from cloud_storage_service.domain.locators import (
    BlobStorageLocator,
    LocatorModel,
    S3Locator,
    locator_type_name,
)
from cloud_storage_service.domain.work_items import (
    DestinationFile,
    FileCopierState,
    MultipartData,
    MultipartSegment,
    SourceFile,
    WorkItem,
    WorkType,
)
from cloud_storage_service.infrastructure.transfers.runtime import (
    ActiveWorkSet,
    SegmentLedger,
    SettledWork,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 32
DEFAULT_MULTIPART_SIZE = 64 * 1024 * 1024
MIN_MULTIPART_SIZE = 5 * 1024 * 1024
MAX_MULTIPART_SIZE = 4000 * 1024 * 1024
_MAX_CONCURRENCY_LIMIT = 64
_S3_MAX_SEGMENT_COUNT = 10_000
_BLOB_MAX_SEGMENT_COUNT = 50_000
_DEFAULT_PROGRESS_INTERVAL_SECONDS = 1.0
_DEFAULT_COMPLETE_POLL_SECONDS = 1.0

_NON_RETRYABLE_ERRORS = (ConfigurationError, UnsupportedLocatorError)

ProgressCallback = Callable[[int, int, int, int], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class PrepareResult:
    """Resolved source access and metadata for one file."""

    content_length: int
    source_url: str | None = None
    source_headers: dict[str, str] | None = None
    content_type: str | None = None
    last_modified: datetime | None = None
    skip: bool = False


@dataclass(slots=True, frozen=True)
class SegmentResult:
    """Destination identifier of a transferred segment."""

    etag: str | None = None
    block_id: str | None = None


class WorkItemProcessor(Protocol):
    """Performs the network side of each work item state."""

    async def prepare(self, work_item: WorkItem) -> PrepareResult:
        """Resolve source access and decide whether the copy can be skipped."""

    async def copy_single(self, work_item: WorkItem) -> None:
        """Copy the whole object in one operation."""

    async def start_multipart(self, work_item: WorkItem) -> str:
        """Open a multipart session on the destination and return its id."""

    async def copy_segment(self, work_item: WorkItem, segment: MultipartSegment) -> SegmentResult:
        """Transfer one byte range."""

    async def complete_multipart(
        self,
        work_item: WorkItem,
        segments: list[MultipartSegment],
    ) -> None:
        """Finalize the upload with `segments` in ascending part order."""


def clamp_max_concurrency(value: int | None) -> int:
    """Return `value` when within 1..63, else the default."""

    if value is not None and 0 < value < _MAX_CONCURRENCY_LIMIT:
        return value
    return DEFAULT_MAX_CONCURRENCY


def clamp_multipart_size(value: int | None) -> int:
    """Return `value` when within the S3 minimum and Blob maximum part sizes, else the default."""

    if value is not None and MIN_MULTIPART_SIZE <= value <= MAX_MULTIPART_SIZE:
        return value
    return DEFAULT_MULTIPART_SIZE


def max_segment_count(locator: LocatorModel) -> int:
    """Return the most parts a destination accepts in one multipart upload."""

    match locator:
        case S3Locator():
            return _S3_MAX_SEGMENT_COUNT
        case BlobStorageLocator():
            return _BLOB_MAX_SEGMENT_COUNT
    raise UnsupportedLocatorError(
        f"Unsupported destination locator type '{locator_type_name(locator)}'"
    )


def plan_segments(
    content_length: int,
    base_segment_size: int,
    segment_limit: int,
) -> list[MultipartSegment]:
    """Split `content_length` bytes into at most `segment_limit` contiguous segments."""

    segment_size = base_segment_size
    while segment_size * segment_limit < content_length:
        segment_size *= 2

    segments: list[MultipartSegment] = []
    start = 0
    part_number = 1
    while start < content_length:
        end = min(start + segment_size, content_length) - 1
        segments.append(
            MultipartSegment(
                part_number=part_number,
                start=start,
                end=end,
                length=end - start + 1,
            )
        )
        start = end + 1
        part_number += 1
    return segments


def _utc_now() -> datetime:
    return datetime.now(UTC)


class FileCopier:
    """Copy many files as a queue of work items, resumable across processes.

    - Each file moves Prepare -> Single, or Prepare -> MultipartStart ->
      MultipartSegment x N -> MultipartComplete.
    - `run_until` admits work while the deadline has not passed and no fatal
      error occurred, then drains what is in flight before returning.
    - Completions are handled on the calling task only, so queue and counter
      mutation never interleaves.
    - Each work item may fail once. A second failure becomes the run's error.
    """

    def __init__(
        self,
        processor: WorkItemProcessor,
        max_concurrency: int | None = None,
        multipart_size: int | None = None,
        progress_update: ProgressCallback | None = None,
        progress_interval_seconds: float = _DEFAULT_PROGRESS_INTERVAL_SECONDS,
        complete_poll_seconds: float = _DEFAULT_COMPLETE_POLL_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._processor = processor
        self._max_concurrency = clamp_max_concurrency(max_concurrency)
        self._multipart_size = clamp_multipart_size(multipart_size)
        self._progress_update = progress_update
        self._progress_interval_seconds = max(0.01, progress_interval_seconds)
        self._complete_poll_seconds = max(0.0, complete_poll_seconds)
        self._clock = clock
        self._queue: deque[WorkItem] = deque()
        self._ledger = SegmentLedger()
        self._error: BaseException | None = None
        self._running = False
        self._bytes_total = 0
        self._bytes_copied = 0
        self._files_total = 0
        self._files_copied = 0
        self._finish_handlers: dict[WorkType, Callable[[WorkItem, Any], None]] = {
            WorkType.PREPARE: self._finish_prepare,
            WorkType.SINGLE: self._finish_single,
            WorkType.MULTIPART_START: self._finish_multipart_start,
            WorkType.MULTIPART_SEGMENT: self._finish_multipart_segment,
            WorkType.MULTIPART_COMPLETE: self._finish_multipart_complete,
        }

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def multipart_size(self) -> int:
        return self._multipart_size

    @property
    def error(self) -> BaseException | None:
        """Fatal error of the last run, if any."""

        return self._error

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def add_file(self, source_file: SourceFile, destination_file: DestinationFile) -> None:
        """Queue one file for copying."""

        self._queue.append(
            WorkItem(
                type=WorkType.PREPARE,
                source_file=source_file,
                destination_file=destination_file,
            )
        )

    def get_state(self) -> FileCopierState:
        """Return a snapshot of counters and pending work items."""

        work_items: list[WorkItem] = []
        for work_item in self._queue:
            snapshot = work_item.model_copy(deep=True)
            multipart_data = snapshot.multipart_data
            if snapshot.type is WorkType.MULTIPART_COMPLETE and multipart_data is not None:
                multipart_data.segments = self._ledger.ordered(multipart_data.upload_id)
            work_items.append(snapshot)

        return FileCopierState(
            bytes_total=self._bytes_total,
            bytes_copied=self._bytes_copied,
            files_total=self._files_total,
            files_copied=self._files_copied,
            work_items=work_items,
        )

    def set_state(self, state: FileCopierState) -> None:
        """Replace counters and pending work with a snapshot."""

        if self._running:
            raise RuntimeError("Cannot replace state while the copier is running.")

        self._bytes_total = state.bytes_total
        self._bytes_copied = state.bytes_copied
        self._files_total = state.files_total
        self._files_copied = state.files_copied
        self._error = None
        self._ledger.clear()
        self._queue.clear()

        for work_item in state.work_items:
            restored = work_item.model_copy(deep=True)
            multipart_data = restored.multipart_data
            if multipart_data is not None:
                if restored.type is WorkType.MULTIPART_COMPLETE:
                    self._ledger.register(multipart_data.upload_id, multipart_data.segments or [])
                    multipart_data.segments = None
                elif multipart_data.segment is not None:
                    self._ledger.register(multipart_data.upload_id, [multipart_data.segment])
            self._queue.append(restored)

    async def run_until(self, deadline: datetime, bail_out: datetime | None = None) -> None:
        """Process work until done, failed, or `deadline`; then drain in-flight items.

        If draining is still going at `bail_out`, the remaining operations are
        cancelled and their work items return to the front of the queue as they
        were, so a later run repeats them.
        """

        if self._running:
            raise RuntimeError("FileCopier is already running.")

        self._running = True
        active = ActiveWorkSet()
        next_progress_at = time.monotonic() + self._progress_interval_seconds
        try:
            while True:
                if self._error is None and self._clock() < deadline:
                    self._admit(active)
                if not active:
                    break

                if bail_out is not None and self._clock() >= bail_out:
                    abandoned = await active.cancel_all()
                    self._queue.extendleft(reversed(abandoned))
                    logger.warning(
                        "Bail-out reached with %d work item(s) in flight. "
                        "Returned them to the queue.",
                        len(abandoned),
                    )
                    break

                timeout = max(0.0, next_progress_at - time.monotonic())
                if bail_out is not None:
                    timeout = min(timeout, max(0.0, (bail_out - self._clock()).total_seconds()))
                for settled in await active.wait_next(timeout):
                    self._finish(settled)

                if time.monotonic() >= next_progress_at:
                    await self._report_progress()
                    next_progress_at = time.monotonic() + self._progress_interval_seconds
        finally:
            self._running = False

        await self._report_progress()

    def _admit(self, active: ActiveWorkSet) -> None:
        while self._queue and len(active) < self._max_concurrency:
            work_item = self._queue.popleft()
            active.start(work_item, self._process(work_item))

    async def _process(self, work_item: WorkItem) -> Any:
        match work_item.type:
            case WorkType.PREPARE:
                return await self._processor.prepare(work_item)
            case WorkType.SINGLE:
                return await self._processor.copy_single(work_item)
            case WorkType.MULTIPART_START:
                return await self._processor.start_multipart(work_item)
            case WorkType.MULTIPART_SEGMENT:
                return await self._processor.copy_segment(work_item, self._segment_of(work_item))
            case WorkType.MULTIPART_COMPLETE:
                return await self._complete_multipart(work_item)
        raise TransferError(f"Unknown work item type '{work_item.type}'")

    async def _complete_multipart(self, work_item: WorkItem) -> bool:
        """Finalize when every segment is committed. Return False to be requeued."""

        upload_id = self._multipart_data_of(work_item).upload_id
        if not self._ledger.is_complete(upload_id):
            await asyncio.sleep(self._complete_poll_seconds)
            return False

        await self._processor.complete_multipart(work_item, self._ledger.ordered(upload_id))
        return True

    def _finish(self, settled: SettledWork) -> None:
        work_item = settled.work_item
        error = settled.error
        if error is None:
            try:
                self._finish_handlers[work_item.type](work_item, settled.result)
                return
            except Exception as exc:  # noqa: BLE001
                error = exc

        logger.warning("Work item '%s' failed: %s", work_item.describe(), error)
        if work_item.retries < 1 and not isinstance(error, _NON_RETRYABLE_ERRORS):
            work_item.retries += 1
            self._queue.append(work_item)
            return

        self._queue.append(work_item)
        if self._error is None:
            logger.error("Work item '%s' failed after retry. Stopping run.", work_item.describe())
            self._error = error

    def _finish_prepare(self, work_item: WorkItem, result: PrepareResult) -> None:
        self._files_total += 1
        if result.skip:
            logger.info(
                "Skipping '%s': destination '%s' already holds the same object.",
                work_item.source_file.locator.url,
                work_item.destination_file.locator.url,
            )
            self._files_copied += 1
            return

        self._bytes_total += result.content_length
        next_type = (
            WorkType.MULTIPART_START
            if result.content_length > self._multipart_size
            else WorkType.SINGLE
        )
        self._queue.append(
            work_item.advance(
                next_type,
                source_url=result.source_url,
                source_headers=result.source_headers,
                content_length=result.content_length,
                content_type=result.content_type,
                last_modified=result.last_modified,
            )
        )

    def _finish_single(self, work_item: WorkItem, _: Any) -> None:
        self._files_copied += 1
        self._bytes_copied += work_item.content_length or 0

    def _finish_multipart_start(self, work_item: WorkItem, upload_id: str) -> None:
        segments = plan_segments(
            work_item.content_length or 0,
            self._multipart_size,
            max_segment_count(work_item.destination_file.locator),
        )
        self._ledger.register(upload_id, segments)
        for segment in segments:
            self._queue.append(
                work_item.advance(
                    WorkType.MULTIPART_SEGMENT,
                    multipart_data=MultipartData(upload_id=upload_id, segment=segment),
                )
            )
        self._queue.append(
            work_item.advance(
                WorkType.MULTIPART_COMPLETE,
                multipart_data=MultipartData(upload_id=upload_id),
            )
        )

    def _finish_multipart_segment(self, work_item: WorkItem, result: SegmentResult) -> None:
        if not result.etag and not result.block_id:
            raise TransferError(
                f"Segment transfer for '{work_item.describe()}' returned no part identifier"
            )
        multipart_data = self._multipart_data_of(work_item)
        segment = self._segment_of(work_item)
        self._ledger.commit(
            multipart_data.upload_id,
            segment.part_number,
            etag=result.etag,
            block_id=result.block_id,
        )
        self._bytes_copied += segment.length

    def _finish_multipart_complete(self, work_item: WorkItem, finalized: bool) -> None:
        if not finalized:
            self._queue.append(work_item)
            return
        self._ledger.discard(self._multipart_data_of(work_item).upload_id)
        self._files_copied += 1

    def _multipart_data_of(self, work_item: WorkItem) -> MultipartData:
        if work_item.multipart_data is None:
            raise TransferError(f"Work item '{work_item.describe()}' has no multipart data")
        return work_item.multipart_data

    def _segment_of(self, work_item: WorkItem) -> MultipartSegment:
        segment = self._multipart_data_of(work_item).segment
        if segment is None:
            raise TransferError(f"Work item '{work_item.describe()}' has no segment")
        return segment

    async def _report_progress(self) -> None:
        if self._progress_update is None:
            return
        try:
            await self._progress_update(
                self._files_total,
                self._files_copied,
                self._bytes_total,
                self._bytes_copied,
            )
        except Exception:
            logger.exception("Progress update failed.")


__all__ = [
    "DEFAULT_MAX_CONCURRENCY",
    "DEFAULT_MULTIPART_SIZE",
    "FileCopier",
    "PrepareResult",
    "ProgressCallback",
    "SegmentResult",
    "WorkItemProcessor",
    "clamp_max_concurrency",
    "clamp_multipart_size",
    "max_segment_count",
    "plan_segments",
]
