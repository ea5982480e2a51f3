"""Periodic sweep completing jobs whose archive restores finished."""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

from pydantic import ValidationError

from cloud_storage_service.application.services.restore_service import request_archive_restore
from cloud_storage_service.domain.errors import RestoreStatusParseError
from cloud_storage_service.domain.locators import S3Locator, locator_type_name
from cloud_storage_service.domain.ports import DocumentTable, WorkerInvoker
from cloud_storage_service.domain.restore import (
    ARCHIVE_STORAGE_CLASSES,
    RESTORE_WORK_ITEMS_PATH,
    RestoreWorkItem,
    parse_restore_value,
)
from cloud_storage_service.infrastructure.storage import StorageClientFactory

logger = logging.getLogger(__name__)

MONITOR_MUTEX_NAME = "cloud-storage-service-monitor"
COMPLETE_RESTORE_OPERATION = "CompleteRestore"
_DEFAULT_LOCK_TIMEOUT_SECONDS = 15 * 60.0
_DEFAULT_QUERY_PAGE_SIZE = 100


class RestoreMonitor:
    """Polls restore status of every `RestoreWorkItem` and completes waiting jobs.

    Only one sweep runs at a time across processes, guarded by a table mutex.
    """

    def __init__(
        self,
        table: DocumentTable,
        storage_client_factory: StorageClientFactory,
        worker_invoker: WorkerInvoker,
        lock_timeout_seconds: float = _DEFAULT_LOCK_TIMEOUT_SECONDS,
        page_size: int = _DEFAULT_QUERY_PAGE_SIZE,
    ) -> None:
        self._table = table
        self._storage_client_factory = storage_client_factory
        self._worker_invoker = worker_invoker
        self._lock_timeout_seconds = lock_timeout_seconds
        self._page_size = page_size

    async def run(self) -> bool:
        """Sweep once unless another sweep holds the lock. Return whether it swept."""

        mutex = self._table.create_mutex(
            MONITOR_MUTEX_NAME, uuid4().hex, self._lock_timeout_seconds
        )
        if not await mutex.try_lock():
            logger.info("Another restore monitor sweep is running. Skipping.")
            return False
        try:
            await self.sweep()
        finally:
            await mutex.unlock()
        return True

    async def sweep(self) -> list[str]:
        """Process all restore work items. Return job assignments scheduled for completion."""

        records = await self._load_records()
        finished_job_ids: dict[str, None] = {}

        for index in range(len(records) - 1, -1, -1):
            record = records[index]
            match record.file:
                case S3Locator() as file:
                    if not await self._restore_finished(record, file):
                        continue
                    for job_id in record.job_assignment_database_ids:
                        finished_job_ids.setdefault(job_id, None)
                    await self._table.delete(record.id)
                    del records[index]
                case _:
                    logger.error(
                        "Detected unprocessable locator of type %s in '%s'. Dropping it.",
                        locator_type_name(record.file),
                        record.id,
                    )
                    await self._table.delete(record.id)
                    del records[index]

        scheduled: list[str] = []
        for job_id in finished_job_ids:
            if any(job_id in record.job_assignment_database_ids for record in records):
                continue
            try:
                job_assignment = await self._table.get(job_id)
                tracker = job_assignment.get("tracker") if job_assignment else None
                await self._worker_invoker.invoke(
                    COMPLETE_RESTORE_OPERATION,
                    {"jobAssignmentDatabaseId": job_id},
                    tracker,
                )
                scheduled.append(job_id)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Failed to invoke %s for '%s'.", COMPLETE_RESTORE_OPERATION, job_id
                )

        logger.info(
            "Restore monitor sweep done: %d record(s) pending, %d job(s) completed.",
            len(records),
            len(scheduled),
        )
        return scheduled

    async def _load_records(self) -> list[RestoreWorkItem]:
        records: list[RestoreWorkItem] = []
        page_start_token: str | None = None
        while True:
            page = await self._table.query(
                RESTORE_WORK_ITEMS_PATH,
                page_size=self._page_size,
                page_start_token=page_start_token,
            )
            for document in page.results:
                try:
                    records.append(RestoreWorkItem.model_validate(document))
                except ValidationError as exc:
                    document_id = document.get("id")
                    logger.error("Dropping invalid restore work item '%s': %s", document_id, exc)
                    if isinstance(document_id, str):
                        await self._table.delete(document_id)
            page_start_token = page.next_page_start_token
            if page_start_token is None:
                return records

    async def _restore_finished(self, record: RestoreWorkItem, file: S3Locator) -> bool:
        """Whether the object is readable. Failed probes keep the record for the next sweep."""

        try:
            client = await self._storage_client_factory.get_s3_client(file.bucket, file.region)
            response = await asyncio.to_thread(client.head_object, Bucket=file.bucket, Key=file.key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Restore status check for '%s' failed: %s", file.url, exc)
            return False

        restore_header = response.get("Restore")
        if not restore_header:
            if response.get("StorageClass") not in ARCHIVE_STORAGE_CLASSES:
                return True
            logger.info("No restore in progress for archived '%s'. Requesting it again.", file.url)
            try:
                await request_archive_restore(
                    self._storage_client_factory, file, record.priority, record.duration_in_days
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("Restore request for '%s' failed: %s", file.url, exc)
            return False

        try:
            status = parse_restore_value(restore_header)
        except RestoreStatusParseError as exc:
            logger.warning("Cannot parse restore status of '%s': %s", file.url, exc)
            return False
        return status.get("ongoing-request") != "true"


__all__ = ["COMPLETE_RESTORE_OPERATION", "MONITOR_MUTEX_NAME", "RestoreMonitor"]
