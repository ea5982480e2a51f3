"""Restore job operations and the restore work item registry."""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

from cloud_storage_service.application.services.job_inputs import (
    parse_locator_value,
    parse_restore_duration,
    parse_restore_priority,
    require_locator,
)
from cloud_storage_service.domain.errors import InvalidInputError
from cloud_storage_service.domain.locators import LocatorModel, S3Locator, locator_type_name
from cloud_storage_service.domain.ports import DocumentTable, JobAssignmentHelper
from cloud_storage_service.domain.problems import ProblemType
from cloud_storage_service.domain.restore import (
    ARCHIVE_STORAGE_CLASSES,
    RestorePriority,
    RestoreWorkItem,
    build_restore_work_item_id,
)
from cloud_storage_service.infrastructure.storage import (
    FolderScanner,
    StorageClientFactory,
    head_s3_object,
)

logger = logging.getLogger(__name__)

_DEFAULT_RECORD_LOCK_TIMEOUT_SECONDS = 60.0


def _unsupported_locator(locator: object) -> InvalidInputError:
    return InvalidInputError(
        f"Locator type '{locator_type_name(locator)}' is not supported",
        problem_type=ProblemType.LOCATOR_TYPE_NOT_SUPPORTED,
        title="Provided input locator type is not supported",
    )


async def request_archive_restore(
    storage_client_factory: StorageClientFactory,
    file: S3Locator,
    priority: RestorePriority,
    duration_in_days: int,
) -> None:
    """Issue an S3 `restore_object` call for `file`."""

    client = await storage_client_factory.get_s3_client(file.bucket, file.region)
    await asyncio.to_thread(
        client.restore_object,
        Bucket=file.bucket,
        Key=file.key,
        RestoreRequest={
            "Days": duration_in_days,
            "GlacierJobParameters": {"Tier": priority.tier},
        },
    )


class RestoreRegistry:
    """Deduplicating ledger of job assignments waiting on archived objects.

    One `RestoreWorkItem` exists per object. Updates happen under a table
    mutex named after the record id, and the restore call is issued only by
    the request that created the record.
    """

    def __init__(
        self,
        table: DocumentTable,
        storage_client_factory: StorageClientFactory,
        lock_timeout_seconds: float = _DEFAULT_RECORD_LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self._table = table
        self._storage_client_factory = storage_client_factory
        self._lock_timeout_seconds = lock_timeout_seconds

    async def register(
        self,
        file: S3Locator,
        job_assignment_database_id: str,
        priority: RestorePriority,
        duration_in_days: int,
    ) -> RestoreWorkItem:
        """Attach a job assignment to the record for `file`, creating it if needed."""

        record_id = build_restore_work_item_id(file)
        mutex = self._table.create_mutex(record_id, uuid4().hex, self._lock_timeout_seconds)
        await mutex.lock()
        try:
            document = await self._table.get(record_id)
            created = document is None
            if document is None:
                record = RestoreWorkItem(
                    id=record_id,
                    file=file,
                    priority=priority,
                    duration_in_days=duration_in_days,
                )
            else:
                record = RestoreWorkItem.model_validate(document)
            if job_assignment_database_id not in record.job_assignment_database_ids:
                record.job_assignment_database_ids.append(job_assignment_database_id)
            await self._table.put(
                record_id, record.model_dump(mode="json", by_alias=True, exclude_none=True)
            )
        finally:
            await mutex.unlock()

        if created:
            try:
                await request_archive_restore(
                    self._storage_client_factory, file, priority, duration_in_days
                )
                logger.info("Requested restore of '%s' (%s tier).", file.url, priority.tier)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Restore request for '%s' failed: %s", file.url, exc)
        else:
            logger.info(
                "Restore of '%s' already requested. Added job assignment '%s'.",
                file.url,
                job_assignment_database_id,
            )
        return record


class RestoreService:
    """Implements RestoreFile, RestoreFiles, RestoreFolder and CompleteRestore."""

    def __init__(
        self,
        registry: RestoreRegistry,
        storage_client_factory: StorageClientFactory,
        folder_scanner: FolderScanner,
    ) -> None:
        self._registry = registry
        self._storage_client_factory = storage_client_factory
        self._folder_scanner = folder_scanner

    async def restore_file(self, helper: JobAssignmentHelper) -> None:
        """Restore the single archived object given as `file`."""

        file = require_locator(helper.job_input, "file")
        await self._restore(helper, [file])

    async def restore_files(self, helper: JobAssignmentHelper) -> None:
        """Restore every archived object listed in `files`."""

        values = helper.job_input.get("files")
        if not isinstance(values, list) or not values:
            raise InvalidInputError(
                "Missing input parameter 'files'",
                problem_type=ProblemType.MISSING_INPUT_PARAMETER,
                title="Missing input parameter",
            )
        files = [
            parse_locator_value(value, f"files[{index}]") for index, value in enumerate(values)
        ]
        await self._restore(helper, files)

    async def restore_folder(self, helper: JobAssignmentHelper) -> None:
        """Restore every archived object under the S3 prefix given as `folder`."""

        folder = require_locator(helper.job_input, "folder")
        if not isinstance(folder, S3Locator):
            raise _unsupported_locator(folder)
        priority = parse_restore_priority(helper.job_input)
        duration_in_days = parse_restore_duration(helper.job_input)

        scanned = await self._folder_scanner.list_objects(folder)
        files = [
            item.locator
            for item in scanned
            if isinstance(item.locator, S3Locator) and item.storage_class in ARCHIVE_STORAGE_CLASSES
        ]
        if not files:
            raise InvalidInputError(
                f"Provided input folder: '{folder.url}'",
                problem_type=ProblemType.NO_SUITABLE_OBJECTS_DETECTED,
                title="Provided input folder does not contain any suitable objects for restoring",
            )

        for file in files:
            await self._registry.register(
                file, helper.job_assignment_database_id, priority, duration_in_days
            )

    async def complete_restore(self, helper: JobAssignmentHelper) -> None:
        """Mark a job whose restores all finished as completed."""

        await helper.complete()

    async def _restore(self, helper: JobAssignmentHelper, files: list[LocatorModel]) -> None:
        priority = parse_restore_priority(helper.job_input)
        duration_in_days = parse_restore_duration(helper.job_input)

        archived: list[S3Locator] = []
        for file in files:
            if not isinstance(file, S3Locator):
                raise _unsupported_locator(file)
            client = await self._storage_client_factory.get_s3_client(file.bucket, file.region)
            metadata = await head_s3_object(client, file.bucket, file.key)
            if metadata.storage_class not in ARCHIVE_STORAGE_CLASSES:
                raise InvalidInputError(
                    f"Object {file.key} in bucket {file.bucket} is in storage class "
                    f"{metadata.storage_class}.",
                    problem_type=ProblemType.OBJECT_IN_UNSUPPORTED_STORAGE_CLASS,
                    title="Provided object is in unsupported storage class",
                )
            archived.append(file)

        for file in archived:
            await self._registry.register(
                file, helper.job_assignment_database_id, priority, duration_in_days
            )


__all__ = ["RestoreRegistry", "RestoreService", "request_archive_restore"]
