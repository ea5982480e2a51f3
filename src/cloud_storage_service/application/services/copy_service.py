"""Copy job operations."""

from __future__ import annotations

import logging
from datetime import datetime

from cloud_storage_service.application.services.continuation import ContinuationProtocol
from cloud_storage_service.application.services.job_inputs import (
    destination_file_from,
    parse_locator_value,
    require_locator,
    source_file_from,
)
from cloud_storage_service.domain.errors import ConfigurationError, InvalidInputError
from cloud_storage_service.domain.ports import JobAssignmentHelper
from cloud_storage_service.domain.work_items import DestinationFile, SourceFile
from cloud_storage_service.infrastructure.storage import FolderScanner, is_folder
from cloud_storage_service.infrastructure.transfers import TransferStrategySelector

logger = logging.getLogger(__name__)


class CopyService:
    """Implements CopyFile, CopyFiles, CopyFolder and ContinueCopy."""

    def __init__(
        self,
        folder_scanner: FolderScanner,
        strategy_selector: TransferStrategySelector,
        continuation: ContinuationProtocol,
    ) -> None:
        self._folder_scanner = folder_scanner
        self._strategy_selector = strategy_selector
        self._continuation = continuation

    async def copy_file(self, helper: JobAssignmentHelper, time_limit: datetime) -> None:
        """Copy one file through the strategy selector and complete the job."""

        job_input = helper.job_input
        source_file = source_file_from(require_locator(job_input, "sourceFile"), job_input)
        destination_file = destination_file_from(
            require_locator(job_input, "destinationFile"), job_input
        )
        await self._strategy_selector.copy(source_file, destination_file)
        await helper.complete()

    async def copy_files(self, helper: JobAssignmentHelper, time_limit: datetime) -> None:
        """Copy a list of transfers. Sources ending in '/' are copied as folders."""

        transfers = helper.job_input.get("transfers")
        if not isinstance(transfers, list) or not transfers:
            raise InvalidInputError(
                "Property 'transfers' is not an array"
                if not isinstance(transfers, list)
                else "Property 'transfers' doesn't contain any element",
                title="CopyFiles job profile requires property transfers as input "
                "with at least 1 element",
            )

        pairs: list[tuple[SourceFile, DestinationFile]] = []
        for index, transfer in enumerate(transfers):
            if not isinstance(transfer, dict):
                raise InvalidInputError(f"Property 'transfers[{index}]' is not an object")
            source_file = source_file_from(
                parse_locator_value(transfer.get("source"), f"transfers[{index}].source"),
                transfer,
            )
            destination_file = destination_file_from(
                parse_locator_value(
                    transfer.get("destination"), f"transfers[{index}].destination"
                ),
                transfer,
            )
            pairs.extend(await self._expand(source_file, destination_file))

        await self._start(helper, time_limit, pairs)

    async def copy_folder(self, helper: JobAssignmentHelper, time_limit: datetime) -> None:
        """Copy every object under `sourceFolder` to the same names under `destinationFolder`."""

        job_input = helper.job_input
        source_folder = source_file_from(require_locator(job_input, "sourceFolder"), job_input)
        destination_folder = destination_file_from(
            require_locator(job_input, "destinationFolder"), job_input
        )
        pairs = await self._folder_scanner.scan_for_copy(source_folder, destination_folder)
        await self._start(helper, time_limit, pairs)

    async def continue_copy(self, helper: JobAssignmentHelper, time_limit: datetime) -> None:
        """Resume a copy job from its checkpoint."""

        await self._continuation.resume(helper, time_limit)

    async def _expand(
        self,
        source_file: SourceFile,
        destination_file: DestinationFile,
    ) -> list[tuple[SourceFile, DestinationFile]]:
        if not is_folder(source_file.locator):
            return [(source_file, destination_file)]
        try:
            return await self._folder_scanner.scan_for_copy(source_file, destination_file)
        except ConfigurationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Failed to scan source folder '%s': %s. Assuming it is a file.",
                source_file.locator.url,
                exc,
            )
            return [(source_file, destination_file)]

    async def _start(
        self,
        helper: JobAssignmentHelper,
        time_limit: datetime,
        pairs: list[tuple[SourceFile, DestinationFile]],
    ) -> None:
        copier = self._continuation.build_copier(helper, time_limit)
        for source_file, destination_file in pairs:
            copier.add_file(source_file, destination_file)
        logger.info(
            "Queued %d file(s) for job assignment '%s'.",
            len(pairs),
            helper.job_assignment_database_id,
        )
        await self._continuation.run(helper, copier, time_limit)


__all__ = ["CopyService"]
