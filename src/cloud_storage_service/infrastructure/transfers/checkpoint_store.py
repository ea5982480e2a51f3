"""Paged persistence of FileCopier state in a document table."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from cloud_storage_service.domain.ports import DocumentTable
from cloud_storage_service.domain.work_items import FileCopierState, WorkItem

logger = logging.getLogger(__name__)

CHECKPOINT_PAGE_SIZE = 200
_DEFAULT_WRITE_ATTEMPTS = 3
_DEFAULT_WRITE_RETRY_DELAY_SECONDS = 3.0


def checkpoint_index_id(job_id: str) -> str:
    return f"{job_id}/file-copier-state-index"


def checkpoint_page_id(job_id: str, page: int) -> str:
    return f"{job_id}/file-copier-state-{page}"


class CheckpointStore:
    """Save, load and delete copier state split into pages.

    Page 0 carries the aggregate counters. An index record lists page ids in
    order and is written last. A missing index, a malformed one, or one that
    names a missing or invalid page loads as no checkpoint.
    """

    def __init__(
        self,
        table: DocumentTable,
        page_size: int = CHECKPOINT_PAGE_SIZE,
        write_attempts: int = _DEFAULT_WRITE_ATTEMPTS,
        write_retry_delay_seconds: float = _DEFAULT_WRITE_RETRY_DELAY_SECONDS,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1.")
        self._table = table
        self._page_size = page_size
        self._write_attempts = max(1, write_attempts)
        self._write_retry_delay_seconds = max(0.0, write_retry_delay_seconds)

    async def save(self, state: FileCopierState, job_id: str) -> None:
        """Persist `state` for `job_id`."""

        work_items = [
            work_item.model_dump(mode="json", by_alias=True, exclude_none=True)
            for work_item in state.work_items
        ]
        pages: list[list[dict[str, Any]]] = [
            work_items[start : start + self._page_size]
            for start in range(0, len(work_items), self._page_size)
        ] or [[]]

        page_ids: list[str] = []
        for page_number, page_items in enumerate(pages):
            document: dict[str, Any] = {"workItems": page_items}
            if page_number == 0:
                document.update(
                    bytesTotal=state.bytes_total,
                    bytesCopied=state.bytes_copied,
                    filesTotal=state.files_total,
                    filesCopied=state.files_copied,
                )
            page_id = checkpoint_page_id(job_id, page_number)
            await self._put_with_retry(page_id, document)
            page_ids.append(page_id)

        await self._put_with_retry(checkpoint_index_id(job_id), {"databaseIds": page_ids})
        logger.info(
            "Saved checkpoint for '%s' with %d work item(s) in %d page(s).",
            job_id,
            len(work_items),
            len(page_ids),
        )

    async def load(self, job_id: str) -> FileCopierState | None:
        """Return the saved state, or None when missing or incomplete."""

        index = await self._table.get(checkpoint_index_id(job_id))
        if index is None:
            return None
        page_ids = index.get("databaseIds")
        if not isinstance(page_ids, list) or not page_ids:
            logger.warning("Checkpoint index for '%s' is malformed. Ignoring it.", job_id)
            return None

        counters: dict[str, Any] = {}
        work_items: list[WorkItem] = []
        for page_number, page_id in enumerate(page_ids):
            page = await self._table.get(page_id)
            if page is None:
                logger.warning(
                    "Checkpoint page '%s' for '%s' is missing. Ignoring checkpoint.",
                    page_id,
                    job_id,
                )
                return None
            if page_number == 0:
                counters = page
            try:
                work_items.extend(
                    WorkItem.model_validate(item) for item in page.get("workItems", [])
                )
            except ValidationError as exc:
                logger.warning(
                    "Checkpoint page '%s' for '%s' is invalid: %s. Ignoring checkpoint.",
                    page_id,
                    job_id,
                    exc,
                )
                return None

        return FileCopierState(
            bytes_total=int(counters.get("bytesTotal", 0)),
            bytes_copied=int(counters.get("bytesCopied", 0)),
            files_total=int(counters.get("filesTotal", 0)),
            files_copied=int(counters.get("filesCopied", 0)),
            work_items=work_items,
        )

    async def delete(self, job_id: str) -> None:
        """Remove the checkpoint. Failures are logged and ignored."""

        try:
            index = await self._table.get(checkpoint_index_id(job_id))
            page_ids = index.get("databaseIds", []) if index is not None else []
            await self._table.delete(checkpoint_index_id(job_id))
            for page_id in page_ids:
                await self._table.delete(page_id)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to delete checkpoint for '%s'.", job_id)

    async def _put_with_retry(self, document_id: str, document: dict[str, Any]) -> None:
        for attempt in range(1, self._write_attempts + 1):
            try:
                await self._table.put(document_id, document)
                return
            except Exception as exc:
                if attempt >= self._write_attempts:
                    raise
                logger.warning(
                    "Writing checkpoint record '%s' failed (attempt %d/%d): %s",
                    document_id,
                    attempt,
                    self._write_attempts,
                    exc,
                )
                await asyncio.sleep(self._write_retry_delay_seconds)


__all__ = [
    "CHECKPOINT_PAGE_SIZE",
    "CheckpointStore",
    "checkpoint_index_id",
    "checkpoint_page_id",
]
