"""In-memory document table for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from cloud_storage_service.domain.ports import QueryResults
from cloud_storage_service.infrastructure.tables.paths import normalize_path, parent_path

_DEFAULT_LOCK_POLL_SECONDS = 0.1


@dataclass(slots=True)
class _MutexRecord:
    holder: str
    expires_at: datetime


class InMemoryTableMutex:
    """Mutex handle backed by an `InMemoryDocumentTable`."""

    def __init__(
        self,
        table: InMemoryDocumentTable,
        name: str,
        holder: str,
        lock_timeout_seconds: float,
        poll_seconds: float = _DEFAULT_LOCK_POLL_SECONDS,
    ) -> None:
        self._table = table
        self._name = name
        self._holder = holder
        self._lock_timeout_seconds = lock_timeout_seconds
        self._poll_seconds = poll_seconds

    async def try_lock(self) -> bool:
        return await self._table._try_acquire(
            self._name, self._holder, self._lock_timeout_seconds
        )

    async def lock(self) -> None:
        while not await self.try_lock():
            await asyncio.sleep(self._poll_seconds)

    async def unlock(self) -> None:
        await self._table._release(self._name, self._holder)


class InMemoryDocumentTable:
    """Dictionary-backed `DocumentTable`.

    Documents are deep-copied on the way in and out so callers never share
    mutable state with the table.
    """

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._mutexes: dict[str, _MutexRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, id: str) -> dict[str, Any] | None:
        async with self._lock:
            document = self._documents.get(id)
            return copy.deepcopy(document) if document is not None else None

    async def put(self, id: str, document: dict[str, Any]) -> None:
        async with self._lock:
            self._documents[id] = copy.deepcopy(document)

    async def delete(self, id: str) -> None:
        async with self._lock:
            self._documents.pop(id, None)

    async def query(
        self,
        path: str,
        *,
        page_size: int = 100,
        page_start_token: str | None = None,
    ) -> QueryResults:
        """Return documents directly under `path`, ordered by id."""

        normalized = normalize_path(path)
        async with self._lock:
            ids = sorted(
                document_id
                for document_id in self._documents
                if parent_path(document_id) == normalized
            )
            offset = int(page_start_token) if page_start_token else 0
            page_ids = ids[offset : offset + page_size]
            results = [copy.deepcopy(self._documents[document_id]) for document_id in page_ids]

        next_offset = offset + len(page_ids)
        return QueryResults(
            results=results,
            next_page_start_token=str(next_offset) if next_offset < len(ids) else None,
        )

    def create_mutex(
        self,
        name: str,
        holder: str,
        lock_timeout_seconds: float = 60.0,
    ) -> InMemoryTableMutex:
        return InMemoryTableMutex(self, name, holder, lock_timeout_seconds)

    async def _try_acquire(self, name: str, holder: str, lock_timeout_seconds: float) -> bool:
        now = datetime.now(UTC)
        async with self._lock:
            record = self._mutexes.get(name)
            if record is not None and record.holder != holder and record.expires_at > now:
                return False
            self._mutexes[name] = _MutexRecord(
                holder=holder,
                expires_at=now + timedelta(seconds=lock_timeout_seconds),
            )
            return True

    async def _release(self, name: str, holder: str) -> None:
        async with self._lock:
            record = self._mutexes.get(name)
            if record is not None and record.holder == holder:
                del self._mutexes[name]


__all__ = ["InMemoryDocumentTable", "InMemoryTableMutex"]
