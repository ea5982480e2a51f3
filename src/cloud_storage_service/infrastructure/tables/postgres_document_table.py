"""PostgreSQL document table implementation."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from cloud_storage_service.domain.ports import QueryResults
from cloud_storage_service.infrastructure.tables.paths import normalize_path, parent_path

_DEFAULT_LOCK_POLL_SECONDS = 0.5


class PostgresTableMutex:
    """Holder-tagged lock row in `table_mutexes` with an expiry time."""

    def __init__(
        self,
        table: PostgresDocumentTable,
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
        pool = await self._table._get_pool()
        row = await pool.fetchrow(
            """
            INSERT INTO table_mutexes (name, holder, expires_at)
            VALUES ($1, $2, NOW() + ($3::double precision * INTERVAL '1 second'))
            ON CONFLICT (name) DO UPDATE
            SET
                holder = EXCLUDED.holder,
                expires_at = EXCLUDED.expires_at
            WHERE table_mutexes.expires_at <= NOW()
               OR table_mutexes.holder = EXCLUDED.holder
            RETURNING name
            """,
            self._name,
            self._holder,
            max(self._lock_timeout_seconds, 0.0),
        )
        return row is not None

    async def lock(self) -> None:
        while not await self.try_lock():
            await asyncio.sleep(self._poll_seconds)

    async def unlock(self) -> None:
        pool = await self._table._get_pool()
        await pool.execute(
            "DELETE FROM table_mutexes WHERE name = $1 AND holder = $2",
            self._name,
            self._holder,
        )


class PostgresDocumentTable:
    """`DocumentTable` storing JSONB documents keyed by id."""

    def __init__(
        self,
        dsn: str,
        min_pool_size: int = 1,
        max_pool_size: int = 10,
    ) -> None:
        self._dsn = dsn
        self._min_pool_size = min_pool_size
        self._max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def get(self, id: str) -> dict[str, Any] | None:
        """Return one document."""

        pool = await self._get_pool()
        row = await pool.fetchrow("SELECT document FROM documents WHERE id = $1", id)
        if row is None:
            return None
        return self._decode_document(row["document"])

    async def put(self, id: str, document: dict[str, Any]) -> None:
        """Create or replace one document."""

        pool = await self._get_pool()
        await pool.execute(
            """
            INSERT INTO documents (id, path, document, updated_at)
            VALUES ($1, $2, $3::jsonb, NOW())
            ON CONFLICT (id) DO UPDATE
            SET
                document = EXCLUDED.document,
                updated_at = NOW()
            """,
            id,
            parent_path(id),
            json.dumps(document),
        )

    async def delete(self, id: str) -> None:
        """Delete one document if present."""

        pool = await self._get_pool()
        await pool.execute("DELETE FROM documents WHERE id = $1", id)

    async def query(
        self,
        path: str,
        *,
        page_size: int = 100,
        page_start_token: str | None = None,
    ) -> QueryResults:
        """Return one page of documents under `path`, keyset-paginated by id."""

        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            SELECT id, document
            FROM documents
            WHERE path = $1
              AND ($2::text IS NULL OR id > $2)
            ORDER BY id ASC
            LIMIT $3
            """,
            normalize_path(path),
            page_start_token,
            page_size + 1,
        )
        page = rows[:page_size]
        next_token = page[-1]["id"] if len(rows) > page_size else None
        return QueryResults(
            results=[self._decode_document(row["document"]) for row in page],
            next_page_start_token=next_token,
        )

    def create_mutex(
        self,
        name: str,
        holder: str,
        lock_timeout_seconds: float = 60.0,
    ) -> PostgresTableMutex:
        return PostgresTableMutex(self, name, holder, lock_timeout_seconds)

    async def close(self) -> None:
        """Close the pool if it was initialized."""

        pool = self._pool
        self._pool = None
        if pool is not None:
            await pool.close()

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool

        async with self._pool_lock:
            if self._pool is None:
                pool = await asyncpg.create_pool(
                    dsn=self._dsn,
                    min_size=self._min_pool_size,
                    max_size=self._max_pool_size,
                )
                await self._ensure_schema(pool)
                self._pool = pool
        assert self._pool is not None
        return self._pool

    async def _ensure_schema(self, pool: asyncpg.Pool) -> None:
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                path TEXT NOT NULL,
                document JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        await pool.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_path ON documents (path, id)"
        )
        await pool.execute(
            """
            CREATE TABLE IF NOT EXISTS table_mutexes (
                name TEXT PRIMARY KEY,
                holder TEXT NOT NULL,
                expires_at TIMESTAMPTZ NOT NULL
            )
            """
        )

    def _decode_document(self, value: object) -> dict[str, Any]:
        decoded = json.loads(value) if isinstance(value, str) else value
        if not isinstance(decoded, dict):
            raise TypeError(f"Expected dict document, got {type(decoded)!r}.")
        return decoded


__all__ = ["PostgresDocumentTable", "PostgresTableMutex"]
