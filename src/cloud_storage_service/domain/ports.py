"""Ports for document storage, worker invocation, jobs, and secrets."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from cloud_storage_service.domain.jobs import JobAssignment, JobStatus
from cloud_storage_service.domain.problems import ProblemDetail


@dataclass(slots=True, frozen=True)
class QueryResults:
    """One page of documents returned by a table query."""

    results: list[dict[str, Any]] = field(default_factory=list)
    next_page_start_token: str | None = None


class TableMutex(Protocol):
    """Named, holder-tagged, time-boxed lock."""

    async def try_lock(self) -> bool:
        """Acquire the lock if free or expired. Return whether it was acquired."""

    async def lock(self) -> None:
        """Wait until the lock is acquired."""

    async def unlock(self) -> None:
        """Release the lock when held by this holder."""


class DocumentTable(Protocol):
    """JSON document storage keyed by path-like ids."""

    async def get(self, id: str) -> dict[str, Any] | None:
        """Return a document or None."""

    async def put(self, id: str, document: dict[str, Any]) -> None:
        """Create or replace a document."""

    async def delete(self, id: str) -> None:
        """Delete a document. Missing documents are ignored."""

    async def query(
        self,
        path: str,
        *,
        page_size: int = 100,
        page_start_token: str | None = None,
    ) -> QueryResults:
        """Return documents whose id sits directly under `path`."""

    def create_mutex(
        self,
        name: str,
        holder: str,
        lock_timeout_seconds: float = 60.0,
    ) -> TableMutex:
        """Return a mutex handle for `name` owned by `holder`."""


class WorkerInvoker(Protocol):
    """Asynchronously re-invokes the worker with a named operation."""

    async def invoke(
        self,
        operation_name: str,
        input: dict[str, Any],
        tracker: dict[str, Any] | None = None,
    ) -> None:
        """Schedule the operation without waiting for it to run."""


class JobAssignmentHelper(Protocol):
    """Job input, status, and lifecycle transitions for one job assignment."""

    @property
    def job_assignment_database_id(self) -> str:
        """Database id of the job assignment."""

    @property
    def job_input(self) -> dict[str, Any]:
        """Raw job input."""

    @property
    def status(self) -> JobStatus:
        """Current job status."""

    @property
    def progress(self) -> float | None:
        """Last persisted progress percentage."""

    @property
    def tracker(self) -> dict[str, Any] | None:
        """Tracing context forwarded on re-invocation."""

    async def initialize(self) -> None:
        """Load the job assignment and mark it running if not terminal."""

    async def complete(self, job_output: dict[str, Any] | None = None) -> None:
        """Transition to Completed."""

    async def fail(self, problem: ProblemDetail) -> None:
        """Transition to Failed with a problem detail."""

    async def update_job_assignment(self, mutator: Callable[[JobAssignment], None]) -> None:
        """Apply `mutator` to the stored job assignment and persist it."""


JobAssignmentHelperFactory = Callable[[str, dict[str, Any] | None], JobAssignmentHelper]


@runtime_checkable
class SecretsProvider(Protocol):
    """Secret store access."""

    async def get(self, secret_id: str) -> str:
        """Return the raw secret value."""


__all__ = [
    "DocumentTable",
    "JobAssignmentHelper",
    "JobAssignmentHelperFactory",
    "QueryResults",
    "SecretsProvider",
    "TableMutex",
    "WorkerInvoker",
]
