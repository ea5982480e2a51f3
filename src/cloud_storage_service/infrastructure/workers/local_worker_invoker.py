"""In-process worker invocation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from cloud_storage_service.domain.jobs import WorkerRequest

logger = logging.getLogger(__name__)

WorkerDispatch = Callable[[WorkerRequest], Awaitable[None]]


class LocalWorkerInvoker:
    """Schedule worker requests as tasks on the running event loop.

    The dispatch target is bound after construction because the worker itself
    depends on an invoker.
    """

    def __init__(self, dispatch: WorkerDispatch | None = None) -> None:
        self._dispatch = dispatch
        self._tasks: set[asyncio.Task[None]] = set()

    def bind(self, dispatch: WorkerDispatch) -> None:
        self._dispatch = dispatch

    async def invoke(
        self,
        operation_name: str,
        input: dict[str, Any],
        tracker: dict[str, Any] | None = None,
    ) -> None:
        if self._dispatch is None:
            raise RuntimeError("LocalWorkerInvoker has no dispatch target bound.")

        request = WorkerRequest(operation_name=operation_name, input=input, tracker=tracker)
        task = asyncio.create_task(self._dispatch(request))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        logger.info("Scheduled in-process worker operation '%s'.", operation_name)

    async def wait_idle(self) -> None:
        """Wait until every scheduled operation, including ones it schedules, finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("In-process worker operation failed: %s", error, exc_info=error)


__all__ = ["LocalWorkerInvoker", "WorkerDispatch"]
