"""Fan-in over in-flight work item operations."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any

from cloud_storage_service.domain.work_items import WorkItem


@dataclass(slots=True)
class SettledWork:
    """Outcome of one finished work item operation."""

    work_item: WorkItem
    result: Any = None
    error: BaseException | None = None


class ActiveWorkSet:
    """Tracks running operations and yields them as they settle.

    Settled operations are only observed through `wait_next`, so the caller
    handles completions one batch at a time on its own task.
    """

    def __init__(self) -> None:
        self._tasks: dict[asyncio.Task[Any], WorkItem] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __bool__(self) -> bool:
        return bool(self._tasks)

    def start(self, work_item: WorkItem, operation: Awaitable[Any]) -> None:
        """Schedule `operation` for `work_item`."""

        task = asyncio.ensure_future(operation)
        self._tasks[task] = work_item

    async def wait_next(self, timeout: float | None = None) -> list[SettledWork]:
        """Wait until at least one operation settles or `timeout` elapses."""

        if not self._tasks:
            return []

        done, _ = await asyncio.wait(
            set(self._tasks),
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
        settled: list[SettledWork] = []
        for task in [task for task in self._tasks if task in done]:
            work_item = self._tasks.pop(task)
            if task.cancelled():
                settled.append(SettledWork(work_item=work_item, error=asyncio.CancelledError()))
                continue
            error = task.exception()
            if error is not None:
                settled.append(SettledWork(work_item=work_item, error=error))
            else:
                settled.append(SettledWork(work_item=work_item, result=task.result()))
        return settled

    async def cancel_all(self) -> list[WorkItem]:
        """Cancel every running operation and return their work items in start order."""

        tasks = list(self._tasks)
        work_items = [self._tasks[task] for task in tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        return work_items


__all__ = ["ActiveWorkSet", "SettledWork"]
