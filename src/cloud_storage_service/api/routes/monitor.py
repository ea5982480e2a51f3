"""Restore monitor routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cloud_storage_service.api.dependencies import get_restore_monitor
from cloud_storage_service.application.services import RestoreMonitor

router = APIRouter(tags=["monitor"])


@router.post("/monitor/sweeps")
async def run_monitor_sweep(
    monitor: RestoreMonitor = Depends(get_restore_monitor),
) -> dict[str, bool]:
    """Run one restore monitor sweep unless another one holds the lock."""

    return {"swept": await monitor.run()}


__all__ = ["router"]
