"""Runtime helpers for the copy engine."""

from cloud_storage_service.infrastructure.transfers.runtime.active_work_set import (
    ActiveWorkSet,
    SettledWork,
)
from cloud_storage_service.infrastructure.transfers.runtime.segment_ledger import SegmentLedger

__all__ = ["ActiveWorkSet", "SegmentLedger", "SettledWork"]
