"""Copy engine and transfer adapters."""

from cloud_storage_service.infrastructure.transfers.checkpoint_store import (
    CHECKPOINT_PAGE_SIZE,
    CheckpointStore,
)
from cloud_storage_service.infrastructure.transfers.file_copier import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MULTIPART_SIZE,
    FileCopier,
    PrepareResult,
    ProgressCallback,
    SegmentResult,
    WorkItemProcessor,
    plan_segments,
)
from cloud_storage_service.infrastructure.transfers.strategy import TransferStrategySelector
from cloud_storage_service.infrastructure.transfers.work_item_processor import (
    CloudWorkItemProcessor,
    should_skip,
)

__all__ = [
    "CHECKPOINT_PAGE_SIZE",
    "CheckpointStore",
    "CloudWorkItemProcessor",
    "DEFAULT_MAX_CONCURRENCY",
    "DEFAULT_MULTIPART_SIZE",
    "FileCopier",
    "PrepareResult",
    "ProgressCallback",
    "SegmentResult",
    "TransferStrategySelector",
    "WorkItemProcessor",
    "plan_segments",
    "should_skip",
]
