"""Application services public API."""

from cloud_storage_service.application.services.continuation import (
    CONTINUE_COPY_OPERATION,
    ContinuationProtocol,
    ContinuationSettings,
    FileCopierFactory,
)
from cloud_storage_service.application.services.copy_service import CopyService
from cloud_storage_service.application.services.restore_monitor import (
    COMPLETE_RESTORE_OPERATION,
    MONITOR_MUTEX_NAME,
    RestoreMonitor,
)
from cloud_storage_service.application.services.restore_service import (
    RestoreRegistry,
    RestoreService,
)

__all__ = [
    "COMPLETE_RESTORE_OPERATION",
    "CONTINUE_COPY_OPERATION",
    "ContinuationProtocol",
    "ContinuationSettings",
    "CopyService",
    "FileCopierFactory",
    "MONITOR_MUTEX_NAME",
    "RestoreMonitor",
    "RestoreRegistry",
    "RestoreService",
]
