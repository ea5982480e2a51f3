"""Worker invoker implementations."""

from cloud_storage_service.infrastructure.workers.http_worker_invoker import (
    HttpWorkerInvoker,
    WorkerInvokerError,
)
from cloud_storage_service.infrastructure.workers.local_worker_invoker import (
    LocalWorkerInvoker,
    WorkerDispatch,
)

__all__ = ["HttpWorkerInvoker", "LocalWorkerInvoker", "WorkerDispatch", "WorkerInvokerError"]
