"""Application layer public API."""

from cloud_storage_service.application.worker import Worker, WorkerRequestError

__all__ = ["Worker", "WorkerRequestError"]
