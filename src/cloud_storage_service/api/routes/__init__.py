"""Route modules public API."""

from cloud_storage_service.api.routes.health import router as health_router
from cloud_storage_service.api.routes.monitor import router as monitor_router
from cloud_storage_service.api.routes.worker import router as worker_router

__all__ = ["health_router", "monitor_router", "worker_router"]
