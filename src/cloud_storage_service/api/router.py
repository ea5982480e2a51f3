"""Top-level API router composition."""

from fastapi import APIRouter

from cloud_storage_service.api.routes import health_router, monitor_router, worker_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(worker_router)
api_router.include_router(monitor_router)

__all__ = ["api_router"]
