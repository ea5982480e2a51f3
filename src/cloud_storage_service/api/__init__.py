"""HTTP API layer."""

from cloud_storage_service.api.router import api_router

__all__ = ["api_router"]
