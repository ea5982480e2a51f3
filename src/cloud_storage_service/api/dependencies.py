"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from cloud_storage_service.application import Worker
from cloud_storage_service.application.services import RestoreMonitor
from cloud_storage_service.bootstrap import ServiceContainer, build_services
from cloud_storage_service.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_services() -> ServiceContainer:
    """Return singleton service graph."""

    return build_services(get_settings())


def get_worker() -> Worker:
    return get_services().worker


def get_restore_monitor() -> RestoreMonitor:
    return get_services().restore_monitor


__all__ = ["get_restore_monitor", "get_services", "get_settings", "get_worker"]
