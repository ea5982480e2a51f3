"""FastAPI application entrypoint."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI

from cloud_storage_service import __version__
from cloud_storage_service.api import api_router
from cloud_storage_service.api.dependencies import get_services, get_settings
from cloud_storage_service.application.services import RestoreMonitor
from cloud_storage_service.infrastructure.tables import PostgresDocumentTable

logger = logging.getLogger(__name__)


async def run_monitor_loop(monitor: RestoreMonitor, interval_seconds: float) -> None:
    """Sweep restore work items every `interval_seconds` until cancelled."""

    while True:
        try:
            await monitor.run()
        except Exception:  # noqa: BLE001
            logger.exception("Restore monitor sweep failed.")
        await asyncio.sleep(interval_seconds)


def create_app() -> FastAPI:
    """Build FastAPI application."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        """Build singleton dependencies and start the monitor loop."""

        services = get_services()
        monitor_task: asyncio.Task[None] | None = None
        if services.settings.monitor_enabled:
            monitor_task = asyncio.create_task(
                run_monitor_loop(
                    services.restore_monitor,
                    services.settings.monitor_interval_seconds,
                )
            )
        try:
            yield
        finally:
            if monitor_task is not None:
                monitor_task.cancel()
                with suppress(asyncio.CancelledError):
                    await monitor_task
            if isinstance(services.table, PostgresDocumentTable):
                await services.table.close()

    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """Run local development server."""

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "cloud_storage_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


__all__ = ["app", "create_app", "run", "run_monitor_loop"]
