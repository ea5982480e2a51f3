"""Application bootstrap/wiring."""

import logging
from dataclasses import dataclass
from datetime import datetime

from cloud_storage_service.application import Worker
from cloud_storage_service.application.services import (
    ContinuationProtocol,
    ContinuationSettings,
    CopyService,
    RestoreMonitor,
    RestoreRegistry,
    RestoreService,
)
from cloud_storage_service.config import (
    SecretsBackend,
    Settings,
    TableBackend,
    WorkerInvokerBackend,
)
from cloud_storage_service.domain.ports import DocumentTable, SecretsProvider, WorkerInvoker
from cloud_storage_service.infrastructure.jobs import table_job_assignment_helper_factory
from cloud_storage_service.infrastructure.secrets import (
    AwsSecretsManagerSecretsProvider,
    EnvironmentSecretsProvider,
)
from cloud_storage_service.infrastructure.storage import (
    FolderScanner,
    ObjectMetadataProbe,
    StorageClientFactory,
)
from cloud_storage_service.infrastructure.tables import (
    InMemoryDocumentTable,
    PostgresDocumentTable,
)
from cloud_storage_service.infrastructure.transfers import (
    CheckpointStore,
    CloudWorkItemProcessor,
    FileCopier,
    ProgressCallback,
    TransferStrategySelector,
)
from cloud_storage_service.infrastructure.workers import HttpWorkerInvoker, LocalWorkerInvoker

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ServiceContainer:
    """Long-lived service graph shared by the API and background loops."""

    settings: Settings
    table: DocumentTable
    storage_client_factory: StorageClientFactory
    worker_invoker: WorkerInvoker
    worker: Worker
    restore_monitor: RestoreMonitor


def _build_table(settings: Settings) -> DocumentTable:
    if settings.table_backend == TableBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError("CSS_POSTGRES_DSN is required when CSS_TABLE_BACKEND=postgres.")
        return PostgresDocumentTable(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
        )
    return InMemoryDocumentTable()


def _build_secrets_provider(settings: Settings) -> SecretsProvider:
    if settings.secrets_backend == SecretsBackend.AWS_SECRETS_MANAGER:
        return AwsSecretsManagerSecretsProvider(region=settings.aws_region)
    return EnvironmentSecretsProvider()


def _build_worker_invoker(settings: Settings) -> WorkerInvoker:
    if settings.worker_invoker_backend == WorkerInvokerBackend.HTTP:
        if settings.worker_url is None:
            raise ValueError("CSS_WORKER_URL is required when CSS_WORKER_INVOKER_BACKEND=http.")
        return HttpWorkerInvoker(
            worker_url=settings.worker_url,
            timeout_seconds=settings.worker_invoke_timeout_seconds,
        )
    return LocalWorkerInvoker()


def build_services(
    settings: Settings,
    table: DocumentTable | None = None,
    storage_client_factory: StorageClientFactory | None = None,
    worker_invoker: WorkerInvoker | None = None,
) -> ServiceContainer:
    """Compose service graph."""

    table = table or _build_table(settings)
    storage_client_factory = storage_client_factory or StorageClientFactory(
        secrets_provider=_build_secrets_provider(settings),
        config_secret_id=settings.storage_client_config_secret_id,
    )
    worker_invoker = worker_invoker or _build_worker_invoker(settings)
    probe = ObjectMetadataProbe(storage_client_factory)
    folder_scanner = FolderScanner(storage_client_factory)

    def build_file_copier(abort_at: datetime, progress_update: ProgressCallback) -> FileCopier:
        processor = CloudWorkItemProcessor(
            storage_client_factory=storage_client_factory,
            probe=probe,
            egress_api_key=settings.egress_api_key,
            egress_api_key_header=settings.egress_api_key_header,
            timeout_seconds=settings.copy_request_timeout_seconds,
            abort_at=abort_at,
        )
        return FileCopier(
            processor=processor,
            max_concurrency=settings.copy_max_concurrency,
            multipart_size=settings.copy_multipart_size,
            progress_update=progress_update,
        )

    continuation = ContinuationProtocol(
        checkpoint_store=CheckpointStore(
            table,
            write_attempts=settings.checkpoint_write_attempts,
            write_retry_delay_seconds=settings.checkpoint_write_retry_delay_seconds,
        ),
        worker_invoker=worker_invoker,
        file_copier_factory=build_file_copier,
        settings=ContinuationSettings(
            safety_margin_seconds=settings.copy_safety_margin_seconds,
            bail_out_seconds=settings.copy_bail_out_seconds,
            abort_margin_seconds=settings.copy_abort_margin_seconds,
            slice_seconds=settings.copy_slice_seconds,
            progress_threshold=settings.copy_progress_threshold,
        ),
    )
    copy_service = CopyService(
        folder_scanner=folder_scanner,
        strategy_selector=TransferStrategySelector(
            storage_client_factory=storage_client_factory,
            probe=probe,
            egress_api_key=settings.egress_api_key,
            egress_api_key_header=settings.egress_api_key_header,
            timeout_seconds=settings.copy_request_timeout_seconds,
        ),
        continuation=continuation,
    )
    restore_service = RestoreService(
        registry=RestoreRegistry(
            table,
            storage_client_factory,
            lock_timeout_seconds=settings.restore_lock_timeout_seconds,
        ),
        storage_client_factory=storage_client_factory,
        folder_scanner=folder_scanner,
    )
    worker = Worker(
        job_assignment_helper_factory=table_job_assignment_helper_factory(table),
        copy_service=copy_service,
        restore_service=restore_service,
        time_limit_seconds=settings.worker_time_limit_seconds,
    )
    if isinstance(worker_invoker, LocalWorkerInvoker):
        worker_invoker.bind(worker.do_work)

    logger.info(
        "Built services with %s table, %s secrets and %s worker invoker.",
        settings.table_backend,
        settings.secrets_backend,
        settings.worker_invoker_backend,
    )
    return ServiceContainer(
        settings=settings,
        table=table,
        storage_client_factory=storage_client_factory,
        worker_invoker=worker_invoker,
        worker=worker,
        restore_monitor=RestoreMonitor(
            table,
            storage_client_factory,
            worker_invoker,
            lock_timeout_seconds=settings.monitor_lock_timeout_seconds,
        ),
    )


__all__ = ["ServiceContainer", "build_services"]
