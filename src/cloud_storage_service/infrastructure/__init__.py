"""Infrastructure layer public API."""

from cloud_storage_service.infrastructure.jobs import (
    TableJobAssignmentHelper,
    table_job_assignment_helper_factory,
)
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
    TransferStrategySelector,
)
from cloud_storage_service.infrastructure.workers import (
    HttpWorkerInvoker,
    LocalWorkerInvoker,
    WorkerInvokerError,
)

__all__ = [
    "AwsSecretsManagerSecretsProvider",
    "CheckpointStore",
    "CloudWorkItemProcessor",
    "EnvironmentSecretsProvider",
    "FileCopier",
    "FolderScanner",
    "HttpWorkerInvoker",
    "InMemoryDocumentTable",
    "LocalWorkerInvoker",
    "ObjectMetadataProbe",
    "PostgresDocumentTable",
    "StorageClientFactory",
    "TableJobAssignmentHelper",
    "TransferStrategySelector",
    "WorkerInvokerError",
    "table_job_assignment_helper_factory",
]
