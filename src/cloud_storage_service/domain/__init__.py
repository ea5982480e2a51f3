"""Domain public API."""

from cloud_storage_service.domain.errors import (
    CloudStorageServiceError,
    ConfigurationError,
    InvalidInputError,
    ProbeError,
    RestoreStatusParseError,
    TransferError,
    UnsupportedLocatorError,
    UnsupportedTransferError,
)
from cloud_storage_service.domain.jobs import (
    TERMINAL_JOB_STATUSES,
    JobAssignment,
    JobStatus,
    WorkerRequest,
)
from cloud_storage_service.domain.locators import (
    BlobStorageLocator,
    GenericLocator,
    Locator,
    LocatorModel,
    S3Locator,
    parse_locator,
)
from cloud_storage_service.domain.ports import (
    DocumentTable,
    JobAssignmentHelper,
    JobAssignmentHelperFactory,
    QueryResults,
    SecretsProvider,
    TableMutex,
    WorkerInvoker,
)
from cloud_storage_service.domain.problems import ProblemDetail, ProblemType
from cloud_storage_service.domain.restore import (
    RestorePriority,
    RestoreWorkItem,
    build_restore_work_item_id,
    parse_restore_value,
)
from cloud_storage_service.domain.work_items import (
    DestinationFile,
    EgressAuthType,
    FileCopierState,
    MultipartData,
    MultipartSegment,
    SourceFile,
    WorkItem,
    WorkType,
)

__all__ = [
    "BlobStorageLocator",
    "CloudStorageServiceError",
    "ConfigurationError",
    "DestinationFile",
    "DocumentTable",
    "EgressAuthType",
    "FileCopierState",
    "GenericLocator",
    "InvalidInputError",
    "JobAssignment",
    "JobAssignmentHelper",
    "JobAssignmentHelperFactory",
    "JobStatus",
    "Locator",
    "LocatorModel",
    "MultipartData",
    "MultipartSegment",
    "ProbeError",
    "ProblemDetail",
    "ProblemType",
    "QueryResults",
    "RestorePriority",
    "RestoreStatusParseError",
    "RestoreWorkItem",
    "S3Locator",
    "SecretsProvider",
    "SourceFile",
    "TERMINAL_JOB_STATUSES",
    "TableMutex",
    "TransferError",
    "UnsupportedLocatorError",
    "UnsupportedTransferError",
    "WorkItem",
    "WorkType",
    "WorkerInvoker",
    "WorkerRequest",
    "build_restore_work_item_id",
    "parse_locator",
    "parse_restore_value",
]
