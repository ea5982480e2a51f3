"""Storage client adapters."""

from cloud_storage_service.infrastructure.storage.clients import (
    BlobClient,
    ContainerClient,
    S3Client,
)
from cloud_storage_service.infrastructure.storage.folder_scanner import (
    FolderScanner,
    ScannedObject,
    is_folder,
)
from cloud_storage_service.infrastructure.storage.object_probe import (
    ObjectMetadata,
    ObjectMetadataProbe,
    get_blob_metadata,
    head_s3_object,
)
from cloud_storage_service.infrastructure.storage.signed_urls import blob_sas_url, presign_s3_get
from cloud_storage_service.infrastructure.storage.storage_client_factory import (
    AwsBucketConfig,
    AzureAccountConfig,
    StorageClientConfig,
    StorageClientFactory,
    build_s3_client_kwargs,
)

__all__ = [
    "AwsBucketConfig",
    "AzureAccountConfig",
    "BlobClient",
    "ContainerClient",
    "FolderScanner",
    "ObjectMetadata",
    "ObjectMetadataProbe",
    "S3Client",
    "ScannedObject",
    "StorageClientConfig",
    "StorageClientFactory",
    "blob_sas_url",
    "build_s3_client_kwargs",
    "get_blob_metadata",
    "head_s3_object",
    "is_folder",
    "presign_s3_get",
]
