"""List objects under a folder prefix and map them to copy pairs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import quote

from cloud_storage_service.domain.errors import UnsupportedLocatorError
from cloud_storage_service.domain.locators import (
    BlobStorageLocator,
    LocatorModel,
    S3Locator,
    locator_type_name,
)
from cloud_storage_service.domain.work_items import DestinationFile, SourceFile
from cloud_storage_service.infrastructure.storage.clients import ContainerClient
from cloud_storage_service.infrastructure.storage.storage_client_factory import (
    StorageClientFactory,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ScannedObject:
    """One object found under a folder prefix."""

    locator: S3Locator | BlobStorageLocator
    size: int
    storage_class: str | None = None


def is_folder(locator: LocatorModel) -> bool:
    """Folder locators name a prefix ending in '/' (or the container root)."""

    match locator:
        case S3Locator() | BlobStorageLocator():
            name = locator.object_name
            return name == "" or name.endswith("/")
    return False


class FolderScanner:
    """Expands folder locators into object listings."""

    def __init__(self, storage_client_factory: StorageClientFactory) -> None:
        self._storage_client_factory = storage_client_factory

    async def list_objects(self, folder: LocatorModel) -> list[ScannedObject]:
        """Return every object whose name starts with the folder prefix."""

        match folder:
            case S3Locator():
                return await self._list_s3_objects(folder)
            case BlobStorageLocator():
                return await self._list_blobs(folder)
        raise UnsupportedLocatorError(
            f"Folder listing is not supported for locator type '{locator_type_name(folder)}'"
        )

    async def scan_for_copy(
        self,
        source_file: SourceFile,
        destination_file: DestinationFile,
    ) -> list[tuple[SourceFile, DestinationFile]]:
        """Map objects under a source folder to the same names under a destination folder."""

        source_folder = source_file.locator
        destination_folder = destination_file.locator
        if not isinstance(destination_folder, S3Locator | BlobStorageLocator):
            raise UnsupportedLocatorError(
                "Folder copy is not supported for destination locator type "
                f"'{locator_type_name(destination_folder)}'"
            )
        if not isinstance(source_folder, S3Locator | BlobStorageLocator):
            raise UnsupportedLocatorError(
                "Folder copy is not supported for source locator type "
                f"'{locator_type_name(source_folder)}'"
            )

        prefix = source_folder.object_name
        destination_prefix = destination_folder.object_name
        pairs: list[tuple[SourceFile, DestinationFile]] = []
        for scanned in await self.list_objects(source_folder):
            suffix = scanned.locator.object_name[len(prefix) :]
            egress_url = None
            if source_file.egress_url:
                egress_url = f"{source_file.egress_url}{quote(suffix, safe='/~')}"
            pairs.append(
                (
                    SourceFile(
                        locator=scanned.locator,
                        egress_url=egress_url,
                        egress_auth_type=source_file.egress_auth_type,
                    ),
                    DestinationFile(
                        locator=destination_folder.with_object_name(destination_prefix + suffix),
                        storage_class=destination_file.storage_class,
                    ),
                )
            )
        logger.info(
            "Scanned %d object(s) under '%s' for copy to '%s'.",
            len(pairs),
            source_folder.url,
            destination_folder.url,
        )
        return pairs

    async def _list_s3_objects(self, folder: S3Locator) -> list[ScannedObject]:
        client = await self._storage_client_factory.get_s3_client(folder.bucket, folder.region)
        objects: list[ScannedObject] = []
        continuation_token: str | None = None
        while True:
            kwargs: dict[str, str] = {"Bucket": folder.bucket, "Prefix": folder.key}
            if continuation_token is not None:
                kwargs["ContinuationToken"] = continuation_token
            response = await asyncio.to_thread(client.list_objects_v2, **kwargs)
            for entry in response.get("Contents", []):
                key = str(entry["Key"])
                if key.endswith("/"):
                    continue
                objects.append(
                    ScannedObject(
                        locator=folder.with_object_name(key),
                        size=int(entry.get("Size", 0)),
                        storage_class=entry.get("StorageClass"),
                    )
                )
            if not response.get("IsTruncated"):
                return objects
            continuation_token = response.get("NextContinuationToken")
            if continuation_token is None:
                return objects

    async def _list_blobs(self, folder: BlobStorageLocator) -> list[ScannedObject]:
        container_client = await self._storage_client_factory.get_container_client(
            folder.account, folder.container
        )
        return await asyncio.to_thread(self._collect_blobs, container_client, folder)

    def _collect_blobs(
        self,
        container_client: ContainerClient,
        folder: BlobStorageLocator,
    ) -> list[ScannedObject]:
        objects: list[ScannedObject] = []
        for blob in container_client.list_blobs(name_starts_with=folder.blob_name or None):
            name = str(blob.name)
            if name.endswith("/"):
                continue
            objects.append(
                ScannedObject(
                    locator=folder.with_object_name(name),
                    size=int(getattr(blob, "size", 0) or 0),
                    storage_class=getattr(blob, "blob_tier", None),
                )
            )
        return objects


__all__ = ["FolderScanner", "ScannedObject", "is_folder"]
