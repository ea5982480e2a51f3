"""Per-cloud implementation of copy engine work item states."""

from __future__ import annotations

import asyncio
import base64
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import httpx
from azure.storage.blob import BlobBlock, ContentSettings

from cloud_storage_service.domain.errors import (
    ConfigurationError,
    TransferError,
    UnsupportedLocatorError,
)
from cloud_storage_service.domain.locators import (
    BlobStorageLocator,
    GenericLocator,
    LocatorModel,
    S3Locator,
    locator_type_name,
)
from cloud_storage_service.domain.work_items import (
    EgressAuthType,
    MultipartSegment,
    SourceFile,
    WorkItem,
)
from cloud_storage_service.infrastructure.storage.clients import BlobClient, S3Client
from cloud_storage_service.infrastructure.storage.object_probe import (
    ObjectMetadata,
    ObjectMetadataProbe,
    head_s3_object,
)
from cloud_storage_service.infrastructure.storage.signed_urls import blob_sas_url, presign_s3_get
from cloud_storage_service.infrastructure.storage.storage_client_factory import (
    StorageClientFactory,
)
from cloud_storage_service.infrastructure.transfers.file_copier import (
    PrepareResult,
    SegmentResult,
)

logger = logging.getLogger(__name__)

_SIGNED_URL_EXPIRY_SECONDS = 12 * 3600
_DEFAULT_TIMEOUT_SECONDS = 300.0
_MIN_TIMEOUT_SECONDS = 1.0
_DEFAULT_EGRESS_API_KEY_HEADER = "x-api-key"


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _normalize_etag(etag: str) -> str:
    return etag.strip().removeprefix("W/").strip('"')


def should_skip(source: ObjectMetadata, destination: ObjectMetadata | None) -> bool:
    """Whether the destination already holds the same object.

    Same etag, or same size and content type with a destination at least as
    recent as the source.
    """

    if destination is None:
        return False
    if source.etag and destination.etag:
        if _normalize_etag(source.etag) == _normalize_etag(destination.etag):
            return True

    source_modified = _as_utc(source.last_modified)
    destination_modified = _as_utc(destination.last_modified)
    return (
        source.size == destination.size
        and source.content_type == destination.content_type
        and source_modified is not None
        and destination_modified is not None
        and destination_modified >= source_modified
    )


def _new_block_id() -> str:
    return base64.b64encode(uuid4().hex.encode("ascii")).decode("ascii")


class CloudWorkItemProcessor:
    """Executes work item states against S3, Blob Storage and HTTP sources."""

    def __init__(
        self,
        storage_client_factory: StorageClientFactory,
        probe: ObjectMetadataProbe,
        egress_api_key: str | None = None,
        egress_api_key_header: str = _DEFAULT_EGRESS_API_KEY_HEADER,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        abort_at: datetime | None = None,
        signed_url_expiry_seconds: int = _SIGNED_URL_EXPIRY_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storage_client_factory = storage_client_factory
        self._probe = probe
        self._egress_api_key = egress_api_key
        self._egress_api_key_header = egress_api_key_header
        self._timeout_seconds = timeout_seconds
        self._abort_at = abort_at
        self._signed_url_expiry_seconds = signed_url_expiry_seconds
        self._transport = transport

    async def prepare(self, work_item: WorkItem) -> PrepareResult:
        """Resolve how to read the source and whether the destination is already current."""

        source = work_item.source_file
        source_url: str | None = None
        source_headers: dict[str, str] | None = None
        metadata: ObjectMetadata | None = None

        if source.egress_url:
            source_url = source.egress_url
            source_headers = self._egress_headers(source)
        else:
            metadata = await self._head_with_destination_credentials(work_item)
            if metadata is None:
                metadata = await self._probe.head_url(source.locator.url)
                if metadata is not None:
                    source_url = source.locator.url
            if metadata is None:
                source_url = await self._signed_source_url(source.locator)

        if metadata is None:
            assert source_url is not None
            metadata = await self._probe.probe_range(source_url, source_headers)

        destination_metadata = await self._destination_metadata(
            work_item.destination_file.locator
        )
        return PrepareResult(
            content_length=metadata.size,
            source_url=source_url,
            source_headers=source_headers,
            content_type=metadata.content_type,
            last_modified=metadata.last_modified,
            skip=should_skip(metadata, destination_metadata),
        )

    async def copy_single(self, work_item: WorkItem) -> None:
        """Copy the whole object with one write on the destination."""

        destination = work_item.destination_file.locator
        match destination:
            case S3Locator():
                client = await self._storage_client_factory.get_s3_client(destination.bucket)
                write_args = self._s3_write_args(work_item, destination)
                source = work_item.source_file.locator
                if work_item.source_url is None and isinstance(source, S3Locator):
                    await asyncio.to_thread(
                        client.copy_object,
                        CopySource={"Bucket": source.bucket, "Key": source.key},
                        MetadataDirective="REPLACE",
                        **write_args,
                    )
                    return
                body = await self._download(work_item)
                await asyncio.to_thread(client.put_object, Body=body, **write_args)
            case BlobStorageLocator():
                blob_client = await self._blob_client(destination)
                content_settings = ContentSettings(content_type=work_item.content_type)
                if work_item.source_headers:
                    body = await self._download(work_item)
                    await asyncio.to_thread(
                        blob_client.upload_blob,
                        body,
                        overwrite=True,
                        content_settings=content_settings,
                    )
                    return
                await asyncio.to_thread(
                    blob_client.upload_blob_from_url,
                    self._require_source_url(work_item),
                    overwrite=True,
                    content_settings=content_settings,
                )
            case _:
                raise self._unsupported_destination(destination)

    async def start_multipart(self, work_item: WorkItem) -> str:
        """Open a multipart session. Blob uploads get a locally generated id."""

        destination = work_item.destination_file.locator
        match destination:
            case S3Locator():
                client = await self._storage_client_factory.get_s3_client(destination.bucket)
                response = await asyncio.to_thread(
                    client.create_multipart_upload,
                    **self._s3_write_args(work_item, destination),
                )
                upload_id = response.get("UploadId")
                if not isinstance(upload_id, str) or not upload_id:
                    raise TransferError("create_multipart_upload did not return UploadId")
                return upload_id
            case BlobStorageLocator():
                return f"blob-{uuid4().hex}"
            case _:
                raise self._unsupported_destination(destination)

    async def copy_segment(self, work_item: WorkItem, segment: MultipartSegment) -> SegmentResult:
        """Transfer one byte range by range copy or ranged download."""

        destination = work_item.destination_file.locator
        upload_id = self._upload_id(work_item)
        match destination:
            case S3Locator():
                client = await self._storage_client_factory.get_s3_client(destination.bucket)
                source = work_item.source_file.locator
                if work_item.source_url is None and isinstance(source, S3Locator):
                    response = await asyncio.to_thread(
                        client.upload_part_copy,
                        Bucket=destination.bucket,
                        Key=destination.key,
                        UploadId=upload_id,
                        PartNumber=segment.part_number,
                        CopySource={"Bucket": source.bucket, "Key": source.key},
                        CopySourceRange=f"bytes={segment.start}-{segment.end}",
                    )
                    return SegmentResult(etag=self._extract_copy_part_etag(response))

                body = await self._download(work_item, segment)
                response = await asyncio.to_thread(
                    client.upload_part,
                    Bucket=destination.bucket,
                    Key=destination.key,
                    UploadId=upload_id,
                    PartNumber=segment.part_number,
                    Body=body,
                )
                return SegmentResult(etag=self._extract_etag(response))
            case BlobStorageLocator():
                blob_client = await self._blob_client(destination)
                block_id = _new_block_id()
                if work_item.source_headers:
                    body = await self._download(work_item, segment)
                    await asyncio.to_thread(blob_client.stage_block, block_id, body)
                else:
                    await asyncio.to_thread(
                        blob_client.stage_block_from_url,
                        block_id,
                        self._require_source_url(work_item),
                        source_offset=segment.start,
                        source_length=segment.length,
                    )
                return SegmentResult(block_id=block_id)
            case _:
                raise self._unsupported_destination(destination)

    async def complete_multipart(
        self,
        work_item: WorkItem,
        segments: list[MultipartSegment],
    ) -> None:
        """Commit parts or blocks sorted by part number."""

        ordered = sorted(segments, key=lambda segment: segment.part_number)
        destination = work_item.destination_file.locator
        match destination:
            case S3Locator():
                client = await self._storage_client_factory.get_s3_client(destination.bucket)
                await asyncio.to_thread(
                    client.complete_multipart_upload,
                    Bucket=destination.bucket,
                    Key=destination.key,
                    UploadId=self._upload_id(work_item),
                    MultipartUpload={
                        "Parts": [
                            {"ETag": segment.etag or "", "PartNumber": segment.part_number}
                            for segment in ordered
                        ]
                    },
                )
            case BlobStorageLocator():
                blob_client = await self._blob_client(destination)
                await asyncio.to_thread(
                    blob_client.commit_block_list,
                    [BlobBlock(block_id=segment.block_id) for segment in ordered],
                    content_settings=ContentSettings(content_type=work_item.content_type),
                )
            case _:
                raise self._unsupported_destination(destination)

    async def _head_with_destination_credentials(
        self,
        work_item: WorkItem,
    ) -> ObjectMetadata | None:
        """Probe an S3 source through the destination bucket's credentials."""

        source = work_item.source_file.locator
        destination = work_item.destination_file.locator
        if not (isinstance(source, S3Locator) and isinstance(destination, S3Locator)):
            return None
        try:
            client = await self._storage_client_factory.get_s3_client(
                destination.bucket, source.region
            )
            return await head_s3_object(client, source.bucket, source.key)
        except ConfigurationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.info(
                "Source '%s' is not readable with credentials of bucket '%s': %s",
                source.url,
                destination.bucket,
                exc,
            )
            return None

    async def _signed_source_url(self, locator: LocatorModel) -> str:
        match locator:
            case S3Locator():
                client = await self._storage_client_factory.get_s3_client(
                    locator.bucket, locator.region
                )
                return await presign_s3_get(
                    client, locator.bucket, locator.key, self._signed_url_expiry_seconds
                )
            case BlobStorageLocator():
                container_client = await self._storage_client_factory.get_container_client(
                    locator.account, locator.container
                )
                return blob_sas_url(
                    container_client, locator.blob_name, self._signed_url_expiry_seconds
                )
            case GenericLocator():
                return locator.url
        raise UnsupportedLocatorError(
            f"Unsupported source locator type '{locator_type_name(locator)}'"
        )

    async def _destination_metadata(self, locator: LocatorModel) -> ObjectMetadata | None:
        """Return destination metadata, or None when it does not exist yet."""

        if not isinstance(locator, (S3Locator, BlobStorageLocator)):
            raise self._unsupported_destination(locator)
        try:
            return await self._probe.head_native(locator)
        except ConfigurationError:
            raise
        except Exception:  # noqa: BLE001
            return None

    def _egress_headers(self, source: SourceFile) -> dict[str, str] | None:
        if source.egress_auth_type != EgressAuthType.API_KEY:
            return None
        if not self._egress_api_key:
            raise ConfigurationError(
                f"Egress URL for '{source.locator.url}' requires an API key "
                "but none is configured."
            )
        return {self._egress_api_key_header: self._egress_api_key}

    async def _download(
        self,
        work_item: WorkItem,
        segment: MultipartSegment | None = None,
    ) -> bytes:
        url = self._require_source_url(work_item)
        headers = dict(work_item.source_headers or {})
        if segment is not None:
            headers["range"] = f"bytes={segment.start}-{segment.end}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout(),
                transport=self._transport,
                follow_redirects=True,
            ) as http_client:
                response = await http_client.get(url, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransferError(
                f"Download of '{work_item.source_file.locator.url}' failed: {exc}"
            ) from exc

        body = response.content
        if segment is not None and len(body) != segment.length:
            raise TransferError(
                f"Expected {segment.length} bytes for part {segment.part_number} of "
                f"'{work_item.source_file.locator.url}', received {len(body)}"
            )
        return body

    def _timeout(self) -> float:
        """Per-request timeout bounded by the invocation's abort time."""

        if self._abort_at is None:
            return self._timeout_seconds
        remaining = (self._abort_at - datetime.now(UTC)).total_seconds()
        return max(_MIN_TIMEOUT_SECONDS, min(self._timeout_seconds, remaining))

    async def _blob_client(self, locator: BlobStorageLocator) -> BlobClient:
        container_client = await self._storage_client_factory.get_container_client(
            locator.account, locator.container
        )
        return container_client.get_blob_client(locator.blob_name)

    def _s3_write_args(self, work_item: WorkItem, destination: S3Locator) -> dict[str, Any]:
        args: dict[str, Any] = {"Bucket": destination.bucket, "Key": destination.key}
        if work_item.content_type:
            args["ContentType"] = work_item.content_type
        if work_item.destination_file.storage_class:
            args["StorageClass"] = work_item.destination_file.storage_class
        return args

    def _upload_id(self, work_item: WorkItem) -> str:
        if work_item.multipart_data is None:
            raise TransferError(f"Work item '{work_item.describe()}' has no multipart data")
        return work_item.multipart_data.upload_id

    def _require_source_url(self, work_item: WorkItem) -> str:
        if not work_item.source_url:
            raise TransferError(
                f"No source URL resolved for '{work_item.source_file.locator.url}'"
            )
        return work_item.source_url

    def _extract_copy_part_etag(self, response: dict[str, Any]) -> str:
        copy_part_result = response.get("CopyPartResult")
        if not isinstance(copy_part_result, dict):
            raise TransferError("upload_part_copy did not return CopyPartResult")
        return self._extract_etag(copy_part_result)

    def _extract_etag(self, response: dict[str, Any]) -> str:
        etag = response.get("ETag")
        if not isinstance(etag, str) or not etag:
            raise TransferError("Upload response did not contain an ETag")
        return etag

    def _unsupported_destination(self, locator: LocatorModel) -> UnsupportedLocatorError:
        return UnsupportedLocatorError(
            f"Unsupported destination locator type '{locator_type_name(locator)}'"
        )


__all__ = ["CloudWorkItemProcessor", "should_skip"]
