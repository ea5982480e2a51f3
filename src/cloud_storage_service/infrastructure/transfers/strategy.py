"""Non-resumable single-file transfer strategies."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

import httpx
from azure.storage.blob import ContentSettings

from cloud_storage_service.domain.errors import (
    ConfigurationError,
    ProbeError,
    TransferError,
    UnsupportedTransferError,
)
from cloud_storage_service.domain.locators import (
    BlobStorageLocator,
    GenericLocator,
    LocatorModel,
    S3Locator,
    locator_type_name,
)
from cloud_storage_service.domain.work_items import DestinationFile, EgressAuthType, SourceFile
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
from cloud_storage_service.infrastructure.transfers.file_copier import plan_segments
from cloud_storage_service.infrastructure.transfers.work_item_processor import should_skip

logger = logging.getLogger(__name__)

SINGLE_COPY_LIMIT = 128 * 1024 * 1024
_DEFAULT_PART_SIZE = 64 * 1024 * 1024
_DEFAULT_PART_CONCURRENCY = 4
_S3_MAX_PART_COUNT = 10_000
_PRESIGNED_URL_EXPIRY_SECONDS = 3600
_DEFAULT_TIMEOUT_SECONDS = 300.0
_DEFAULT_COPY_POLL_INTERVAL_SECONDS = 2.0


@dataclass(slots=True, frozen=True)
class _SourceRead:
    url: str
    headers: dict[str, str] | None = None


_Strategy = tuple[str, Callable[[], Awaitable[None]]]


class TransferStrategySelector:
    """Copy one file by trying strategies in order until one succeeds.

    S3 destinations try native copy, the public source URL, then a presigned
    source URL. Blob destinations try copy-from-URL with a signed source URL,
    then the public URL. An egress URL, when given, goes first.
    """

    def __init__(
        self,
        storage_client_factory: StorageClientFactory,
        probe: ObjectMetadataProbe,
        egress_api_key: str | None = None,
        egress_api_key_header: str = "x-api-key",
        single_copy_limit: int = SINGLE_COPY_LIMIT,
        part_size: int = _DEFAULT_PART_SIZE,
        part_concurrency: int = _DEFAULT_PART_CONCURRENCY,
        presigned_url_expiry_seconds: int = _PRESIGNED_URL_EXPIRY_SECONDS,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        copy_poll_interval_seconds: float = _DEFAULT_COPY_POLL_INTERVAL_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storage_client_factory = storage_client_factory
        self._probe = probe
        self._egress_api_key = egress_api_key
        self._egress_api_key_header = egress_api_key_header
        self._single_copy_limit = single_copy_limit
        self._part_size = part_size
        self._part_concurrency = max(1, part_concurrency)
        self._presigned_url_expiry_seconds = presigned_url_expiry_seconds
        self._timeout_seconds = timeout_seconds
        self._copy_poll_interval_seconds = max(0.0, copy_poll_interval_seconds)
        self._transport = transport

    async def copy(self, source_file: SourceFile, destination_file: DestinationFile) -> None:
        """Copy `source_file` to `destination_file`, or raise `UnsupportedTransferError`.

        Returns without writing when the destination already holds the same object.
        """

        if await self._destination_is_current(source_file, destination_file):
            logger.info(
                "Destination '%s' already matches '%s'. Skipping copy.",
                destination_file.locator.url,
                source_file.locator.url,
            )
            return

        strategies = self._strategies(source_file, destination_file)
        last_error: Exception | None = None
        for name, attempt in strategies:
            try:
                await attempt()
                logger.info(
                    "Copied '%s' to '%s' using %s.",
                    source_file.locator.url,
                    destination_file.locator.url,
                    name,
                )
                return
            except ConfigurationError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Strategy %s failed for '%s' -> '%s': %s",
                    name,
                    source_file.locator.url,
                    destination_file.locator.url,
                    exc,
                )
                last_error = exc

        raise UnsupportedTransferError(
            "No transfer strategy succeeded for "
            f"{locator_type_name(source_file.locator)} '{source_file.locator.url}' -> "
            f"{locator_type_name(destination_file.locator)} '{destination_file.locator.url}'"
        ) from last_error

    def _strategies(
        self,
        source_file: SourceFile,
        destination_file: DestinationFile,
    ) -> list[_Strategy]:
        source = source_file.locator
        destination = destination_file.locator
        strategies: list[_Strategy] = []

        match destination:
            case S3Locator():
                if source_file.egress_url:
                    egress = _SourceRead(source_file.egress_url, self._egress_headers(source_file))
                    strategies.append(
                        ("egress URL pull", lambda: self._pull_to_s3(egress, destination_file))
                    )
                if isinstance(source, S3Locator):
                    strategies.append(
                        ("native S3 copy", lambda: self._native_s3_copy(source, destination_file))
                    )
                public = _SourceRead(source.url)
                strategies.append(
                    ("public URL pull", lambda: self._pull_to_s3(public, destination_file))
                )
                if not isinstance(source, GenericLocator):
                    strategies.append(
                        (
                            "signed URL pull",
                            lambda: self._pull_signed_to_s3(source, destination_file),
                        )
                    )
            case BlobStorageLocator():
                if source_file.egress_url:
                    egress = _SourceRead(source_file.egress_url, self._egress_headers(source_file))
                    strategies.append(
                        ("egress URL pull", lambda: self._pull_to_blob(egress, destination))
                    )
                if not isinstance(source, GenericLocator):
                    strategies.append(
                        (
                            "signed URL copy",
                            lambda: self._pull_signed_to_blob(source, destination),
                        )
                    )
                public = _SourceRead(source.url)
                strategies.append(
                    ("public URL copy", lambda: self._pull_to_blob(public, destination))
                )
        return strategies

    async def _destination_is_current(
        self,
        source_file: SourceFile,
        destination_file: DestinationFile,
    ) -> bool:
        destination = destination_file.locator
        if isinstance(destination, GenericLocator):
            return False
        try:
            destination_metadata = await self._probe.head_native(destination)
        except ConfigurationError:
            raise
        except Exception:  # noqa: BLE001
            return False
        if destination_metadata is None:
            return False

        try:
            source_metadata = await self._probe.probe(source_file.locator)
        except ProbeError as exc:
            logger.info(
                "Could not compare '%s' with its destination: %s", source_file.locator.url, exc
            )
            return False
        return should_skip(source_metadata, destination_metadata)

    async def _native_s3_copy(self, source: S3Locator, destination_file: DestinationFile) -> None:
        destination = destination_file.locator
        assert isinstance(destination, S3Locator)
        client = await self._storage_client_factory.get_s3_client(destination.bucket, source.region)
        metadata = await head_s3_object(client, source.bucket, source.key)
        copy_source = {"Bucket": source.bucket, "Key": source.key}
        extra_args = self._s3_extra_args(destination_file, metadata.content_type)

        if metadata.size < self._single_copy_limit:
            await asyncio.to_thread(
                client.copy_object,
                Bucket=destination.bucket,
                Key=destination.key,
                CopySource=copy_source,
                MetadataDirective="REPLACE",
                **extra_args,
            )
            return

        async def copy_part(part_number: int, start: int, end: int) -> str:
            response = await asyncio.to_thread(
                client.upload_part_copy,
                Bucket=destination.bucket,
                Key=destination.key,
                UploadId=upload_id,
                PartNumber=part_number,
                CopySource=copy_source,
                CopySourceRange=f"bytes={start}-{end}",
            )
            copy_part_result = response.get("CopyPartResult") or {}
            return _extract_etag(copy_part_result)

        upload_id = await self._create_multipart(client, destination, extra_args)
        await self._run_multipart(client, destination, upload_id, metadata.size, copy_part)

    async def _pull_signed_to_s3(
        self,
        source: LocatorModel,
        destination_file: DestinationFile,
    ) -> None:
        url = await self._signed_url(source)
        await self._pull_to_s3(_SourceRead(url), destination_file)

    async def _pull_to_s3(self, read: _SourceRead, destination_file: DestinationFile) -> None:
        destination = destination_file.locator
        assert isinstance(destination, S3Locator)
        metadata = await self._source_metadata(read)
        client = await self._storage_client_factory.get_s3_client(destination.bucket)
        extra_args = self._s3_extra_args(destination_file, metadata.content_type)

        if metadata.size <= self._part_size:
            body = await self._download(read)
            await asyncio.to_thread(
                client.put_object,
                Bucket=destination.bucket,
                Key=destination.key,
                Body=body,
                **extra_args,
            )
            return

        async def upload_part(part_number: int, start: int, end: int) -> str:
            body = await self._download(read, start, end)
            response = await asyncio.to_thread(
                client.upload_part,
                Bucket=destination.bucket,
                Key=destination.key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=body,
            )
            return _extract_etag(response)

        upload_id = await self._create_multipart(client, destination, extra_args)
        await self._run_multipart(client, destination, upload_id, metadata.size, upload_part)

    async def _pull_signed_to_blob(
        self,
        source: LocatorModel,
        destination: BlobStorageLocator,
    ) -> None:
        url = await self._signed_url(source)
        await self._pull_to_blob(_SourceRead(url), destination)

    async def _pull_to_blob(self, read: _SourceRead, destination: BlobStorageLocator) -> None:
        container_client = await self._storage_client_factory.get_container_client(
            destination.account, destination.container
        )
        blob_client = container_client.get_blob_client(destination.blob_name)
        if read.headers:
            metadata = await self._source_metadata(read)
            body = await self._download(read)
            await asyncio.to_thread(
                blob_client.upload_blob,
                body,
                overwrite=True,
                content_settings=ContentSettings(content_type=metadata.content_type),
            )
            return
        await self._server_side_copy(blob_client, read.url)

    async def _server_side_copy(self, blob_client: BlobClient, url: str) -> None:
        """Start an asynchronous blob copy from `url` and poll until it settles."""

        await asyncio.to_thread(blob_client.start_copy_from_url, url)
        while True:
            properties = await asyncio.to_thread(blob_client.get_blob_properties)
            copy_properties = getattr(properties, "copy", None)
            status = getattr(copy_properties, "status", None)
            if status != "pending":
                break
            await asyncio.sleep(self._copy_poll_interval_seconds)
        if status != "success":
            description = getattr(copy_properties, "status_description", None)
            raise TransferError(f"Blob copy ended with status '{status}': {description}")

    async def _create_multipart(
        self,
        client: S3Client,
        destination: S3Locator,
        extra_args: dict[str, str],
    ) -> str:
        response = await asyncio.to_thread(
            client.create_multipart_upload,
            Bucket=destination.bucket,
            Key=destination.key,
            **extra_args,
        )
        upload_id = response.get("UploadId")
        if not isinstance(upload_id, str) or not upload_id:
            raise TransferError("create_multipart_upload did not return UploadId")
        return upload_id

    async def _run_multipart(
        self,
        client: S3Client,
        destination: S3Locator,
        upload_id: str,
        size: int,
        transfer_part: Callable[[int, int, int], Awaitable[str]],
    ) -> None:
        """Transfer parts in batches of `part_concurrency`, then complete; abort on failure.

        The part size doubles from `part_size` until the object fits in S3's part limit.
        """

        segments = plan_segments(size, self._part_size, _S3_MAX_PART_COUNT)
        etags: dict[int, str] = {}
        try:
            for index in range(0, len(segments), self._part_concurrency):
                batch = segments[index : index + self._part_concurrency]
                results = await asyncio.gather(
                    *[
                        transfer_part(segment.part_number, segment.start, segment.end)
                        for segment in batch
                    ]
                )
                etags.update(
                    zip((segment.part_number for segment in batch), results, strict=True)
                )

            await asyncio.to_thread(
                client.complete_multipart_upload,
                Bucket=destination.bucket,
                Key=destination.key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"PartNumber": number, "ETag": etag}
                        for number, etag in sorted(etags.items())
                    ]
                },
            )
        except BaseException:
            with suppress(Exception):
                await asyncio.to_thread(
                    client.abort_multipart_upload,
                    Bucket=destination.bucket,
                    Key=destination.key,
                    UploadId=upload_id,
                )
            raise

    async def _signed_url(self, locator: LocatorModel) -> str:
        match locator:
            case S3Locator():
                client = await self._storage_client_factory.get_s3_client(
                    locator.bucket, locator.region
                )
                return await presign_s3_get(
                    client, locator.bucket, locator.key, self._presigned_url_expiry_seconds
                )
            case BlobStorageLocator():
                container_client = await self._storage_client_factory.get_container_client(
                    locator.account, locator.container
                )
                return blob_sas_url(
                    container_client, locator.blob_name, self._presigned_url_expiry_seconds
                )
        raise UnsupportedTransferError(
            f"Cannot sign a URL for locator type '{locator_type_name(locator)}'"
        )

    async def _source_metadata(self, read: _SourceRead) -> ObjectMetadata:
        metadata = await self._probe.head_url(read.url, read.headers)
        if metadata is None:
            metadata = await self._probe.probe_range(read.url, read.headers)
        return metadata

    async def _download(
        self,
        read: _SourceRead,
        start: int | None = None,
        end: int | None = None,
    ) -> bytes:
        headers = dict(read.headers or {})
        if start is not None and end is not None:
            headers["range"] = f"bytes={start}-{end}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as http_client:
                response = await http_client.get(read.url, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransferError(f"Download failed: {exc}") from exc
        return response.content

    def _egress_headers(self, source_file: SourceFile) -> dict[str, str] | None:
        if source_file.egress_auth_type != EgressAuthType.API_KEY:
            return None
        if not self._egress_api_key:
            raise ConfigurationError(
                f"Egress URL for '{source_file.locator.url}' requires an API key "
                "but none is configured."
            )
        return {self._egress_api_key_header: self._egress_api_key}

    def _s3_extra_args(
        self,
        destination_file: DestinationFile,
        content_type: str | None,
    ) -> dict[str, str]:
        extra_args: dict[str, str] = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if destination_file.storage_class:
            extra_args["StorageClass"] = destination_file.storage_class
        return extra_args


def _extract_etag(response: dict[str, Any]) -> str:
    etag = response.get("ETag")
    if not isinstance(etag, str) or not etag:
        raise TransferError("Upload response did not contain an ETag")
    return etag


__all__ = ["SINGLE_COPY_LIMIT", "TransferStrategySelector"]
