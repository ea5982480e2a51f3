"""Object metadata probing through cloud APIs or plain HTTP."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from cloud_storage_service.domain.errors import ProbeError
from cloud_storage_service.domain.locators import (
    BlobStorageLocator,
    GenericLocator,
    LocatorModel,
    S3Locator,
)
from cloud_storage_service.infrastructure.storage.clients import ContainerClient, S3Client
from cloud_storage_service.infrastructure.storage.storage_client_factory import (
    StorageClientFactory,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(slots=True, frozen=True)
class ObjectMetadata:
    """Size and identity of a stored object."""

    size: int
    content_type: str | None = None
    etag: str | None = None
    last_modified: datetime | None = None
    storage_class: str | None = None


async def head_s3_object(client: S3Client, bucket: str, key: str) -> ObjectMetadata:
    """Return metadata from an S3 HEAD call."""

    response = await asyncio.to_thread(client.head_object, Bucket=bucket, Key=key)
    return ObjectMetadata(
        size=int(response["ContentLength"]),
        content_type=response.get("ContentType"),
        etag=response.get("ETag"),
        last_modified=response.get("LastModified"),
        storage_class=response.get("StorageClass"),
    )


async def get_blob_metadata(container_client: ContainerClient, blob_name: str) -> ObjectMetadata:
    """Return metadata from blob properties."""

    blob_client = container_client.get_blob_client(blob_name)
    properties = await asyncio.to_thread(blob_client.get_blob_properties)
    content_settings = getattr(properties, "content_settings", None)
    return ObjectMetadata(
        size=int(properties.size),
        content_type=getattr(content_settings, "content_type", None),
        etag=getattr(properties, "etag", None),
        last_modified=getattr(properties, "last_modified", None),
        storage_class=getattr(properties, "blob_tier", None),
    )


def _parse_http_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def _parse_total_from_content_range(value: str | None) -> int | None:
    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        return None
    return int(total)


class ObjectMetadataProbe:
    """Obtain object metadata via the cheapest method that works.

    Order: cloud HEAD call, anonymous HTTP HEAD, ranged GET of byte 0.
    `probe` runs all three for a locator. Each step is also public so callers
    that read from a signed or egress URL can start at the HTTP steps, and
    destination checks can stop after the cloud call.
    """

    def __init__(
        self,
        storage_client_factory: StorageClientFactory,
        timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storage_client_factory = storage_client_factory
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def probe(
        self,
        locator: LocatorModel,
        headers: dict[str, str] | None = None,
    ) -> ObjectMetadata:
        """Return metadata for `locator` or raise `ProbeError`."""

        try:
            metadata = await self.head_native(locator)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cloud metadata call failed for '%s': %s", locator.url, exc)
            metadata = None
        if metadata is not None:
            return metadata

        metadata = await self.head_url(locator.url, headers)
        if metadata is not None:
            return metadata

        return await self.probe_range(locator.url, headers)

    async def head_native(self, locator: LocatorModel) -> ObjectMetadata | None:
        """Issue a cloud HEAD-equivalent call. Generic locators return None."""

        match locator:
            case S3Locator():
                client = await self._storage_client_factory.get_s3_client(
                    locator.bucket, locator.region
                )
                return await head_s3_object(client, locator.bucket, locator.key)
            case BlobStorageLocator():
                container_client = await self._storage_client_factory.get_container_client(
                    locator.account, locator.container
                )
                return await get_blob_metadata(container_client, locator.blob_name)
            case GenericLocator():
                return None
        return None

    async def head_url(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> ObjectMetadata | None:
        """Issue an HTTP HEAD. Return None when it yields no content length."""

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as http_client:
                response = await http_client.head(url, headers=headers)
        except httpx.HTTPError as exc:
            logger.info("HEAD %s failed: %s", url, exc)
            return None

        if not response.is_success:
            return None
        content_length = response.headers.get("content-length")
        if content_length is None or not content_length.isdigit():
            return None
        return self._metadata_from_headers(int(content_length), response.headers)

    async def probe_range(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> ObjectMetadata:
        """GET byte 0 and read the total size from `content-range`."""

        request_headers = dict(headers or {})
        request_headers["range"] = "bytes=0-0"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
                follow_redirects=True,
            ) as http_client:
                # Headers only; a server that ignores the range must not be drained.
                async with http_client.stream("GET", url, headers=request_headers) as response:
                    pass
        except httpx.HTTPError as exc:
            raise ProbeError(f"Failed to obtain content length for '{url}': {exc}") from exc

        if not response.is_success:
            raise ProbeError(
                f"Failed to obtain content length for '{url}': HTTP {response.status_code}"
            )

        size = _parse_total_from_content_range(response.headers.get("content-range"))
        if size is None and response.status_code == 200:
            content_length = response.headers.get("content-length", "")
            size = int(content_length) if content_length.isdigit() else None
        if size is None:
            raise ProbeError(f"Failed to obtain content length for '{url}'")
        return self._metadata_from_headers(size, response.headers)

    def _metadata_from_headers(self, size: int, headers: Any) -> ObjectMetadata:
        return ObjectMetadata(
            size=size,
            content_type=headers.get("content-type"),
            etag=headers.get("etag"),
            last_modified=_parse_http_date(headers.get("last-modified")),
        )


__all__ = [
    "ObjectMetadata",
    "ObjectMetadataProbe",
    "get_blob_metadata",
    "head_s3_object",
]
