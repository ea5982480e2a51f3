"""Short-lived read URLs for S3 objects and blobs."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

from azure.storage.blob import BlobSasPermissions, generate_blob_sas

from cloud_storage_service.domain.errors import ConfigurationError
from cloud_storage_service.infrastructure.storage.clients import ContainerClient, S3Client


async def presign_s3_get(
    client: S3Client,
    bucket: str,
    key: str,
    expires_in_seconds: int,
) -> str:
    """Return a presigned GET URL for an S3 object."""

    return await asyncio.to_thread(
        client.generate_presigned_url,
        "get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=expires_in_seconds,
    )


def blob_sas_url(
    container_client: ContainerClient,
    blob_name: str,
    expires_in_seconds: int,
) -> str:
    """Return a read-only SAS URL for a blob."""

    account_key = getattr(container_client.credential, "account_key", None)
    if not account_key or not container_client.account_name:
        raise ConfigurationError(
            f"Cannot sign blob '{blob_name}': container client has no account key."
        )

    token = generate_blob_sas(
        account_name=container_client.account_name,
        container_name=container_client.container_name,
        blob_name=blob_name,
        account_key=account_key,
        permission=BlobSasPermissions(read=True),
        expiry=datetime.now(UTC) + timedelta(seconds=expires_in_seconds),
    )
    blob_client = container_client.get_blob_client(blob_name)
    return f"{blob_client.url}?{token}"


__all__ = ["blob_sas_url", "presign_s3_get"]
