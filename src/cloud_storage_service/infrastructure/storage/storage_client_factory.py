"""Resolve bucket and account names to authenticated storage clients."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, cast

import boto3
from azure.storage.blob import ContainerClient as AzureContainerClient
from botocore.config import Config as BotoConfig
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cloud_storage_service.domain.errors import ConfigurationError
from cloud_storage_service.domain.ports import SecretsProvider
from cloud_storage_service.infrastructure.storage.clients import ContainerClient, S3Client

logger = logging.getLogger(__name__)


class AwsBucketConfig(BaseModel):
    """Per-bucket S3 settings."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    region: str
    access_key: str | None = Field(default=None, alias="accessKey")
    secret_key: str | None = Field(default=None, alias="secretKey")
    endpoint: str | None = None


class AzureAccountConfig(BaseModel):
    """Per-account Blob Storage settings."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    connection_string: str = Field(alias="connectionString")


class StorageClientConfig(BaseModel):
    """Secret-backed storage client configuration."""

    model_config = ConfigDict(extra="ignore")

    aws: dict[str, AwsBucketConfig] = Field(default_factory=dict)
    azure: dict[str, AzureAccountConfig] = Field(default_factory=dict)


S3ClientBuilder = Callable[[AwsBucketConfig, str], S3Client]
ContainerClientBuilder = Callable[[AzureAccountConfig, str], ContainerClient]


def build_s3_client_kwargs(config: AwsBucketConfig, region: str) -> dict[str, Any]:
    """Map bucket config to boto3 client arguments."""

    kwargs: dict[str, Any] = {"region_name": region}
    if config.access_key and config.secret_key:
        kwargs["aws_access_key_id"] = config.access_key
        kwargs["aws_secret_access_key"] = config.secret_key
    if config.endpoint:
        kwargs["endpoint_url"] = config.endpoint
        kwargs["config"] = BotoConfig(s3={"addressing_style": "path"})
    return kwargs


def _build_boto3_s3_client(config: AwsBucketConfig, region: str) -> S3Client:
    return cast(S3Client, boto3.client("s3", **build_s3_client_kwargs(config, region)))


def _build_azure_container_client(config: AzureAccountConfig, container: str) -> ContainerClient:
    client = AzureContainerClient.from_connection_string(
        config.connection_string,
        container_name=container,
    )
    return cast(ContainerClient, client)


class StorageClientFactory:
    """Cache of storage clients keyed by bucket/region and container/account.

    The storage config secret is fetched on the first cache miss only.
    """

    def __init__(
        self,
        secrets_provider: SecretsProvider,
        config_secret_id: str,
        s3_client_builder: S3ClientBuilder | None = None,
        container_client_builder: ContainerClientBuilder | None = None,
    ) -> None:
        self._secrets_provider = secrets_provider
        self._config_secret_id = config_secret_id
        self._s3_client_builder = s3_client_builder or _build_boto3_s3_client
        self._container_client_builder = (
            container_client_builder or _build_azure_container_client
        )
        self._config: StorageClientConfig | None = None
        self._config_lock = asyncio.Lock()
        self._s3_clients: dict[str, S3Client] = {}
        self._container_clients: dict[str, ContainerClient] = {}

    async def get_s3_client(self, bucket: str, region: str | None = None) -> S3Client:
        """Return a client authorized for `bucket`, optionally pinned to `region`."""

        config = await self._get_config()
        bucket_config = config.aws.get(bucket)
        if bucket_config is None:
            raise ConfigurationError(f"Storage client config not found for S3 bucket '{bucket}'")

        resolved_region = region or bucket_config.region
        cache_key = f"{bucket}-{resolved_region}"
        client = self._s3_clients.get(cache_key)
        if client is None:
            client = self._s3_client_builder(bucket_config, resolved_region)
            self._s3_clients[cache_key] = client
        return client

    async def get_container_client(self, account: str, container: str) -> ContainerClient:
        """Return a client for `container` in storage `account`."""

        config = await self._get_config()
        account_config = config.azure.get(account)
        if account_config is None:
            raise ConfigurationError(
                f"Storage client config not found for storage account '{account}'"
            )

        cache_key = f"{container}-{account}"
        client = self._container_clients.get(cache_key)
        if client is None:
            client = self._container_client_builder(account_config, container)
            self._container_clients[cache_key] = client
        return client

    async def _get_config(self) -> StorageClientConfig:
        if self._config is not None:
            return self._config

        async with self._config_lock:
            if self._config is None:
                raw = await self._secrets_provider.get(self._config_secret_id)
                try:
                    self._config = StorageClientConfig.model_validate(json.loads(raw))
                except (ValueError, ValidationError) as exc:
                    raise ConfigurationError(
                        f"Storage client config secret '{self._config_secret_id}' is invalid: {exc}"
                    ) from exc
                logger.info(
                    "Loaded storage client config for %d bucket(s) and %d account(s).",
                    len(self._config.aws),
                    len(self._config.azure),
                )
            return self._config


__all__ = [
    "AwsBucketConfig",
    "AzureAccountConfig",
    "StorageClientConfig",
    "StorageClientFactory",
    "build_s3_client_kwargs",
]
