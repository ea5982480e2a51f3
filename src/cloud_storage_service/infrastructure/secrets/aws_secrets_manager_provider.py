"""Secrets read from AWS Secrets Manager."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, cast

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cloud_storage_service.domain.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SecretsManagerClient(Protocol):
    """Subset of boto3 Secrets Manager client operations."""

    def get_secret_value(self, *, SecretId: str) -> dict[str, Any]:
        """Return a secret value."""


class AwsSecretsManagerSecretsProvider:
    """Fetch secret strings with `get_secret_value`, cached per id."""

    def __init__(
        self,
        region: str,
        client: SecretsManagerClient | None = None,
    ) -> None:
        self._client = client or cast(
            SecretsManagerClient,
            boto3.client("secretsmanager", region_name=region),
        )
        self._cache: dict[str, str] = {}

    async def get(self, secret_id: str) -> str:
        cached = self._cache.get(secret_id)
        if cached is not None:
            return cached

        try:
            response = await asyncio.to_thread(self._client.get_secret_value, SecretId=secret_id)
        except (BotoCoreError, ClientError) as exc:
            raise ConfigurationError(f"Failed to read secret '{secret_id}': {exc}") from exc

        value = response.get("SecretString")
        if not isinstance(value, str):
            raise ConfigurationError(f"Secret '{secret_id}' has no string value")
        self._cache[secret_id] = value
        logger.info("Loaded secret '%s' from AWS Secrets Manager.", secret_id)
        return value


__all__ = ["AwsSecretsManagerSecretsProvider", "SecretsManagerClient"]
