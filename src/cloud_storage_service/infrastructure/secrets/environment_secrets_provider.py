"""Secrets read from process environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping

from cloud_storage_service.domain.errors import ConfigurationError

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]+")


def secret_env_var_name(secret_id: str, prefix: str = "CSS_SECRET_") -> str:
    """Return the environment variable name holding `secret_id`.

    `storage-client-config` maps to `CSS_SECRET_STORAGE_CLIENT_CONFIG`.
    """

    return f"{prefix}{_NON_ALNUM.sub('_', secret_id).strip('_').upper()}"


class EnvironmentSecretsProvider:
    """Look up secrets as `CSS_SECRET_<ID>` environment variables."""

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        prefix: str = "CSS_SECRET_",
    ) -> None:
        self._environ = environ if environ is not None else os.environ
        self._prefix = prefix

    async def get(self, secret_id: str) -> str:
        name = secret_env_var_name(secret_id, self._prefix)
        value = self._environ.get(name)
        if value is None:
            raise ConfigurationError(
                f"Secret '{secret_id}' not found in environment variable {name}"
            )
        return value


__all__ = ["EnvironmentSecretsProvider", "secret_env_var_name"]
