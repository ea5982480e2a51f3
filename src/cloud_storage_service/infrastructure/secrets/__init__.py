"""Secrets provider implementations."""

from cloud_storage_service.infrastructure.secrets.aws_secrets_manager_provider import (
    AwsSecretsManagerSecretsProvider,
)
from cloud_storage_service.infrastructure.secrets.environment_secrets_provider import (
    EnvironmentSecretsProvider,
    secret_env_var_name,
)

__all__ = [
    "AwsSecretsManagerSecretsProvider",
    "EnvironmentSecretsProvider",
    "secret_env_var_name",
]
