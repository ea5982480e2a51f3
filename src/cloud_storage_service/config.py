"""Application settings."""

from enum import StrEnum

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TableBackend(StrEnum):
    """Available document table adapters."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class SecretsBackend(StrEnum):
    """Available secrets providers."""

    ENVIRONMENT = "environment"
    AWS_SECRETS_MANAGER = "aws_secrets_manager"


class WorkerInvokerBackend(StrEnum):
    """How operations re-invoke the worker."""

    LOCAL = "local"
    HTTP = "http"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "Cloud Storage Service"
    api_prefix: str = ""
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    aws_region: str = "us-east-1"
    table_backend: TableBackend = TableBackend.IN_MEMORY
    postgres_dsn: str | None = None
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10
    secrets_backend: SecretsBackend = SecretsBackend.ENVIRONMENT
    storage_client_config_secret_id: str = "storage-client-config"
    worker_invoker_backend: WorkerInvokerBackend = WorkerInvokerBackend.LOCAL
    worker_url: str | None = None
    worker_invoke_timeout_seconds: float = 10.0
    worker_time_limit_seconds: float = 900.0
    copy_max_concurrency: int = 32
    copy_multipart_size: int = 64 * 1024 * 1024
    copy_request_timeout_seconds: float = 300.0
    copy_safety_margin_seconds: float = 120.0
    copy_bail_out_seconds: float = 10.0
    copy_abort_margin_seconds: float = 30.0
    copy_slice_seconds: float = 60.0
    copy_progress_threshold: float = 0.5
    checkpoint_write_attempts: int = 3
    checkpoint_write_retry_delay_seconds: float = 3.0
    egress_api_key: str | None = None
    egress_api_key_header: str = "x-api-key"
    monitor_enabled: bool = False
    monitor_interval_seconds: float = 60.0
    monitor_lock_timeout_seconds: float = 900.0
    restore_lock_timeout_seconds: float = 60.0

    @model_validator(mode="after")
    def validate_backend_settings(self) -> "Settings":
        """Ensure backend-specific settings and time margins are valid."""

        if self.table_backend == TableBackend.POSTGRES and not self.postgres_dsn:
            raise ValueError("CSS_POSTGRES_DSN is required when CSS_TABLE_BACKEND=postgres.")
        if self.postgres_pool_min_size < 1:
            raise ValueError("CSS_POSTGRES_POOL_MIN_SIZE must be >= 1.")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError("CSS_POSTGRES_POOL_MAX_SIZE must be >= CSS_POSTGRES_POOL_MIN_SIZE.")
        if self.worker_invoker_backend == WorkerInvokerBackend.HTTP and not self.worker_url:
            raise ValueError(
                "CSS_WORKER_URL is required when CSS_WORKER_INVOKER_BACKEND=http."
            )
        if self.worker_invoke_timeout_seconds <= 0:
            raise ValueError("CSS_WORKER_INVOKE_TIMEOUT_SECONDS must be > 0.")
        if self.copy_request_timeout_seconds <= 0:
            raise ValueError("CSS_COPY_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.copy_safety_margin_seconds <= 0:
            raise ValueError("CSS_COPY_SAFETY_MARGIN_SECONDS must be > 0.")
        if self.copy_bail_out_seconds <= 0:
            raise ValueError("CSS_COPY_BAIL_OUT_SECONDS must be > 0.")
        if self.copy_bail_out_seconds >= self.copy_safety_margin_seconds:
            raise ValueError(
                "CSS_COPY_BAIL_OUT_SECONDS must be < CSS_COPY_SAFETY_MARGIN_SECONDS."
            )
        if self.copy_slice_seconds <= 0:
            raise ValueError("CSS_COPY_SLICE_SECONDS must be > 0.")
        if self.worker_time_limit_seconds <= self.copy_safety_margin_seconds:
            raise ValueError(
                "CSS_WORKER_TIME_LIMIT_SECONDS must be > CSS_COPY_SAFETY_MARGIN_SECONDS."
            )
        if self.copy_progress_threshold < 0:
            raise ValueError("CSS_COPY_PROGRESS_THRESHOLD must be >= 0.")
        if self.checkpoint_write_attempts < 1:
            raise ValueError("CSS_CHECKPOINT_WRITE_ATTEMPTS must be >= 1.")
        if self.monitor_interval_seconds <= 0:
            raise ValueError("CSS_MONITOR_INTERVAL_SECONDS must be > 0.")
        if self.monitor_lock_timeout_seconds <= 0:
            raise ValueError("CSS_MONITOR_LOCK_TIMEOUT_SECONDS must be > 0.")
        return self

    model_config = SettingsConfigDict(env_prefix="CSS_", extra="ignore")


__all__ = ["SecretsBackend", "Settings", "TableBackend", "WorkerInvokerBackend"]
