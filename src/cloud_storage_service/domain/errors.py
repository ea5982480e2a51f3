"""Domain exceptions for copy and restore operations."""

from __future__ import annotations

from cloud_storage_service.domain.problems import ProblemDetail, ProblemType


class CloudStorageServiceError(Exception):
    """Base class for service errors."""


class ConfigurationError(CloudStorageServiceError):
    """Raised when storage client config is missing for a bucket or account."""


class ProbeError(CloudStorageServiceError):
    """Raised when object size cannot be determined."""


class TransferError(CloudStorageServiceError):
    """Raised when a copy or upload step fails."""


class UnsupportedLocatorError(CloudStorageServiceError):
    """Raised when a locator kind has no implemented pairing."""


class UnsupportedTransferError(UnsupportedLocatorError):
    """Raised when every transfer strategy for a locator pair is exhausted."""


class RestoreStatusParseError(CloudStorageServiceError):
    """Raised when an archive restore status string is malformed."""


class InvalidInputError(CloudStorageServiceError):
    """Raised when job input fails validation."""

    def __init__(
        self,
        detail: str,
        *,
        problem_type: ProblemType = ProblemType.INVALID_INPUT,
        title: str = "Invalid input",
    ) -> None:
        super().__init__(detail)
        self.problem = ProblemDetail.of(problem_type, title=title, detail=detail)


__all__ = [
    "CloudStorageServiceError",
    "ConfigurationError",
    "InvalidInputError",
    "ProbeError",
    "RestoreStatusParseError",
    "TransferError",
    "UnsupportedLocatorError",
    "UnsupportedTransferError",
]
