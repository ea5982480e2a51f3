"""Structured problem details reported on failed jobs."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

PROBLEM_TYPE_PREFIX = "uri://cloud-storage-service/rfc7807/"


class ProblemType(StrEnum):
    """Machine-readable problem types."""

    COPY_FAILURE = "copy-failure"
    GENERIC_FAILURE = "generic-failure"
    INVALID_INPUT = "invalid-input"
    MISSING_INPUT_PARAMETER = "missing-input-parameter"
    PRIORITY_TYPE_NOT_RECOGNIZED = "priority-type-not-recognized"
    DURATION_IN_DAYS_HAS_INVALID_VALUE = "duration-in-days-has-invalid-value"
    LOCATOR_TYPE_NOT_SUPPORTED = "locator-type-not-supported"
    OBJECT_IN_UNSUPPORTED_STORAGE_CLASS = "object-in-unsupported-storage-class"
    NO_SUITABLE_OBJECTS_DETECTED = "no-suitable-objects-detected"

    @property
    def uri(self) -> str:
        """Return the full problem type URI."""

        return f"{PROBLEM_TYPE_PREFIX}{self.value}"


class ProblemDetail(BaseModel):
    """RFC 7807 style problem payload."""

    model_config = ConfigDict(extra="forbid")

    type: str
    title: str
    detail: str | None = None

    @classmethod
    def of(
        cls,
        problem_type: ProblemType,
        *,
        title: str,
        detail: str | None = None,
    ) -> ProblemDetail:
        """Build a problem detail from a known problem type."""

        return cls(type=problem_type.uri, title=title, detail=detail)


__all__ = ["PROBLEM_TYPE_PREFIX", "ProblemDetail", "ProblemType"]
