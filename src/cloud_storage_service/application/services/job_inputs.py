"""Validation of job input documents."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from cloud_storage_service.domain.errors import InvalidInputError
from cloud_storage_service.domain.locators import LocatorModel, parse_locator
from cloud_storage_service.domain.problems import ProblemType
from cloud_storage_service.domain.restore import DEFAULT_RESTORE_DURATION_DAYS, RestorePriority
from cloud_storage_service.domain.work_items import DestinationFile, SourceFile


def _missing(name: str) -> InvalidInputError:
    return InvalidInputError(
        f"Missing input parameter '{name}'",
        problem_type=ProblemType.MISSING_INPUT_PARAMETER,
        title="Missing input parameter",
    )


def parse_locator_value(value: Any, name: str) -> LocatorModel:
    """Parse one locator document, reporting `name` on failure."""

    if value is None:
        raise _missing(name)
    try:
        return parse_locator(value)
    except ValidationError as exc:
        raise InvalidInputError(
            f"Property '{name}' is not a valid locator: {exc.errors()[0]['msg']}",
            problem_type=ProblemType.LOCATOR_TYPE_NOT_SUPPORTED,
            title="Provided input locator type is not supported",
        ) from exc


def require_locator(job_input: dict[str, Any], name: str) -> LocatorModel:
    return parse_locator_value(job_input.get(name), name)


def optional_str(job_input: dict[str, Any], name: str) -> str | None:
    value = job_input.get(name)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidInputError(f"Property '{name}' must be a string")
    return value


def source_file_from(
    locator: LocatorModel,
    values: dict[str, Any],
    egress_url_key: str = "sourceEgressUrl",
    egress_auth_type_key: str = "sourceEgressAuthType",
) -> SourceFile:
    return SourceFile(
        locator=locator,
        egress_url=optional_str(values, egress_url_key),
        egress_auth_type=optional_str(values, egress_auth_type_key),
    )


def destination_file_from(
    locator: LocatorModel,
    values: dict[str, Any],
    storage_class_key: str = "destinationStorageClass",
) -> DestinationFile:
    return DestinationFile(locator=locator, storage_class=optional_str(values, storage_class_key))


def parse_restore_priority(job_input: dict[str, Any]) -> RestorePriority:
    """Return the requested priority, defaulting to Low."""

    value = job_input.get("priority")
    if value is None or value == "":
        return RestorePriority.LOW
    try:
        return RestorePriority(value)
    except ValueError as exc:
        allowed = ", ".join(priority.value for priority in RestorePriority)
        raise InvalidInputError(
            f"String value '{value}' is not one of {allowed}",
            problem_type=ProblemType.PRIORITY_TYPE_NOT_RECOGNIZED,
            title="Provided input priority is not recognized",
        ) from exc


def parse_restore_duration(job_input: dict[str, Any]) -> int:
    """Return the requested restore duration in days, defaulting to 3."""

    value = job_input.get("durationInDays")
    if value is None:
        return DEFAULT_RESTORE_DURATION_DAYS
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputError(
            f"Value '{value}' is not a positive integer value",
            problem_type=ProblemType.DURATION_IN_DAYS_HAS_INVALID_VALUE,
            title="Provided input durationInDays does not have a positive integer value",
        )
    return value


__all__ = [
    "destination_file_from",
    "optional_str",
    "parse_locator_value",
    "parse_restore_duration",
    "parse_restore_priority",
    "require_locator",
    "source_file_from",
]
