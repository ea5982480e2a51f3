"""Restore requests for archived objects."""

from __future__ import annotations

import re
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from cloud_storage_service.domain.errors import RestoreStatusParseError
from cloud_storage_service.domain.locators import Locator, LocatorModel

RESTORE_WORK_ITEMS_PATH = "/restore-work-items"
DEFAULT_RESTORE_DURATION_DAYS = 3
ARCHIVE_STORAGE_CLASSES = frozenset({"GLACIER", "DEEP_ARCHIVE"})
_URL_SEPARATORS = re.compile(r"[:/]+")


class RestorePriority(StrEnum):
    """Requested restore speed."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def tier(self) -> str:
        """Return the S3 Glacier retrieval tier."""

        return _RESTORE_TIERS[self]


_RESTORE_TIERS = {
    RestorePriority.HIGH: "Expedited",
    RestorePriority.MEDIUM: "Standard",
    RestorePriority.LOW: "Bulk",
}


class RestoreWorkItem(BaseModel):
    """Ledger record of job assignments waiting on one archived object."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    file: Locator
    job_assignment_database_ids: list[str] = Field(
        default_factory=list, alias="jobAssignmentDatabaseIds"
    )
    priority: RestorePriority = RestorePriority.LOW
    duration_in_days: int = Field(default=DEFAULT_RESTORE_DURATION_DAYS, alias="durationInDays")


def build_restore_work_item_id(locator: LocatorModel) -> str:
    """Return the deterministic record id for an archived object."""

    return f"{RESTORE_WORK_ITEMS_PATH}/{_URL_SEPARATORS.sub('-', locator.url)}"


def parse_restore_value(value: str) -> dict[str, str]:
    """Parse `key1="value1", key2="value2"` restore status strings."""

    result: dict[str, str] = {}
    index = 0
    length = len(value)
    while index < length:
        while index < length and value[index] in ", ":
            index += 1
        if index >= length:
            break

        equals = value.find("=", index)
        if equals < 0:
            raise RestoreStatusParseError(
                f"Expected '=' after key at position {index} in restore value '{value}'."
            )
        key = value[index:equals].strip()
        if not key or '"' in key:
            raise RestoreStatusParseError(
                f"Invalid key at position {index} in restore value '{value}'."
            )

        index = equals + 1
        if index >= length or value[index] != '"':
            raise RestoreStatusParseError(
                f"Expected opening quote at position {index} in restore value '{value}'."
            )
        closing = value.find('"', index + 1)
        if closing < 0:
            raise RestoreStatusParseError(
                f"Unterminated quote at position {index} in restore value '{value}'."
            )
        result[key] = value[index + 1 : closing]

        index = closing + 1
        while index < length and value[index] == " ":
            index += 1
        if index < length and value[index] != ",":
            raise RestoreStatusParseError(
                f"Expected ',' at position {index} in restore value '{value}'."
            )
    return result


__all__ = [
    "ARCHIVE_STORAGE_CLASSES",
    "DEFAULT_RESTORE_DURATION_DAYS",
    "RESTORE_WORK_ITEMS_PATH",
    "RestorePriority",
    "RestoreWorkItem",
    "build_restore_work_item_id",
    "parse_restore_value",
]
