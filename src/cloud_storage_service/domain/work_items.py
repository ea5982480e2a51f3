"""Work items and resumable copier state."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cloud_storage_service.domain.locators import Locator


class WorkType(StrEnum):
    """States a file copy moves through."""

    PREPARE = "Prepare"
    SINGLE = "Single"
    MULTIPART_START = "MultipartStart"
    MULTIPART_SEGMENT = "MultipartSegment"
    MULTIPART_COMPLETE = "MultipartComplete"


class EgressAuthType(StrEnum):
    """Authentication schemes understood on egress URLs."""

    API_KEY = "ApiKey"


class WorkModel(BaseModel):
    """Base model for persisted copier state."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class SourceFile(WorkModel):
    """Source of one file copy."""

    locator: Locator
    egress_url: str | None = Field(default=None, alias="egressUrl")
    egress_auth_type: str | None = Field(default=None, alias="egressAuthType")


class DestinationFile(WorkModel):
    """Destination of one file copy."""

    locator: Locator
    storage_class: str | None = Field(default=None, alias="storageClass")


class MultipartSegment(WorkModel):
    """One contiguous byte range of a multipart transfer."""

    part_number: int = Field(alias="partNumber")
    start: int
    end: int
    length: int
    etag: str | None = None
    block_id: str | None = Field(default=None, alias="blockId")

    @property
    def committed(self) -> bool:
        """Whether the destination acknowledged this segment."""

        return bool(self.etag or self.block_id)


class MultipartData(WorkModel):
    """Multipart session data attached to segment and complete items.

    Segment items carry their own `segment`. Complete items carry `segments`
    only in persisted snapshots; while the engine runs, committed segment
    identifiers live in the engine's segment ledger keyed by `upload_id`.
    """

    upload_id: str = Field(alias="uploadId")
    segment: MultipartSegment | None = None
    segments: list[MultipartSegment] | None = None


class WorkItem(WorkModel):
    """Unit of scheduling for one logical file copy."""

    type: WorkType = WorkType.PREPARE
    source_file: SourceFile = Field(alias="sourceFile")
    destination_file: DestinationFile = Field(alias="destinationFile")
    retries: int = 0
    source_url: str | None = Field(default=None, alias="sourceUrl")
    source_headers: dict[str, str] | None = Field(default=None, alias="sourceHeaders")
    content_length: int | None = Field(default=None, alias="contentLength")
    content_type: str | None = Field(default=None, alias="contentType")
    last_modified: datetime | None = Field(default=None, alias="lastModified")
    multipart_data: MultipartData | None = Field(default=None, alias="multipartData")

    def advance(self, work_type: WorkType, **changes: Any) -> WorkItem:
        """Return a copy moved to `work_type` with a fresh retry budget."""

        return self.model_copy(
            update={"type": work_type, "retries": 0, **changes},
            deep=True,
        )

    def describe(self) -> str:
        """Short label used in log lines."""

        label = f"{self.type} {self.source_file.locator.url}"
        if self.multipart_data is not None and self.multipart_data.segment is not None:
            label = f"{label} part {self.multipart_data.segment.part_number}"
        return label


class FileCopierState(WorkModel):
    """Complete resumable snapshot of a copier."""

    bytes_total: int = Field(default=0, alias="bytesTotal")
    bytes_copied: int = Field(default=0, alias="bytesCopied")
    files_total: int = Field(default=0, alias="filesTotal")
    files_copied: int = Field(default=0, alias="filesCopied")
    work_items: list[WorkItem] = Field(default_factory=list, alias="workItems")


__all__ = [
    "DestinationFile",
    "EgressAuthType",
    "FileCopierState",
    "MultipartData",
    "MultipartSegment",
    "SourceFile",
    "WorkItem",
    "WorkModel",
    "WorkType",
]
