"""Shared record of multipart segments keyed by upload id and part number."""

from __future__ import annotations

from collections.abc import Iterable

from cloud_storage_service.domain.work_items import MultipartSegment


class SegmentLedger:
    """Holds the committed identifiers of every in-progress multipart upload.

    Segment items write their etag/block id here on success and the matching
    complete item reads the ordered segment list from here before finalizing.
    """

    def __init__(self) -> None:
        self._uploads: dict[str, dict[int, MultipartSegment]] = {}

    def register(self, upload_id: str, segments: Iterable[MultipartSegment]) -> None:
        """Record segments for an upload. Committed entries are never downgraded."""

        parts = self._uploads.setdefault(upload_id, {})
        for segment in segments:
            existing = parts.get(segment.part_number)
            if existing is not None and existing.committed:
                continue
            parts[segment.part_number] = segment.model_copy()

    def commit(
        self,
        upload_id: str,
        part_number: int,
        *,
        etag: str | None = None,
        block_id: str | None = None,
    ) -> MultipartSegment:
        """Store the destination's identifier for one part."""

        segment = self._uploads[upload_id][part_number]
        segment.etag = etag
        segment.block_id = block_id
        return segment

    def is_complete(self, upload_id: str) -> bool:
        parts = self._uploads.get(upload_id)
        if not parts:
            return False
        return all(segment.committed for segment in parts.values())

    def ordered(self, upload_id: str) -> list[MultipartSegment]:
        """Return copies of the upload's segments sorted by part number."""

        parts = self._uploads.get(upload_id, {})
        return [parts[number].model_copy() for number in sorted(parts)]

    def discard(self, upload_id: str) -> None:
        self._uploads.pop(upload_id, None)

    def clear(self) -> None:
        self._uploads.clear()


__all__ = ["SegmentLedger"]
