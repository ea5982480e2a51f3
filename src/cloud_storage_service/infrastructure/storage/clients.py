"""Subsets of the S3 and Blob Storage client APIs used by this service."""

from __future__ import annotations

from typing import Any, Protocol


class S3Client(Protocol):
    """Subset of boto3 S3 client operations."""

    def head_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        """Return object metadata."""

    def get_object(self, *, Bucket: str, Key: str, Range: str | None = None) -> dict[str, Any]:
        """Return object body."""

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        """Upload an object in one request."""

    def copy_object(self, **kwargs: Any) -> dict[str, Any]:
        """Copy an object server side."""

    def create_multipart_upload(self, **kwargs: Any) -> dict[str, Any]:
        """Start a multipart upload."""

    def upload_part(
        self,
        *,
        Bucket: str,
        Key: str,
        UploadId: str,
        PartNumber: int,
        Body: bytes,
    ) -> dict[str, Any]:
        """Upload one part."""

    def upload_part_copy(
        self,
        *,
        Bucket: str,
        Key: str,
        UploadId: str,
        PartNumber: int,
        CopySource: dict[str, str],
        CopySourceRange: str,
    ) -> dict[str, Any]:
        """Copy one byte range into a part."""

    def complete_multipart_upload(
        self,
        *,
        Bucket: str,
        Key: str,
        UploadId: str,
        MultipartUpload: dict[str, list[dict[str, str | int]]],
    ) -> dict[str, Any]:
        """Finalize a multipart upload."""

    def abort_multipart_upload(self, *, Bucket: str, Key: str, UploadId: str) -> dict[str, Any]:
        """Abort a multipart upload."""

    def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        """List one page of objects."""

    def restore_object(
        self,
        *,
        Bucket: str,
        Key: str,
        RestoreRequest: dict[str, Any],
    ) -> dict[str, Any]:
        """Request an archive restore."""

    def generate_presigned_url(
        self,
        ClientMethod: str,
        Params: dict[str, Any],
        ExpiresIn: int,
    ) -> str:
        """Return a presigned URL."""


class BlobClient(Protocol):
    """Subset of azure-storage-blob `BlobClient` operations."""

    url: str
    blob_name: str

    def get_blob_properties(self) -> Any:
        """Return blob properties."""

    def upload_blob_from_url(self, source_url: str, **kwargs: Any) -> dict[str, Any]:
        """Create a blob from a readable URL."""

    def start_copy_from_url(self, source_url: str, **kwargs: Any) -> dict[str, Any]:
        """Start an asynchronous server-side copy from a readable URL."""

    def stage_block_from_url(
        self,
        block_id: str,
        source_url: str,
        source_offset: int | None = None,
        source_length: int | None = None,
        **kwargs: Any,
    ) -> None:
        """Stage one block read from a URL range."""

    def upload_blob(self, data: bytes, **kwargs: Any) -> dict[str, Any]:
        """Create a blob from an in-memory body."""

    def stage_block(self, block_id: str, data: bytes, **kwargs: Any) -> None:
        """Stage one block from an in-memory body."""

    def commit_block_list(self, block_list: list[Any], **kwargs: Any) -> dict[str, Any]:
        """Commit staged blocks in order."""


class ContainerClient(Protocol):
    """Subset of azure-storage-blob `ContainerClient` operations."""

    account_name: str | None
    container_name: str
    credential: Any

    def get_blob_client(self, blob: str) -> BlobClient:
        """Return a client for one blob."""

    def list_blobs(self, name_starts_with: str | None = None, **kwargs: Any) -> Any:
        """Iterate blob properties under a prefix."""


__all__ = ["BlobClient", "ContainerClient", "S3Client"]
