from __future__ import annotations

import asyncio
import json
import threading
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from cloud_storage_service.domain.errors import ConfigurationError, TransferError
from cloud_storage_service.domain.locators import BlobStorageLocator, GenericLocator, S3Locator
from cloud_storage_service.domain.work_items import (
    DestinationFile,
    MultipartData,
    MultipartSegment,
    SourceFile,
    WorkItem,
    WorkType,
)
from cloud_storage_service.infrastructure.secrets import EnvironmentSecretsProvider
from cloud_storage_service.infrastructure.storage import (
    ObjectMetadata,
    ObjectMetadataProbe,
    StorageClientFactory,
)
from cloud_storage_service.infrastructure.transfers import CloudWorkItemProcessor, should_skip

LAST_MODIFIED = datetime(2024, 1, 1, tzinfo=UTC)


class FakeS3Client:
    """Thread-safe fake S3 client used by work item processor tests."""

    def __init__(self, objects: dict[tuple[str, str], bytes]) -> None:
        self._objects = dict(objects)
        self._lock = threading.Lock()
        self.copy_calls: list[dict[str, Any]] = []
        self.put_calls: list[dict[str, Any]] = []
        self.upload_part_calls: list[dict[str, Any]] = []
        self.upload_part_copy_calls: list[dict[str, Any]] = []
        self.complete_calls: list[dict[str, Any]] = []

    def head_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        with self._lock:
            body = self._objects[(Bucket, Key)]
        return {
            "ContentLength": len(body),
            "ContentType": "application/octet-stream",
            "ETag": f'"etag-{Bucket}-{Key}"',
            "LastModified": LAST_MODIFIED,
        }

    def copy_object(self, **kwargs: Any) -> dict[str, Any]:
        source = kwargs["CopySource"]
        with self._lock:
            self.copy_calls.append(kwargs)
            self._objects[(kwargs["Bucket"], kwargs["Key"])] = self._objects[
                (source["Bucket"], source["Key"])
            ]
        return {"CopyObjectResult": {"ETag": '"etag-copy"'}}

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        with self._lock:
            self.put_calls.append(kwargs)
            self._objects[(kwargs["Bucket"], kwargs["Key"])] = kwargs["Body"]
        return {"ETag": '"etag-put"'}

    def create_multipart_upload(self, **kwargs: Any) -> dict[str, Any]:
        return {"UploadId": "upload-1"}

    def upload_part(self, **kwargs: Any) -> dict[str, Any]:
        with self._lock:
            self.upload_part_calls.append(kwargs)
        return {"ETag": f'"etag-{kwargs["PartNumber"]}"'}

    def upload_part_copy(self, **kwargs: Any) -> dict[str, Any]:
        with self._lock:
            self.upload_part_copy_calls.append(kwargs)
        return {"CopyPartResult": {"ETag": f'"etag-{kwargs["PartNumber"]}"'}}

    def complete_multipart_upload(self, **kwargs: Any) -> dict[str, Any]:
        with self._lock:
            self.complete_calls.append(kwargs)
        return {}

    def generate_presigned_url(
        self,
        ClientMethod: str,
        Params: dict[str, Any],
        ExpiresIn: int,
    ) -> str:
        return f"https://signed.example.com/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


class FakeBlobClient:
    def __init__(self, url: str) -> None:
        self.url = url
        self.blob_name = url.rsplit("/", 1)[-1]
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def get_blob_properties(self) -> Any:
        raise KeyError(self.blob_name)

    def upload_blob_from_url(self, source_url: str, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("upload_blob_from_url", (source_url,), kwargs))
        return {}

    def upload_blob(self, data: bytes, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("upload_blob", (data,), kwargs))
        return {}

    def stage_block_from_url(self, block_id: str, source_url: str, **kwargs: Any) -> None:
        self.calls.append(("stage_block_from_url", (block_id, source_url), kwargs))

    def stage_block(self, block_id: str, data: bytes, **kwargs: Any) -> None:
        self.calls.append(("stage_block", (block_id, data), kwargs))

    def commit_block_list(self, block_list: list[Any], **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("commit_block_list", (block_list,), kwargs))
        return {}


class FakeContainerClient:
    def __init__(self) -> None:
        self.account_name = "acct"
        self.container_name = "media"
        self.credential = None
        self.blob_clients: dict[str, FakeBlobClient] = {}

    def get_blob_client(self, blob: str) -> FakeBlobClient:
        if blob not in self.blob_clients:
            self.blob_clients[blob] = FakeBlobClient(
                f"https://acct.blob.core.windows.net/media/{blob}"
            )
        return self.blob_clients[blob]


def _storage_client_factory(
    s3_client: FakeS3Client,
    container_client: FakeContainerClient | None = None,
) -> StorageClientFactory:
    config = {
        "aws": {
            "src-bucket": {"region": "eu-west-1"},
            "dst-bucket": {"region": "us-east-1"},
        },
        "azure": {"acct": {"connectionString": "UseDevelopmentStorage=true"}},
    }
    secrets = EnvironmentSecretsProvider(
        environ={"CSS_SECRET_STORAGE_CLIENT_CONFIG": json.dumps(config)}
    )
    return StorageClientFactory(
        secrets,
        "storage-client-config",
        s3_client_builder=lambda *_: s3_client,
        container_client_builder=lambda *_: container_client or FakeContainerClient(),
    )


def _http_transport(payload: bytes, requests: list[httpx.Request]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "HEAD":
            return httpx.Response(404)
        range_header = request.headers.get("range")
        if range_header is None:
            return httpx.Response(200, content=payload)
        start, end = (int(value) for value in range_header.removeprefix("bytes=").split("-"))
        return httpx.Response(
            206,
            content=payload[start : end + 1],
            headers={
                "content-range": f"bytes {start}-{end}/{len(payload)}",
                "content-type": "text/plain",
            },
        )

    return httpx.MockTransport(handler)


def _processor(
    s3_client: FakeS3Client,
    transport: httpx.MockTransport,
    container_client: FakeContainerClient | None = None,
    egress_api_key: str | None = None,
) -> CloudWorkItemProcessor:
    factory = _storage_client_factory(s3_client, container_client)
    return CloudWorkItemProcessor(
        storage_client_factory=factory,
        probe=ObjectMetadataProbe(factory, transport=transport),
        egress_api_key=egress_api_key,
        abort_at=datetime.now(UTC) + timedelta(minutes=10),
        transport=transport,
    )


def _work_item(source: SourceFile, destination: Any) -> WorkItem:
    return WorkItem(source_file=source, destination_file=DestinationFile(locator=destination))


def test_should_skip_on_matching_etag() -> None:
    source = ObjectMetadata(size=10, etag='"abc"')
    destination = ObjectMetadata(size=11, etag='W/"abc"')

    assert should_skip(source, destination) is True


def test_should_skip_when_destination_is_same_size_type_and_newer() -> None:
    source = ObjectMetadata(size=10, content_type="text/plain", last_modified=LAST_MODIFIED)
    newer = ObjectMetadata(
        size=10,
        content_type="text/plain",
        last_modified=(LAST_MODIFIED + timedelta(hours=1)).replace(tzinfo=None),
    )
    older = ObjectMetadata(
        size=10,
        content_type="text/plain",
        last_modified=LAST_MODIFIED - timedelta(hours=1),
    )
    other_type = ObjectMetadata(size=10, content_type="image/png", last_modified=LAST_MODIFIED)

    assert should_skip(source, newer) is True
    assert should_skip(source, older) is False
    assert should_skip(source, other_type) is False
    assert should_skip(source, None) is False


def test_prepare_s3_to_s3_uses_native_copy_and_detects_missing_destination() -> None:
    s3_client = FakeS3Client({("src-bucket", "in/a.bin"): b"0123456789"})
    processor = _processor(s3_client, _http_transport(b"", []))
    work_item = _work_item(
        SourceFile(locator=S3Locator(bucket="src-bucket", key="in/a.bin")),
        S3Locator(bucket="dst-bucket", key="out/a.bin"),
    )

    result = asyncio.run(processor.prepare(work_item))

    assert result.source_url is None
    assert result.content_length == 10
    assert result.content_type == "application/octet-stream"
    assert result.skip is False


def test_prepare_skips_when_destination_already_matches() -> None:
    s3_client = FakeS3Client(
        {("src-bucket", "a.bin"): b"0123456789", ("dst-bucket", "a.bin"): b"0123456789"}
    )
    processor = _processor(s3_client, _http_transport(b"", []))
    work_item = _work_item(
        SourceFile(locator=S3Locator(bucket="src-bucket", key="a.bin")),
        S3Locator(bucket="dst-bucket", key="a.bin"),
    )

    assert asyncio.run(processor.prepare(work_item)).skip is True


def test_prepare_with_api_key_egress_probes_egress_url() -> None:
    requests: list[httpx.Request] = []
    processor = _processor(
        FakeS3Client({}),
        _http_transport(b"hello world", requests),
        egress_api_key="secret",
    )
    work_item = _work_item(
        SourceFile(
            locator=S3Locator(bucket="other-bucket", key="a.txt"),
            egress_url="https://egress.example.com/a.txt",
            egress_auth_type="ApiKey",
        ),
        S3Locator(bucket="dst-bucket", key="a.txt"),
    )

    result = asyncio.run(processor.prepare(work_item))

    assert result.source_url == "https://egress.example.com/a.txt"
    assert result.source_headers == {"x-api-key": "secret"}
    assert result.content_length == 11
    assert requests[-1].headers["x-api-key"] == "secret"
    assert requests[-1].headers["range"] == "bytes=0-0"


def test_prepare_with_api_key_egress_requires_configured_key() -> None:
    processor = _processor(FakeS3Client({}), _http_transport(b"", []))
    work_item = _work_item(
        SourceFile(
            locator=GenericLocator(url="https://example.com/a.txt"),
            egress_url="https://egress.example.com/a.txt",
            egress_auth_type="ApiKey",
        ),
        S3Locator(bucket="dst-bucket", key="a.txt"),
    )

    with pytest.raises(ConfigurationError):
        asyncio.run(processor.prepare(work_item))


def test_prepare_generic_source_falls_back_to_ranged_get() -> None:
    processor = _processor(FakeS3Client({}), _http_transport(b"payload", []))
    work_item = _work_item(
        SourceFile(locator=GenericLocator(url="https://public.example.com/a.txt")),
        S3Locator(bucket="dst-bucket", key="a.txt"),
    )

    result = asyncio.run(processor.prepare(work_item))

    assert result.source_url == "https://public.example.com/a.txt"
    assert result.content_length == 7
    assert result.content_type == "text/plain"


def test_copy_single_native_s3_copy_replaces_metadata() -> None:
    s3_client = FakeS3Client({("src-bucket", "a.bin"): b"abc"})
    processor = _processor(s3_client, _http_transport(b"", []))
    work_item = _work_item(
        SourceFile(locator=S3Locator(bucket="src-bucket", key="a.bin")),
        S3Locator(bucket="dst-bucket", key="b.bin"),
    ).advance(WorkType.SINGLE, content_length=3, content_type="application/octet-stream")

    asyncio.run(processor.copy_single(work_item))

    [call] = s3_client.copy_calls
    assert call["CopySource"] == {"Bucket": "src-bucket", "Key": "a.bin"}
    assert call["MetadataDirective"] == "REPLACE"
    assert call["ContentType"] == "application/octet-stream"


def test_copy_single_from_url_puts_downloaded_body() -> None:
    s3_client = FakeS3Client({})
    processor = _processor(s3_client, _http_transport(b"payload", []))
    work_item = _work_item(
        SourceFile(locator=GenericLocator(url="https://public.example.com/a.txt")),
        S3Locator(bucket="dst-bucket", key="a.txt"),
    ).advance(
        WorkType.SINGLE,
        source_url="https://public.example.com/a.txt",
        content_length=7,
    )

    asyncio.run(processor.copy_single(work_item))

    [call] = s3_client.put_calls
    assert call["Body"] == b"payload"
    assert call["Key"] == "a.txt"


def test_s3_segments_use_range_copy_or_ranged_download() -> None:
    s3_client = FakeS3Client({})
    processor = _processor(s3_client, _http_transport(b"0123456789", []))
    segment = MultipartSegment(part_number=2, start=5, end=9, length=5)
    native = _work_item(
        SourceFile(locator=S3Locator(bucket="src-bucket", key="a.bin")),
        S3Locator(bucket="dst-bucket", key="a.bin"),
    ).advance(
        WorkType.MULTIPART_SEGMENT,
        multipart_data=MultipartData(upload_id="upload-1", segment=segment),
    )
    pulled = native.advance(
        WorkType.MULTIPART_SEGMENT,
        source_url="https://public.example.com/a.bin",
    )

    async def scenario() -> None:
        native_result = await processor.copy_segment(native, segment)
        pulled_result = await processor.copy_segment(pulled, segment)
        assert native_result.etag == '"etag-2"'
        assert pulled_result.etag == '"etag-2"'

    asyncio.run(scenario())

    [copy_call] = s3_client.upload_part_copy_calls
    assert copy_call["CopySourceRange"] == "bytes=5-9"
    [part_call] = s3_client.upload_part_calls
    assert part_call["Body"] == b"56789"
    assert part_call["PartNumber"] == 2


def test_segment_download_with_wrong_length_fails() -> None:
    processor = _processor(FakeS3Client({}), _http_transport(b"0123", []))
    segment = MultipartSegment(part_number=1, start=0, end=9, length=10)
    work_item = _work_item(
        SourceFile(locator=GenericLocator(url="https://public.example.com/a.bin")),
        S3Locator(bucket="dst-bucket", key="a.bin"),
    ).advance(
        WorkType.MULTIPART_SEGMENT,
        source_url="https://public.example.com/a.bin",
        multipart_data=MultipartData(upload_id="upload-1", segment=segment),
    )

    with pytest.raises(TransferError):
        asyncio.run(processor.copy_segment(work_item, segment))


def test_s3_complete_sends_parts_in_order() -> None:
    s3_client = FakeS3Client({})
    processor = _processor(s3_client, _http_transport(b"", []))
    work_item = _work_item(
        SourceFile(locator=S3Locator(bucket="src-bucket", key="a.bin")),
        S3Locator(bucket="dst-bucket", key="a.bin"),
    ).advance(
        WorkType.MULTIPART_COMPLETE,
        multipart_data=MultipartData(upload_id="upload-1"),
    )
    segments = [
        MultipartSegment(part_number=2, start=5, end=9, length=5, etag='"etag-2"'),
        MultipartSegment(part_number=1, start=0, end=4, length=5, etag='"etag-1"'),
    ]

    asyncio.run(processor.complete_multipart(work_item, segments))

    [call] = s3_client.complete_calls
    assert call["UploadId"] == "upload-1"
    assert call["MultipartUpload"]["Parts"] == [
        {"ETag": '"etag-1"', "PartNumber": 1},
        {"ETag": '"etag-2"', "PartNumber": 2},
    ]


def test_blob_destination_stages_blocks_from_url_and_commits_in_order() -> None:
    container_client = FakeContainerClient()
    processor = _processor(FakeS3Client({}), _http_transport(b"", []), container_client)
    destination = BlobStorageLocator(account="acct", container="media", blob_name="a.bin")
    work_item = _work_item(
        SourceFile(locator=GenericLocator(url="https://public.example.com/a.bin")),
        destination,
    ).advance(
        WorkType.MULTIPART_START,
        source_url="https://public.example.com/a.bin",
        content_length=10,
        content_type="application/octet-stream",
    )
    segments = [
        MultipartSegment(part_number=1, start=0, end=4, length=5),
        MultipartSegment(part_number=2, start=5, end=9, length=5),
    ]

    async def scenario() -> None:
        upload_id = await processor.start_multipart(work_item)
        assert upload_id.startswith("blob-")
        committed: list[MultipartSegment] = []
        for segment in reversed(segments):
            segment_item = work_item.advance(
                WorkType.MULTIPART_SEGMENT,
                multipart_data=MultipartData(upload_id=upload_id, segment=segment),
            )
            result = await processor.copy_segment(segment_item, segment)
            committed.append(segment.model_copy(update={"block_id": result.block_id}))
        complete_item = work_item.advance(
            WorkType.MULTIPART_COMPLETE,
            multipart_data=MultipartData(upload_id=upload_id),
        )
        await processor.complete_multipart(complete_item, committed)

    asyncio.run(scenario())

    calls = container_client.blob_clients["a.bin"].calls
    staged = [call for call in calls if call[0] == "stage_block_from_url"]
    assert [call[2]["source_offset"] for call in staged] == [5, 0]
    assert [call[2]["source_length"] for call in staged] == [5, 5]
    name, (block_list,), kwargs = calls[-1]
    assert name == "commit_block_list"
    staged_ids_by_offset = {call[2]["source_offset"]: call[1][0] for call in staged}
    assert [block.id for block in block_list] == [
        staged_ids_by_offset[0],
        staged_ids_by_offset[5],
    ]
    assert kwargs["content_settings"].content_type == "application/octet-stream"


def test_blob_destination_with_egress_headers_uploads_downloaded_body() -> None:
    container_client = FakeContainerClient()
    processor = _processor(
        FakeS3Client({}),
        _http_transport(b"payload", []),
        container_client,
        egress_api_key="secret",
    )
    work_item = _work_item(
        SourceFile(
            locator=GenericLocator(url="https://public.example.com/a.txt"),
            egress_url="https://egress.example.com/a.txt",
            egress_auth_type="ApiKey",
        ),
        BlobStorageLocator(account="acct", container="media", blob_name="a.txt"),
    ).advance(
        WorkType.SINGLE,
        source_url="https://egress.example.com/a.txt",
        source_headers={"x-api-key": "secret"},
        content_length=7,
    )

    asyncio.run(processor.copy_single(work_item))

    [(name, (body,), kwargs)] = container_client.blob_clients["a.txt"].calls
    assert name == "upload_blob"
    assert body == b"payload"
    assert kwargs["overwrite"] is True


def test_prepare_private_s3_source_for_blob_destination_uses_presigned_url() -> None:
    processor = _processor(
        FakeS3Client({}),
        _http_transport(b"0123456789", []),
        FakeContainerClient(),
    )
    work_item = _work_item(
        SourceFile(locator=S3Locator(bucket="src-bucket", key="a.bin")),
        BlobStorageLocator(account="acct", container="media", blob_name="a.bin"),
    )

    result = asyncio.run(processor.prepare(work_item))

    assert result.source_url == "https://signed.example.com/src-bucket/a.bin?expires=43200"
    assert result.content_length == 10
    assert result.skip is False
