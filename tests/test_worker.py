from __future__ import annotations

import asyncio
import json
import threading
from datetime import UTC, datetime
from typing import Any

import pytest

from cloud_storage_service.application import WorkerRequestError
from cloud_storage_service.bootstrap import ServiceContainer, build_services
from cloud_storage_service.config import Settings, WorkerInvokerBackend
from cloud_storage_service.domain.jobs import JobAssignment, JobStatus, WorkerRequest
from cloud_storage_service.domain.locators import GenericLocator, S3Locator
from cloud_storage_service.domain.problems import ProblemType
from cloud_storage_service.infrastructure.secrets import EnvironmentSecretsProvider
from cloud_storage_service.infrastructure.storage import StorageClientFactory
from cloud_storage_service.infrastructure.tables import InMemoryDocumentTable
from cloud_storage_service.infrastructure.workers import LocalWorkerInvoker

JOB_ID = "/job-assignments/job-1"


class FakeS3Client:
    """Thread-safe in-memory S3 bucket store."""

    def __init__(self, objects: dict[tuple[str, str], bytes]) -> None:
        self._objects = dict(objects)
        self._lock = threading.Lock()
        self.copy_calls = 0

    def object(self, bucket: str, key: str) -> bytes | None:
        with self._lock:
            return self._objects.get((bucket, key))

    def head_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        with self._lock:
            payload = self._objects[(Bucket, Key)]
        return {
            "ContentLength": len(payload),
            "ContentType": "text/plain",
            "ETag": f'"etag-{Bucket}-{Key}"',
            "LastModified": datetime(2024, 1, 1, tzinfo=UTC),
        }

    def copy_object(self, **kwargs: Any) -> dict[str, Any]:
        source = kwargs["CopySource"]
        with self._lock:
            self.copy_calls += 1
            self._objects[(kwargs["Bucket"], kwargs["Key"])] = self._objects[
                (source["Bucket"], source["Key"])
            ]
        return {}

    def list_objects_v2(self, **kwargs: Any) -> dict[str, Any]:
        prefix = kwargs.get("Prefix", "")
        with self._lock:
            contents = [
                {"Key": key, "Size": len(payload)}
                for (bucket, key), payload in sorted(self._objects.items())
                if bucket == kwargs["Bucket"] and key.startswith(prefix)
            ]
        return {"Contents": contents, "IsTruncated": False}


class RecordingInvoker:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any], dict[str, Any] | None]] = []

    async def invoke(
        self,
        operation_name: str,
        input: dict[str, Any],
        tracker: dict[str, Any] | None = None,
    ) -> None:
        self.calls.append((operation_name, input, tracker))


def _services(
    s3_client: FakeS3Client,
    worker_invoker: RecordingInvoker | None = None,
) -> ServiceContainer:
    config = {
        "aws": {"src-bucket": {"region": "us-east-1"}, "dst-bucket": {"region": "us-east-1"}}
    }
    factory = StorageClientFactory(
        EnvironmentSecretsProvider(
            environ={"CSS_SECRET_STORAGE_CLIENT_CONFIG": json.dumps(config)}
        ),
        "storage-client-config",
        s3_client_builder=lambda *_: s3_client,
    )
    return build_services(
        Settings(worker_invoker_backend=WorkerInvokerBackend.LOCAL),
        table=InMemoryDocumentTable(),
        storage_client_factory=factory,
        worker_invoker=worker_invoker,
    )


def _locator(bucket: str, key: str) -> dict[str, Any]:
    return S3Locator(bucket=bucket, key=key).model_dump(mode="json", by_alias=True)


async def _put_job(
    services: ServiceContainer,
    job_input: dict[str, Any],
    status: JobStatus = JobStatus.SCHEDULED,
) -> None:
    await services.table.put(
        JOB_ID,
        JobAssignment(id=JOB_ID, status=status, job_input=job_input).model_dump(
            mode="json", by_alias=True, exclude_none=True
        ),
    )


async def _job(services: ServiceContainer) -> JobAssignment:
    document = await services.table.get(JOB_ID)
    assert document is not None
    return JobAssignment.model_validate(document)


def _request(operation_name: str) -> WorkerRequest:
    return WorkerRequest(operation_name=operation_name, input={"jobAssignmentDatabaseId": JOB_ID})


def test_worker_lists_all_operations() -> None:
    services = _services(FakeS3Client({}))

    assert services.worker.operation_names == [
        "CompleteRestore",
        "ContinueCopy",
        "CopyFile",
        "CopyFiles",
        "CopyFolder",
        "RestoreFile",
        "RestoreFiles",
        "RestoreFolder",
    ]


def test_worker_rejects_unknown_operation_and_missing_job_id() -> None:
    worker = _services(FakeS3Client({})).worker

    with pytest.raises(WorkerRequestError, match="Unknown operation"):
        worker.validate(_request("DeleteFile"))
    with pytest.raises(WorkerRequestError, match="jobAssignmentDatabaseId"):
        worker.validate(WorkerRequest(operation_name="CopyFile", input={}))


def test_copy_file_copies_and_completes_job() -> None:
    s3_client = FakeS3Client({("src-bucket", "a.txt"): b"hello"})
    services = _services(s3_client)
    job_input = {
        "sourceFile": _locator("src-bucket", "a.txt"),
        "destinationFile": _locator("dst-bucket", "copy/a.txt"),
    }

    async def scenario() -> JobAssignment:
        await _put_job(services, job_input)
        await services.worker.do_work(_request("CopyFile"))
        return await _job(services)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.COMPLETED
    assert s3_client.object("dst-bucket", "copy/a.txt") == b"hello"


def test_copy_folder_copies_every_object_under_prefix() -> None:
    s3_client = FakeS3Client(
        {
            ("src-bucket", "in/a.txt"): b"aaa",
            ("src-bucket", "in/sub/b.txt"): b"bbbb",
            ("src-bucket", "other/c.txt"): b"c",
        }
    )
    invoker = RecordingInvoker()
    services = _services(s3_client, invoker)
    job_input = {
        "sourceFolder": _locator("src-bucket", "in/"),
        "destinationFolder": _locator("dst-bucket", "out/"),
    }

    async def scenario() -> JobAssignment:
        await _put_job(services, job_input)
        await services.worker.do_work(_request("CopyFolder"))
        return await _job(services)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.COMPLETED
    assert job.progress == 100.0
    assert s3_client.object("dst-bucket", "out/a.txt") == b"aaa"
    assert s3_client.object("dst-bucket", "out/sub/b.txt") == b"bbbb"
    assert s3_client.object("dst-bucket", "out/c.txt") is None
    assert invoker.calls == []


def test_copy_files_without_transfers_fails_job_with_invalid_input() -> None:
    services = _services(FakeS3Client({}))

    async def scenario() -> JobAssignment:
        await _put_job(services, {"transfers": []})
        await services.worker.do_work(_request("CopyFiles"))
        return await _job(services)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.FAILED
    assert job.error is not None
    assert job.error.type == ProblemType.INVALID_INPUT.uri
    assert job.error.detail == "Property 'transfers' doesn't contain any element"


def test_copy_file_without_strategy_fails_job_with_generic_failure() -> None:
    services = _services(FakeS3Client({("src-bucket", "a.txt"): b"hello"}))
    job_input = {
        "sourceFile": _locator("src-bucket", "a.txt"),
        "destinationFile": GenericLocator(url="https://example.com/a.txt").model_dump(
            mode="json", by_alias=True
        ),
    }

    async def scenario() -> JobAssignment:
        await _put_job(services, job_input)
        await services.worker.do_work(_request("CopyFile"))
        return await _job(services)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.FAILED
    assert job.error is not None
    assert job.error.type == ProblemType.GENERIC_FAILURE.uri


def test_terminal_job_is_left_untouched() -> None:
    s3_client = FakeS3Client({("src-bucket", "a.txt"): b"hello"})
    services = _services(s3_client)

    async def scenario() -> JobAssignment:
        await _put_job(services, {"transfers": []}, status=JobStatus.CANCELED)
        await services.worker.do_work(_request("CopyFiles"))
        return await _job(services)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.CANCELED
    assert job.error is None


def test_missing_job_assignment_is_logged_not_raised() -> None:
    services = _services(FakeS3Client({}))

    async def scenario() -> dict[str, Any] | None:
        await services.worker.do_work(_request("CompleteRestore"))
        return await services.table.get(JOB_ID)

    assert asyncio.run(scenario()) is None


def test_local_invoker_runs_complete_restore_in_process() -> None:
    services = _services(FakeS3Client({}))
    invoker = services.worker_invoker
    assert isinstance(invoker, LocalWorkerInvoker)

    async def scenario() -> JobAssignment:
        await _put_job(services, {})
        await invoker.invoke("CompleteRestore", {"jobAssignmentDatabaseId": JOB_ID})
        await invoker.wait_idle()
        return await _job(services)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.COMPLETED
