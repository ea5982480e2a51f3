from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from cloud_storage_service.domain.jobs import WorkerRequest
from cloud_storage_service.infrastructure.workers import (
    HttpWorkerInvoker,
    LocalWorkerInvoker,
    WorkerInvokerError,
)


def test_http_invoker_posts_request_body() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202, json={"operationName": "ContinueCopy"})

    invoker = HttpWorkerInvoker(
        "https://worker.example.com/",
        transport=httpx.MockTransport(handler),
    )

    asyncio.run(
        invoker.invoke(
            "ContinueCopy",
            {"jobAssignmentDatabaseId": "/job-assignments/1"},
            {"id": "tracker-1"},
        )
    )

    [request] = requests
    assert request.method == "POST"
    assert str(request.url) == "https://worker.example.com/worker/requests"
    assert json.loads(request.content) == {
        "operationName": "ContinueCopy",
        "input": {"jobAssignmentDatabaseId": "/job-assignments/1"},
        "tracker": {"id": "tracker-1"},
    }


def test_http_invoker_raises_on_error_status() -> None:
    invoker = HttpWorkerInvoker(
        "https://worker.example.com",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="busy")),
    )

    with pytest.raises(WorkerInvokerError, match="503 busy"):
        asyncio.run(invoker.invoke("CompleteRestore", {"jobAssignmentDatabaseId": "/j/1"}))


def test_http_invoker_raises_on_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    invoker = HttpWorkerInvoker(
        "https://worker.example.com",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(WorkerInvokerError, match="connection refused"):
        asyncio.run(invoker.invoke("CompleteRestore", {"jobAssignmentDatabaseId": "/j/1"}))


def test_http_invoker_requires_worker_url() -> None:
    with pytest.raises(ValueError):
        HttpWorkerInvoker("  / ")


def test_local_invoker_dispatches_until_idle() -> None:
    received: list[WorkerRequest] = []
    invoker = LocalWorkerInvoker()

    async def dispatch(request: WorkerRequest) -> None:
        received.append(request)
        if request.operation_name == "ContinueCopy" and len(received) < 3:
            await invoker.invoke("ContinueCopy", request.input, request.tracker)

    invoker.bind(dispatch)

    async def scenario() -> None:
        await invoker.invoke("ContinueCopy", {"jobAssignmentDatabaseId": "/j/1"}, {"id": "t"})
        await invoker.wait_idle()

    asyncio.run(scenario())

    assert [request.operation_name for request in received] == ["ContinueCopy"] * 3
    assert all(request.tracker == {"id": "t"} for request in received)


def test_local_invoker_requires_dispatch_target() -> None:
    invoker = LocalWorkerInvoker()

    with pytest.raises(RuntimeError, match="no dispatch target"):
        asyncio.run(invoker.invoke("CompleteRestore", {"jobAssignmentDatabaseId": "/j/1"}))
