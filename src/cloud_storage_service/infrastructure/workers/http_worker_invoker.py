"""Worker invocation over HTTP."""

from __future__ import annotations

from typing import Any

import httpx

from cloud_storage_service.domain.jobs import WorkerRequest


class WorkerInvokerError(RuntimeError):
    """Raised when a worker request cannot be delivered."""


class HttpWorkerInvoker:
    """Post worker requests to `{worker_url}/worker/requests`."""

    def __init__(
        self,
        worker_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        normalized = worker_url.strip().rstrip("/")
        if not normalized:
            raise ValueError("Worker URL must not be empty.")
        self._endpoint = f"{normalized}/worker/requests"
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def invoke(
        self,
        operation_name: str,
        input: dict[str, Any],
        tracker: dict[str, Any] | None = None,
    ) -> None:
        request = WorkerRequest(operation_name=operation_name, input=input, tracker=tracker)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as http_client:
                response = await http_client.post(
                    self._endpoint,
                    json=request.model_dump(by_alias=True, exclude_none=True),
                )
        except httpx.HTTPError as exc:
            raise WorkerInvokerError(f"POST {self._endpoint} failed: {exc}") from exc
        self._ensure_success(response)

    def _ensure_success(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        text = response.text.strip() or "<no response body>"
        raise WorkerInvokerError(
            f"{response.request.method} {response.request.url} failed: "
            f"{response.status_code} {text}"
        )


__all__ = ["HttpWorkerInvoker", "WorkerInvokerError"]
