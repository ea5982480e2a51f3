"""Worker request routes."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import JSONResponse

from cloud_storage_service.api.dependencies import get_worker
from cloud_storage_service.application import Worker, WorkerRequestError
from cloud_storage_service.domain.jobs import WorkerRequest

router = APIRouter(tags=["worker"])


@router.post(
    "/worker/requests",
    status_code=202,
    responses={202: {"description": "Accepted"}, 400: {"description": "Bad request"}},
)
async def submit_worker_request(
    request: WorkerRequest,
    background_tasks: BackgroundTasks,
    worker: Worker = Depends(get_worker),
) -> JSONResponse:
    """Accept a worker request and run it after the response is sent."""

    try:
        worker.validate(request)
    except WorkerRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    background_tasks.add_task(worker.do_work, request)
    return JSONResponse(
        status_code=202,
        content={
            "operationName": request.operation_name,
            "jobAssignmentDatabaseId": request.job_assignment_database_id,
        },
    )


@router.get("/worker/operations")
async def list_worker_operations(worker: Worker = Depends(get_worker)) -> dict[str, list[str]]:
    """Operation names accepted by `/worker/requests`."""

    return {"operations": worker.operation_names}


__all__ = ["router"]
