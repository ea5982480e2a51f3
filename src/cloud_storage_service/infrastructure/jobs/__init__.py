"""Job assignment helper implementations."""

from cloud_storage_service.infrastructure.jobs.table_job_assignment_helper import (
    JobAssignmentNotFoundError,
    TableJobAssignmentHelper,
    table_job_assignment_helper_factory,
)

__all__ = [
    "JobAssignmentNotFoundError",
    "TableJobAssignmentHelper",
    "table_job_assignment_helper_factory",
]
