"""Document table implementations."""

from cloud_storage_service.infrastructure.tables.in_memory_document_table import (
    InMemoryDocumentTable,
    InMemoryTableMutex,
)
from cloud_storage_service.infrastructure.tables.postgres_document_table import (
    PostgresDocumentTable,
    PostgresTableMutex,
)

__all__ = [
    "InMemoryDocumentTable",
    "InMemoryTableMutex",
    "PostgresDocumentTable",
    "PostgresTableMutex",
]
