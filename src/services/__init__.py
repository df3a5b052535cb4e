"""Services package."""

from src.services.storage import (
    AuditStorageInterface,
    FinanceDataSource,
    InMemoryAuditStorage,
    InMemoryFinanceStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "FinanceDataSource",
    "InMemoryAuditStorage",
    "InMemoryFinanceStore",
    "NotFoundError",
    "StorageError",
]
