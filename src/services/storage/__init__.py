"""
Storage Services Package

Provides the abstract data-source interfaces the assistant reads through,
plus in-memory implementations for tests and local runs.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    FinanceDataSource,
    NotFoundError,
    StorageError,
)
from src.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryFinanceStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "FinanceDataSource",
    # Exceptions
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryFinanceStore",
]
