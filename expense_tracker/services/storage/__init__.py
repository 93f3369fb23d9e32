"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
SQLAlchemy is the production backend; the in-memory store has the same contract.
"""

from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    TrackerStorageInterface,
)
from expense_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryTrackerStorage,
)
from expense_tracker.services.storage.sql import (
    SQLAuditStorage,
    SQLDatabase,
    SQLTrackerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "TrackerStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryTrackerStorage",
    # SQL implementation
    "SQLAuditStorage",
    "SQLDatabase",
    "SQLTrackerStorage",
]
