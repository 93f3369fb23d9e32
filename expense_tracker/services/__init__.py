"""Services package."""

from expense_tracker.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryTrackerStorage,
    NotFoundError,
    SQLAuditStorage,
    SQLDatabase,
    SQLTrackerStorage,
    StorageConnectionError,
    StorageError,
    TrackerStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryTrackerStorage",
    "NotFoundError",
    "SQLAuditStorage",
    "SQLDatabase",
    "SQLTrackerStorage",
    "StorageConnectionError",
    "StorageError",
    "TrackerStorageInterface",
]
