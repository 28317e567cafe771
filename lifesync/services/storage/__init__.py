"""
Storage Services Package

Provides the abstract store interface and its implementations.
Google Sheets is the remote backend; the in-memory store backs tests and
local-only mode.
"""

from lifesync.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    NotFoundError,
    Record,
    StorageError,
    StoreInterface,
)
from lifesync.services.storage.memory import InMemoryStore
from lifesync.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsStore,
)

__all__ = [
    # Interface
    "Record",
    "StoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsStore",
    "InMemoryStore",
]
