"""
Abstract Storage Interface

DESIGN DECISION: We define one small, table-generic interface for storage.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage (with failure injection) for testing
3. Keep the command core decoupled from any wire protocol

The interface is intentionally simple - we're not building an ORM.
Records are plain dicts of JSON-compatible values, keyed by an "id" column.

There are no transactions spanning tables, and a batch write may
half-succeed. Callers must treat any failure of a batch as a failure of the
whole batch.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Union

Record = dict[str, Any]
Records = Union[Record, list[Record]]


def as_record_list(records: Records) -> list[Record]:
    """Normalize the record|records argument to a list."""
    if isinstance(records, dict):
        return [records]
    return list(records)


class StoreInterface(ABC):
    """
    Abstract interface for the remote store.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def insert(self, table: str, records: Records) -> None:
        """
        Insert one or more new records.

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the write fails (possibly after a partial write)
        """
        pass

    @abstractmethod
    async def upsert(self, table: str, records: Records) -> None:
        """
        Insert records, replacing any existing record with the same id.

        Raises:
            StorageError: If the write fails (possibly after a partial write)
        """
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> bool:
        """
        Delete a record by id.

        Returns:
            True if a record was deleted, False if none had that id
        """
        pass

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Record]:
        """
        Fetch records.

        Args:
            table: Table name
            filters: Column equality filters, all of which must match
            order_by: Column to sort by
            descending: Sort newest/largest first
            limit: Maximum number of records to return

        Returns:
            Matching records
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
