"""
In-Memory Storage Implementation

Dict-backed store used by tests and by the local-only mode of the app
(when Google Sheets is not configured).

Failure injection: fail_on(operation, table) makes the next matching calls
raise StorageError. A failing batch write stores its first record before
raising, the same way a remote batch can half-succeed.
"""

import copy
from typing import Any, Optional

from lifesync.services.storage.interface import (
    DuplicateError,
    Record,
    Records,
    StorageError,
    StoreInterface,
    as_record_list,
)


def _sort_key(column: str):
    def key(record: Record):
        value = record.get(column)
        return (value is None, value if value is not None else "")
    return key


class InMemoryStore(StoreInterface):
    """In-memory implementation of the store."""

    def __init__(self, initial: Optional[dict[str, list[Record]]] = None):
        self._tables: dict[str, dict[str, Record]] = {}
        self._failures: dict[tuple[str, Optional[str]], Optional[int]] = {}
        self.calls: list[tuple[str, str]] = []

        for table, records in (initial or {}).items():
            self._tables[table] = {
                r["id"]: copy.deepcopy(r) for r in records
            }

    # -------------------------------------------------------------------------
    # Failure injection
    # -------------------------------------------------------------------------

    def fail_on(
        self,
        operation: str,
        table: Optional[str] = None,
        times: Optional[int] = None,
    ) -> None:
        """
        Make calls to `operation` fail.

        Args:
            operation: "insert", "upsert", "delete" or "query"
            table: Only fail for this table (None = every table)
            times: Fail this many times, then recover (None = until cleared)
        """
        self._failures[(operation, table)] = times

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check_failure(self, operation: str, table: str) -> bool:
        for key in ((operation, table), (operation, None)):
            if key not in self._failures:
                continue
            remaining = self._failures[key]
            if remaining is not None:
                if remaining <= 1:
                    del self._failures[key]
                else:
                    self._failures[key] = remaining - 1
            return True
        return False

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def dump(self, table: str) -> list[Record]:
        """Copy of every record in a table, ordered by id."""
        records = self._tables.get(table, {})
        return [copy.deepcopy(records[k]) for k in sorted(records)]

    def get(self, table: str, record_id: str) -> Optional[Record]:
        record = self._tables.get(table, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    # -------------------------------------------------------------------------
    # StoreInterface
    # -------------------------------------------------------------------------

    def _write(self, operation: str, table: str, records: Records) -> None:
        self.calls.append((operation, table))
        batch = as_record_list(records)
        rows = self._tables.setdefault(table, {})
        failing = self._check_failure(operation, table)

        if failing and len(batch) <= 1:
            raise StorageError(f"{operation} into {table} rejected")

        for index, record in enumerate(batch):
            if failing and index == 1:
                raise StorageError(
                    f"{operation} into {table} failed after {index} of {len(batch)} records"
                )
            if operation == "insert" and record["id"] in rows:
                raise DuplicateError(f"{table}: id {record['id']} already exists")
            rows[record["id"]] = copy.deepcopy(record)

    async def insert(self, table: str, records: Records) -> None:
        self._write("insert", table, records)

    async def upsert(self, table: str, records: Records) -> None:
        self._write("upsert", table, records)

    async def delete(self, table: str, record_id: str) -> bool:
        self.calls.append(("delete", table))
        if self._check_failure("delete", table):
            raise StorageError(f"delete from {table} rejected")
        return self._tables.get(table, {}).pop(record_id, None) is not None

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Record]:
        self.calls.append(("query", table))
        if self._check_failure("query", table):
            raise StorageError(f"query on {table} rejected")

        results = [
            copy.deepcopy(r)
            for r in self._tables.get(table, {}).values()
            if all(r.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            results.sort(key=_sort_key(order_by), reverse=descending)
        if limit is not None:
            results = results[:limit]
        return results
