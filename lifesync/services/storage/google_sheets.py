"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the remote store because:
1. The owner can view and fix their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the sync engine compensates on failure)
- Limited query capabilities (we filter in Python)

Each table is one worksheet whose first row holds the column names.
Lists and dicts are JSON-encoded into a single cell. Cells are decoded by
the type of their column, so a text column holding "True" or "[1]" stays
text.

gspread is synchronous; every worksheet call runs in a worker thread
(asyncio.to_thread).
"""

import asyncio
import json
import types
from typing import Any, Optional, Union, get_args, get_origin

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from lifesync.config import get_settings
from lifesync.models.records import MODEL_FOR_TABLE, Tables
from lifesync.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    Record,
    Records,
    StorageError,
    StoreInterface,
    as_record_list,
)


AUDIT_COLUMNS = [
    "id",
    "timestamp",
    "event_type",
    "severity",
    "session_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details",
    "error_message",
    "is_user_action",
]


def columns_for(table: str) -> list[str]:
    """Header row for a table's worksheet."""
    if table == Tables.AUDIT_LOG:
        return list(AUDIT_COLUMNS)
    model = MODEL_FOR_TABLE.get(table)
    if model is None:
        raise StorageError(f"Unknown table: {table}")
    return list(model.model_fields)


# How a column's cells are decoded
TEXT = "text"
BOOL = "bool"
JSON = "json"


def _kind_of_annotation(annotation: Any) -> str:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        return _kind_of_annotation(args[0]) if len(args) == 1 else TEXT
    if annotation is bool:
        return BOOL
    if annotation in (list, dict) or origin in (list, dict):
        return JSON
    return TEXT


def column_kinds(table: str) -> dict[str, str]:
    """Cell kind of every column of a table's worksheet."""
    if table == Tables.AUDIT_LOG:
        return {column: BOOL if column == "is_user_action" else TEXT for column in AUDIT_COLUMNS}
    model = MODEL_FOR_TABLE.get(table)
    if model is None:
        raise StorageError(f"Unknown table: {table}")
    return {name: _kind_of_annotation(field.annotation) for name, field in model.model_fields.items()}


def to_cell(value: Any) -> str:
    """Encode one record value as a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def from_cell(value: str, kind: str = TEXT) -> Any:
    """
    Decode one sheet cell according to its column kind.

    Returns None for empty cells so the caller can drop the column and let
    the model default apply.
    """
    if value == "":
        return None
    if kind == BOOL:
        return value.strip().lower() == "true"
    if kind == JSON:
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_table_sheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a table."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(table)
        except gspread.WorksheetNotFound:
            columns = columns_for(table)
            sheet = spreadsheet.add_worksheet(
                title=table,
                rows=self._settings.default_sheet_rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class GoogleSheetsStore(StoreInterface):
    """
    Google Sheets implementation of the store.

    Every call reads the whole worksheet; personal data volumes make that
    acceptable.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read(self, table: str) -> tuple[gspread.Worksheet, list[str], list[list[str]]]:
        sheet = self._client.get_table_sheet(table)
        values = sheet.get_all_values()
        header = values[0] if values else columns_for(table)
        return sheet, header, values[1:]

    @staticmethod
    def _row_to_record(header: list[str], row: list[str], kinds: dict[str, str]) -> Record:
        # Handle short rows gracefully
        record = {}
        for index, column in enumerate(header):
            value = from_cell(row[index], kinds.get(column, TEXT)) if index < len(row) else None
            if value is not None:
                record[column] = value
        return record

    @staticmethod
    def _record_to_row(header: list[str], record: Record) -> list[str]:
        return [to_cell(record.get(column)) for column in header]

    @staticmethod
    def _row_index(rows: list[list[str]], record_id: str) -> Optional[int]:
        """1-based sheet row index of a record (row 1 is the header)."""
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == record_id:
                return idx
        return None

    # -------------------------------------------------------------------------
    # Blocking worksheet operations (run via asyncio.to_thread)
    # -------------------------------------------------------------------------

    def _insert_rows(self, table: str, batch: list[Record]) -> None:
        sheet, header, rows = self._read(table)
        existing = {row[0] for row in rows if row}
        for record in batch:
            if record["id"] in existing:
                raise DuplicateError(f"{table}: id {record['id']} already exists")
        sheet.append_rows(
            [self._record_to_row(header, r) for r in batch],
            value_input_option="RAW",
        )

    def _upsert_rows(self, table: str, batch: list[Record]) -> None:
        sheet, header, rows = self._read(table)
        new_rows = []
        for record in batch:
            row = self._record_to_row(header, record)
            idx = self._row_index(rows, record["id"])
            if idx is None:
                new_rows.append(row)
            else:
                sheet.update(range_name=f"A{idx}", values=[row])
        if new_rows:
            sheet.append_rows(new_rows, value_input_option="RAW")

    def _delete_row(self, table: str, record_id: str) -> bool:
        sheet, _, rows = self._read(table)
        idx = self._row_index(rows, record_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True

    def _read_records(self, table: str) -> list[Record]:
        _, header, rows = self._read(table)
        kinds = column_kinds(table)
        return [
            self._row_to_record(header, row, kinds)
            for row in rows
            if row and row[0]  # Skip empty rows
        ]

    # -------------------------------------------------------------------------
    # StoreInterface
    # -------------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def insert(self, table: str, records: Records) -> None:
        """Append new records."""
        try:
            await asyncio.to_thread(self._insert_rows, table, as_record_list(records))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert(self, table: str, records: Records) -> None:
        """Update rows in place, appending the ones that don't exist yet."""
        try:
            await asyncio.to_thread(self._upsert_rows, table, as_record_list(records))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to upsert into {table}: {e}")

    async def delete(self, table: str, record_id: str) -> bool:
        """Delete a record by id."""
        try:
            return await asyncio.to_thread(self._delete_row, table, record_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {table}: {e}")

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Record]:
        """Fetch records, filtering and sorting in Python."""
        try:
            records = await asyncio.to_thread(self._read_records, table)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to query {table}: {e}")

        results = [
            record for record in records
            if all(to_cell(record.get(k)) == to_cell(v) for k, v in (filters or {}).items())
        ]
        if order_by:
            results.sort(
                key=lambda r: (r.get(order_by) is None, to_cell(r.get(order_by))),
                reverse=descending,
            )
        if limit is not None:
            results = results[:limit]
        return results
