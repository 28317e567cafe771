"""
Tests for the stores.

GoogleSheetsStore runs against a fake worksheet that keeps its cells in a
list, so the row encoding and the id lookups are exercised without the API.
"""

import asyncio
import threading
from datetime import date, datetime
from decimal import Decimal

import pytest

from lifesync.models.records import (
    Account,
    MediaItem,
    PasswordEntry,
    Reminder,
    Tables,
    Transaction,
    TransactionKind,
)
from lifesync.services.storage import (
    DuplicateError,
    GoogleSheetsStore,
    InMemoryStore,
    StorageError,
)
from lifesync.services.storage.google_sheets import (
    BOOL,
    JSON,
    TEXT,
    column_kinds,
    columns_for,
    from_cell,
    to_cell,
)

from tests.conftest import IST, make_account


class FakeSheet:
    def __init__(self, header):
        self.values = [list(header)]
        self.fail_deletes = False
        self.reader_threads = set()

    def get_all_values(self):
        self.reader_threads.add(threading.get_ident())
        return [list(row) for row in self.values]

    def append_rows(self, rows, value_input_option=None):
        self.values.extend(list(row) for row in rows)

    def update(self, range_name, values):
        index = int(range_name[1:])
        self.values[index - 1] = list(values[0])

    def delete_rows(self, index):
        if self.fail_deletes:
            raise RuntimeError("quota exceeded")
        del self.values[index - 1]


class FakeClient:
    def __init__(self):
        self.sheets = {}

    def get_table_sheet(self, table):
        if table not in self.sheets:
            self.sheets[table] = FakeSheet(columns_for(table))
        return self.sheets[table]


@pytest.fixture
def sheets():
    return FakeClient()


@pytest.fixture
def store(sheets):
    return GoogleSheetsStore(sheets)


def row(record):
    return record.model_dump(mode="json")


class TestCellEncoding:
    def test_to_cell(self):
        assert to_cell(None) == ""
        assert to_cell(["Alice", "Bob"]) == '["Alice", "Bob"]'
        assert to_cell(True) == "True"
        assert to_cell("12.50") == "12.50"

    def test_from_cell(self):
        """Empty cells vanish so model defaults apply; other cells follow their column."""
        assert from_cell("") is None
        assert from_cell("", BOOL) is None
        assert from_cell("False", BOOL) is False
        assert from_cell("TRUE", BOOL) is True
        assert from_cell('["Alice"]', JSON) == ["Alice"]
        assert from_cell("[draft] notes", JSON) == "[draft] notes"
        assert from_cell("1000") == "1000"

    def test_text_columns_are_never_decoded(self):
        assert from_cell("True") == "True"
        assert from_cell("[1]") == "[1]"
        assert from_cell('{"a": 1}') == '{"a": 1}'

    def test_column_kinds_follow_the_model(self):
        """Booleans and lists are typed; optional wrappers are looked through."""
        reminders = column_kinds(Tables.REMINDERS)
        assert reminders["is_done"] == BOOL
        assert reminders["title"] == TEXT

        transactions = column_kinds(Tables.TRANSACTIONS)
        assert transactions["participant_names"] == JSON
        assert transactions["account_id"] == TEXT

        audit = column_kinds(Tables.AUDIT_LOG)
        assert audit["is_user_action"] == BOOL
        assert audit["details"] == TEXT

    def test_columns_follow_the_model(self):
        assert columns_for(Tables.ACCOUNTS) == list(Account.model_fields)
        assert columns_for(Tables.AUDIT_LOG)[0] == "id"
        with pytest.raises(StorageError):
            columns_for("nope")


class TestGoogleSheetsStore:
    def test_records_survive_a_round_trip(self, store):
        """What goes in as a model dump validates back into the same model."""
        cash = make_account("Cash", "1250.50")
        tx = Transaction(
            amount=Decimal("300"), purpose="Dinner", date=date(2026, 3, 14),
            kind=TransactionKind.SPLIT, participant_names=["Alice", "Bob"], payer_name="Me",
        )
        asyncio.run(store.insert(Tables.ACCOUNTS, row(cash)))
        asyncio.run(store.insert(Tables.TRANSACTIONS, row(tx)))

        [account_row] = asyncio.run(store.query(Tables.ACCOUNTS))
        [tx_row] = asyncio.run(store.query(Tables.TRANSACTIONS))

        assert Account.model_validate(account_row) == cash
        loaded = Transaction.model_validate(tx_row)
        assert loaded.participant_names == ["Alice", "Bob"]
        assert loaded.account_id is None
        assert loaded.amount == Decimal("300")

    def test_text_that_looks_like_other_types_survives(self, store):
        """A title "True", a password "False" and a purpose "[1]" reload as text."""
        reminder = Reminder(title="True", due_date=datetime(2026, 3, 20, 9, 0, tzinfo=IST))
        entry = PasswordEntry(service="Bank", password="False", notes="{not json}")
        tx = Transaction(
            amount=Decimal("10"), purpose="[1]", date=date(2026, 3, 14), kind=TransactionKind.EXPENSE,
        )
        item = MediaItem(title="Talk", link="https://youtu.be/abc", is_watched=True)
        asyncio.run(store.insert(Tables.REMINDERS, row(reminder)))
        asyncio.run(store.insert(Tables.PASSWORDS, row(entry)))
        asyncio.run(store.insert(Tables.TRANSACTIONS, row(tx)))
        asyncio.run(store.insert(Tables.MEDIA_ITEMS, row(item)))

        [reminder_row] = asyncio.run(store.query(Tables.REMINDERS))
        [entry_row] = asyncio.run(store.query(Tables.PASSWORDS))
        [tx_row] = asyncio.run(store.query(Tables.TRANSACTIONS))
        [item_row] = asyncio.run(store.query(Tables.MEDIA_ITEMS))

        assert Reminder.model_validate(reminder_row) == reminder
        assert PasswordEntry.model_validate(entry_row) == entry
        assert Transaction.model_validate(tx_row).purpose == "[1]"
        assert MediaItem.model_validate(item_row).is_watched is True

    def test_duplicate_insert(self, store):
        cash = make_account("Cash")
        asyncio.run(store.insert(Tables.ACCOUNTS, row(cash)))
        with pytest.raises(DuplicateError):
            asyncio.run(store.insert(Tables.ACCOUNTS, row(cash)))

    def test_upsert_updates_in_place_and_appends(self, store, sheets):
        cash, bank = make_account("Cash", "10"), make_account("Bank", "20")
        asyncio.run(store.insert(Tables.ACCOUNTS, row(cash)))

        updated = cash.model_copy(update={"balance": Decimal("99")})
        asyncio.run(store.upsert(Tables.ACCOUNTS, [row(updated), row(bank)]))

        records = asyncio.run(store.query(Tables.ACCOUNTS))
        assert [r["name"] for r in records] == ["Cash", "Bank"]
        assert records[0]["balance"] == "99"
        assert len(sheets.sheets[Tables.ACCOUNTS].values) == 3

    def test_delete(self, store):
        cash = make_account("Cash")
        asyncio.run(store.insert(Tables.ACCOUNTS, row(cash)))
        assert asyncio.run(store.delete(Tables.ACCOUNTS, cash.id))
        assert not asyncio.run(store.delete(Tables.ACCOUNTS, cash.id))
        assert asyncio.run(store.query(Tables.ACCOUNTS)) == []

    def test_api_errors_become_storage_errors(self, store, sheets):
        cash = make_account("Cash")
        asyncio.run(store.insert(Tables.ACCOUNTS, row(cash)))
        sheets.sheets[Tables.ACCOUNTS].fail_deletes = True
        with pytest.raises(StorageError):
            asyncio.run(store.delete(Tables.ACCOUNTS, cash.id))

    def test_query_filters_sorts_and_limits(self, store):
        accounts = [make_account("A", "3"), make_account("B", "1"), make_account("C", "2")]
        asyncio.run(store.insert(Tables.ACCOUNTS, [row(a) for a in accounts]))

        names = [r["name"] for r in asyncio.run(
            store.query(Tables.ACCOUNTS, order_by="balance", descending=True, limit=2)
        )]
        assert names == ["A", "C"]

        [only] = asyncio.run(store.query(Tables.ACCOUNTS, filters={"name": "B"}))
        assert only["balance"] == "1"

    def test_sheet_calls_leave_the_event_loop_thread(self, store, sheets):
        """gspread blocks, so the worksheet is only touched from worker threads."""
        asyncio.run(store.insert(Tables.ACCOUNTS, row(make_account("Cash"))))
        asyncio.run(store.query(Tables.ACCOUNTS))

        threads = sheets.sheets[Tables.ACCOUNTS].reader_threads
        assert threads
        assert threading.get_ident() not in threads

    def test_short_and_blank_rows(self, store, sheets):
        """Trailing empty cells may be missing; blank rows are skipped."""
        sheet = sheets.get_table_sheet(Tables.FRIENDS)
        sheet.values.append(["f-1", "Alice"])
        sheet.values.append([])

        [friend] = asyncio.run(store.query(Tables.FRIENDS))

        assert friend == {"id": "f-1", "name": "Alice"}


class TestInMemoryStore:
    def test_insert_and_query(self):
        store = InMemoryStore()
        asyncio.run(store.insert(Tables.FRIENDS, [{"id": "1", "name": "A"}, {"id": "2", "name": "B"}]))
        assert [r["name"] for r in asyncio.run(store.query(Tables.FRIENDS, order_by="name", descending=True))] == [
            "B", "A",
        ]
        assert asyncio.run(store.query(Tables.FRIENDS, filters={"id": "1"})) == [{"id": "1", "name": "A"}]

    def test_duplicate_insert(self):
        store = InMemoryStore({Tables.FRIENDS: [{"id": "1", "name": "A"}]})
        with pytest.raises(DuplicateError):
            asyncio.run(store.insert(Tables.FRIENDS, {"id": "1", "name": "A"}))

    def test_stored_records_are_copies(self):
        """Mutating a returned record does not change the store."""
        store = InMemoryStore({Tables.FRIENDS: [{"id": "1", "name": "A"}]})
        asyncio.run(store.query(Tables.FRIENDS))[0]["name"] = "Z"
        assert store.get(Tables.FRIENDS, "1")["name"] == "A"

    def test_failure_injection_recovers(self):
        """fail_on(times=1) fails one call, then the store works again."""
        store = InMemoryStore()
        store.fail_on("upsert", Tables.FRIENDS, times=1)
        with pytest.raises(StorageError):
            asyncio.run(store.upsert(Tables.FRIENDS, {"id": "1", "name": "A"}))
        asyncio.run(store.upsert(Tables.FRIENDS, {"id": "1", "name": "A"}))
        assert store.get(Tables.FRIENDS, "1") == {"id": "1", "name": "A"}

    def test_clear_failures(self):
        store = InMemoryStore()
        store.fail_on("query")
        store.clear_failures()
        assert asyncio.run(store.query(Tables.FRIENDS)) == []

    def test_failing_batch_is_partial(self):
        """A failing batch keeps its first record, like a half-applied remote write."""
        store = InMemoryStore()
        store.fail_on("insert")
        with pytest.raises(StorageError):
            asyncio.run(store.insert(Tables.FRIENDS, [{"id": "1", "name": "A"}, {"id": "2", "name": "B"}]))
        assert [r["id"] for r in store.dump(Tables.FRIENDS)] == ["1"]

    def test_calls_are_recorded(self):
        store = InMemoryStore()
        asyncio.run(store.insert(Tables.FRIENDS, {"id": "1", "name": "A"}))
        asyncio.run(store.delete(Tables.FRIENDS, "1"))
        assert store.calls == [("insert", Tables.FRIENDS), ("delete", Tables.FRIENDS)]
