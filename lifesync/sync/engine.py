"""
Optimistic Sync Engine

Applies changes to local memory immediately, persists them to the store,
and rolls back exactly if the store rejects them.

FLOW of apply(reducer):
1. Run the pure reducer against the current local state -> ChangeSet
   (validation errors surface here, before anything is touched)
2. Snapshot every record the ChangeSet touches
3. Apply the ChangeSet locally and notify listeners (synchronous)
4. Await the store writes
5a. Success: nothing more to do
5b. Failure: restore the snapshot, notify listeners, issue best-effort
    compensating writes for whatever may have reached the store, and raise
    PersistenceError

DESIGN DECISION: One helper for every optimistic write. Handlers describe
WHAT changes; snapshot, restore and compensation live only here.

Across sessions there is no locking: two conversations touching the same
account race with last-write-wins semantics at the store.
"""

import copy
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from lifesync.audit import AuditLogger
from lifesync.errors import PersistenceError
from lifesync.ledger import LedgerMutation, apply as apply_ledger_mutation
from lifesync.models.records import MODEL_FOR_TABLE, Account, Friend, Tables
from lifesync.services.storage import StorageError, StoreInterface


logger = structlog.get_logger("lifesync.sync")

Listener = Callable[[frozenset], None]


class LocalState:
    """
    In-memory copy of every table, keyed by record id.

    Iteration order of a table is the order records were loaded or added;
    it is the default ordering used when a command names no target.
    """

    def __init__(self):
        self._tables: dict[str, dict[str, BaseModel]] = {
            table: {} for table in MODEL_FOR_TABLE
        }
        self._listeners: list[Listener] = []

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def all(self, table: str) -> list:
        return list(self._tables.get(table, {}).values())

    def get(self, table: str, record_id: str) -> Optional[BaseModel]:
        return self._tables.get(table, {}).get(record_id)

    def by_id(self, table: str) -> dict[str, BaseModel]:
        return dict(self._tables.get(table, {}))

    @property
    def accounts(self) -> dict[str, Account]:
        return self.by_id(Tables.ACCOUNTS)

    @property
    def friends(self) -> dict[str, Friend]:
        return self.by_id(Tables.FRIENDS)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def load(self, table: str, records: Iterable[BaseModel]) -> None:
        """Replace a table's contents."""
        self._tables[table] = {r.id: r for r in records}

    def put(self, table: str, record: BaseModel) -> None:
        self._tables.setdefault(table, {})[record.id] = record

    def remove(self, table: str, record_id: str) -> None:
        self._tables.get(table, {}).pop(record_id, None)

    def snapshot(self, keys: Iterable[tuple[str, str]]) -> dict[tuple[str, str], Optional[BaseModel]]:
        """Deep copies of the given (table, id) records; None where absent."""
        snap = {}
        for table, record_id in keys:
            record = self.get(table, record_id)
            snap[(table, record_id)] = copy.deepcopy(record) if record is not None else None
        return snap

    def restore(self, snap: dict[tuple[str, str], Optional[BaseModel]]) -> None:
        for (table, record_id), record in snap.items():
            if record is None:
                self.remove(table, record_id)
            else:
                self.put(table, record)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, tables: Iterable[str]) -> None:
        changed = frozenset(tables)
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception as e:
                logger.warning("listener_failed", error=str(e), tables=sorted(changed))


@dataclass
class ChangeSet:
    """
    The writes one command wants to make.

    Built by a reducer; applied locally and persisted by the engine in the
    order inserts, upserts, deletes.
    """
    description: str
    message: str = ""
    inserts: list[tuple[str, BaseModel]] = field(default_factory=list)
    upserts: list[tuple[str, BaseModel]] = field(default_factory=list)
    deletes: list[tuple[str, str]] = field(default_factory=list)

    def insert(self, table: str, *records: BaseModel) -> "ChangeSet":
        self.inserts.extend((table, r) for r in records)
        return self

    def upsert(self, table: str, *records: BaseModel) -> "ChangeSet":
        self.upserts.extend((table, r) for r in records)
        return self

    def delete(self, table: str, *record_ids: str) -> "ChangeSet":
        self.deletes.extend((table, rid) for rid in record_ids)
        return self

    @property
    def keys(self) -> list[tuple[str, str]]:
        """(table, id) of every record touched."""
        keys = [(t, r.id) for t, r in self.inserts + self.upserts]
        keys.extend(self.deletes)
        return list(dict.fromkeys(keys))

    @property
    def tables(self) -> list[str]:
        return list(dict.fromkeys(t for t, _ in self.keys))

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.upserts or self.deletes)


Reducer = Callable[[LocalState], ChangeSet]


def _grouped(pairs: list[tuple[str, BaseModel]]) -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = {}
    for table, record in pairs:
        grouped.setdefault(table, []).append(record.model_dump(mode="json"))
    return grouped


class OptimisticSyncEngine:
    """
    The only writer of LocalState and of ledger records in the store.
    """

    def __init__(
        self,
        store: StoreInterface,
        state: Optional[LocalState] = None,
        audit_logger: Optional[AuditLogger] = None,
        currency_symbol: str = "₹",
    ):
        self._store = store
        self.state = state or LocalState()
        self._audit = audit_logger
        self._currency_symbol = currency_symbol

    async def apply(
        self,
        reducer: Reducer,
        correlation_id: Optional[UUID] = None,
    ) -> ChangeSet:
        """
        Apply a change optimistically.

        Raises:
            CommandError: Whatever the reducer raises (nothing was touched)
            PersistenceError: The store rejected the change (rolled back)
        """
        change = reducer(self.state)
        if change.is_empty:
            return change

        snap = self.state.snapshot(change.keys)
        self._apply_locally(change)
        self.state.publish(change.tables)

        attempted: list[tuple[str, tuple[str, str]]] = []
        try:
            await self._persist(change, attempted)
        except StorageError as e:
            self.state.restore(snap)
            self.state.publish(change.tables)
            logger.error(
                "mutation_rolled_back",
                description=change.description,
                error=str(e),
            )
            await self._compensate(change, snap, attempted)
            if self._audit:
                await self._audit.log_mutation_rolled_back(
                    description=change.description,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise PersistenceError(
                f"Couldn't save: {change.description}. Nothing was changed, please try again.",
                cause=e,
            )

        if self._audit:
            await self._audit.log_mutation_applied(
                description=change.description,
                tables=change.tables,
                correlation_id=correlation_id,
            )
        return change

    async def apply_ledger(
        self,
        mutation: LedgerMutation,
        correlation_id: Optional[UUID] = None,
    ) -> ChangeSet:
        """Apply a ledger mutation through the Ledger Mutator."""

        def reducer(state: LocalState) -> ChangeSet:
            result = apply_ledger_mutation(
                state.accounts,
                state.friends,
                mutation,
                currency_symbol=self._currency_symbol,
            )
            change = ChangeSet(
                description=mutation.kind.lower().replace("_", " "),
                message=result.message,
            )
            for account in result.accounts:
                if account.id in result.new_account_ids:
                    change.insert(Tables.ACCOUNTS, account)
                else:
                    change.upsert(Tables.ACCOUNTS, account)
            if result.friends:
                change.upsert(Tables.FRIENDS, *result.friends)
            if result.transaction:
                change.insert(Tables.TRANSACTIONS, result.transaction)
            return change

        return await self.apply(reducer, correlation_id=correlation_id)

    async def refresh(self, tables: Optional[Iterable[str]] = None) -> None:
        """
        Reload tables from the store into local state.

        Rows that no longer validate are skipped and logged.
        """
        for table in tables or MODEL_FOR_TABLE:
            model = MODEL_FOR_TABLE[table]
            try:
                rows = await self._store.query(table)
            except StorageError as e:
                raise PersistenceError(f"Couldn't load {table}.", cause=e)

            records = []
            for row in rows:
                try:
                    records.append(model.model_validate(row))
                except ValidationError as e:
                    logger.warning("malformed_row_skipped", table=table, id=row.get("id"), error=str(e))
            self.state.load(table, records)
            self.state.publish([table])

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _apply_locally(self, change: ChangeSet) -> None:
        for table, record in change.inserts + change.upserts:
            self.state.put(table, record)
        for table, record_id in change.deletes:
            self.state.remove(table, record_id)

    async def _persist(self, change: ChangeSet, attempted: list) -> None:
        # A batch counts as attempted before the call: it may half-succeed.
        for table, rows in _grouped(change.inserts).items():
            attempted.extend(("insert", (table, row["id"])) for row in rows)
            await self._store.insert(table, rows)
        for table, rows in _grouped(change.upserts).items():
            attempted.extend(("upsert", (table, row["id"])) for row in rows)
            await self._store.upsert(table, rows)
        for table, record_id in change.deletes:
            attempted.append(("delete", (table, record_id)))
            await self._store.delete(table, record_id)

    async def _compensate(
        self,
        change: ChangeSet,
        snap: dict[tuple[str, str], Optional[BaseModel]],
        attempted: list,
    ) -> None:
        """Best-effort: put the store back the way the snapshot says it was."""
        for operation, key in reversed(attempted):
            table, record_id = key
            previous = snap.get(key)
            try:
                if previous is None:
                    await self._store.delete(table, record_id)
                else:
                    await self._store.upsert(table, previous.model_dump(mode="json"))
            except StorageError as e:
                logger.warning(
                    "compensation_failed",
                    operation=operation,
                    table=table,
                    id=record_id,
                    error=str(e),
                )
