"""
Shared test helpers.

No network: the in-memory store replaces Google Sheets and a stub replaces
the Gemini decoder. The clock is fixed so dates in messages are stable.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from lifesync.audit import AuditLogger
from lifesync.core import CommandCore
from lifesync.dialogue import DialogueMachine
from lifesync.dispatch import CommandDispatcher, HandlerContext, TargetResolver
from lifesync.models.intent import Intent, IntentKind
from lifesync.models.records import Account, AccountType, Friend, Reminder, Tables
from lifesync.services.storage import InMemoryStore
from lifesync.sync import OptimisticSyncEngine


IST = ZoneInfo("Asia/Kolkata")
NOW = datetime(2026, 3, 14, 10, 0, tzinfo=IST)


def fixed_clock() -> datetime:
    return NOW


def make_account(name: str, balance: str = "1000", type: AccountType = AccountType.CASH) -> Account:
    return Account(
        name=name,
        type=type,
        balance=Decimal(balance),
        opening_balance=Decimal(balance),
    )


def seed_store(
    accounts=(),
    friends=(),
    reminders=(),
    transactions=(),
    subscriptions=(),
    media_items=(),
    passwords=(),
) -> InMemoryStore:
    """An in-memory store holding the given records, as the remote store would."""
    initial = {
        Tables.ACCOUNTS: accounts,
        Tables.FRIENDS: friends,
        Tables.REMINDERS: reminders,
        Tables.TRANSACTIONS: transactions,
        Tables.SUBSCRIPTIONS: subscriptions,
        Tables.MEDIA_ITEMS: media_items,
        Tables.PASSWORDS: passwords,
    }
    return InMemoryStore({
        table: [r.model_dump(mode="json") for r in records]
        for table, records in initial.items()
    })


class StubDecoder:
    """Maps exact input texts to intents."""

    def __init__(self, intents: Optional[dict[str, Intent]] = None):
        self.intents = intents or {}
        self.seen: list[str] = []

    async def decode_text(self, text: str) -> Intent:
        self.seen.append(text)
        return self.intents.get(text, Intent(kind=IntentKind.UNKNOWN))

    async def decode_audio(self, audio: bytes, mime_type: str = "audio/ogg") -> Intent:
        return await self.decode_text(audio.decode())


def build_core(
    store: InMemoryStore,
    decoder: Optional[StubDecoder] = None,
    policy: str = "first",
    audit_logger: Optional[AuditLogger] = None,
) -> CommandCore:
    """A fully wired core over `store`, with local state loaded."""
    engine = OptimisticSyncEngine(store, audit_logger=audit_logger)
    context = HandlerContext(
        engine=engine,
        resolver=TargetResolver(policy),
        timezone=IST,
        clock=fixed_clock,
    )
    dispatcher = CommandDispatcher(context, audit_logger=audit_logger)
    machine = DialogueMachine(
        accounts=lambda: engine.state.all(Tables.ACCOUNTS),
        clock=fixed_clock,
    )
    core = CommandCore(engine, dispatcher, machine, decoder=decoder, audit_logger=audit_logger)
    asyncio.run(core.load())
    return core


@pytest.fixture
def cash() -> Account:
    return make_account("Cash")


@pytest.fixture
def bank() -> Account:
    return make_account("HDFC Bank", "5000", AccountType.BANK)


@pytest.fixture
def alice() -> Friend:
    return Friend(name="Alice")


@pytest.fixture
def rent_reminder() -> Reminder:
    return Reminder(title="Pay Rent", due_date=datetime(2026, 3, 20, 9, 0, tzinfo=IST))
