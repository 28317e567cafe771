"""
Sessions and Dialogue State

A Session is one conversation: a Telegram chat or a browser tab. It holds
at most one in-progress dialogue and at most one pending confirmation.

DESIGN DECISION: DialogueState is a tagged union with one variant per flow,
discriminated on `flow`. Each variant carries exactly the fields its flow
collects, so a transfer can never end up with a reminder title, and the
step enum of each variant only admits that flow's steps.

Sessions live in memory only. They are created on the first message and
dropped on logout or process restart.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from lifesync.models.intent import PendingAction


class Flow(str, Enum):
    """Multi-turn flows the bot and web widget can start."""
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"
    REMINDER = "reminder"
    SNOOZE = "snooze"
    WATCH_LATER = "watch_later"
    PASSWORD = "password"


class MoneyStep(str, Enum):
    AWAITING_AMOUNT = "awaiting_amount"
    AWAITING_ACCOUNT = "awaiting_account"
    AWAITING_PURPOSE = "awaiting_purpose"


class TransferStep(str, Enum):
    AWAITING_AMOUNT = "awaiting_amount"
    AWAITING_FROM_ACCOUNT = "awaiting_from_account"
    AWAITING_TO_ACCOUNT = "awaiting_to_account"


class ReminderStep(str, Enum):
    AWAITING_TITLE = "awaiting_title"
    AWAITING_DATE = "awaiting_date"
    AWAITING_TIME = "awaiting_time"


class SnoozeStep(str, Enum):
    AWAITING_HOURS = "awaiting_hours"


class WatchLaterStep(str, Enum):
    AWAITING_URL = "awaiting_url"


class PasswordStep(str, Enum):
    AWAITING_SERVICE = "awaiting_service"
    AWAITING_USERNAME = "awaiting_username"
    AWAITING_PASSWORD = "awaiting_password"


class _Dialogue(BaseModel):
    model_config = ConfigDict(frozen=True)


class ExpenseDialogue(_Dialogue):
    flow: Literal[Flow.EXPENSE] = Flow.EXPENSE
    step: MoneyStep = MoneyStep.AWAITING_AMOUNT
    amount: Optional[Decimal] = None
    account_id: Optional[str] = None


class IncomeDialogue(_Dialogue):
    flow: Literal[Flow.INCOME] = Flow.INCOME
    step: MoneyStep = MoneyStep.AWAITING_AMOUNT
    amount: Optional[Decimal] = None
    account_id: Optional[str] = None


class TransferDialogue(_Dialogue):
    flow: Literal[Flow.TRANSFER] = Flow.TRANSFER
    step: TransferStep = TransferStep.AWAITING_AMOUNT
    amount: Optional[Decimal] = None
    from_account_id: Optional[str] = None


class ReminderDialogue(_Dialogue):
    flow: Literal[Flow.REMINDER] = Flow.REMINDER
    step: ReminderStep = ReminderStep.AWAITING_TITLE
    title: Optional[str] = None
    due_day: Optional[date] = None


class SnoozeDialogue(_Dialogue):
    flow: Literal[Flow.SNOOZE] = Flow.SNOOZE
    step: SnoozeStep = SnoozeStep.AWAITING_HOURS
    reminder_id: str


class WatchLaterDialogue(_Dialogue):
    flow: Literal[Flow.WATCH_LATER] = Flow.WATCH_LATER
    step: WatchLaterStep = WatchLaterStep.AWAITING_URL


class PasswordDialogue(_Dialogue):
    flow: Literal[Flow.PASSWORD] = Flow.PASSWORD
    step: PasswordStep = PasswordStep.AWAITING_SERVICE
    service: Optional[str] = None
    username: Optional[str] = None


DialogueState = Annotated[
    Union[
        ExpenseDialogue,
        IncomeDialogue,
        TransferDialogue,
        ReminderDialogue,
        SnoozeDialogue,
        WatchLaterDialogue,
        PasswordDialogue,
    ],
    Field(discriminator="flow"),
]


@dataclass
class Session:
    """
    One conversation.

    `lock` serializes every turn of this conversation; different sessions
    never wait on each other.
    """
    session_id: str
    dialogue: Optional[DialogueState] = None
    pending_action: Optional[PendingAction] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_seen: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        self.last_seen = datetime.now(timezone.utc)


class SessionTable:
    """Arena of live sessions keyed by session id."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def get_or_create(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(session_id=session_id)
            self._sessions[session_id] = session
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def drop(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
