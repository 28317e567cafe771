"""
Record Models for LifeSync

These models define the strict schemas for every record the dashboard
stores remotely: the ledger (accounts, friends, transactions,
subscriptions) and the personal records (reminders, passwords, watch-later
items, daily habits).

DESIGN DECISION: Money is Decimal, never float. Rupee amounts are summed,
split and compared for equality (settlement must land on exactly zero),
which floats cannot do reliably.

Records are plain values. The Ledger Mutator produces new copies with
model_copy(update=...) instead of editing them in place, so a snapshot
taken before a mutation can never be changed by it.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# Longest account or friend name
NAME_MAX_LENGTH = 100


def new_id() -> str:
    """Generate a record id."""
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Kinds of money accounts."""
    CASH = "CASH"
    BANK = "BANK"
    WALLET = "WALLET"
    CREDIT = "CREDIT"


class TransactionKind(str, Enum):
    """
    Every movement of money recorded in the ledger.

    SPLIT and SETTLEMENT involve a friend; SUBSCRIPTION is a recurring
    charge logged against an account.
    """
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"
    TRANSFER = "TRANSFER"
    SPLIT = "SPLIT"
    SETTLEMENT = "SETTLEMENT"
    SUBSCRIPTION = "SUBSCRIPTION"


class ReminderCategory(str, Enum):
    GENERAL = "GENERAL"
    WORK = "WORK"


class SubscriptionFrequency(str, Enum):
    """Billing cycle of a subscription."""
    MONTHLY = "MONTHLY"
    QUARTERLY = "3 MONTHS"
    HALF_YEARLY = "6 MONTHS"
    YEARLY = "YEARLY"


class Tables:
    """Table names in the remote store."""
    ACCOUNTS = "accounts"
    FRIENDS = "friends"
    TRANSACTIONS = "transactions"
    SUBSCRIPTIONS = "subscriptions"
    REMINDERS = "reminders"
    PASSWORDS = "passwords"
    MEDIA_ITEMS = "media_items"
    DAILY_HABITS = "daily_habits"
    AUDIT_LOG = "audit_log"

    LEDGER = (ACCOUNTS, FRIENDS, TRANSACTIONS)


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Account(BaseModel):
    """
    A money account.

    INVARIANT (at rest): balance == opening_balance + total_inflow - total_outflow
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    type: AccountType = Field(default=AccountType.CASH)
    balance: Decimal = Field(default=Decimal("0"))
    opening_balance: Decimal = Field(
        default=Decimal("0"),
        description="Balance the account was opened with"
    )
    total_inflow: Decimal = Field(default=Decimal("0"), ge=0)
    total_outflow: Decimal = Field(default=Decimal("0"), ge=0)

    @property
    def is_balanced(self) -> bool:
        """Check the at-rest invariant."""
        return self.balance == (
            self.opening_balance + self.total_inflow - self.total_outflow
        )


class Friend(BaseModel):
    """
    Someone the user splits expenses with.

    net_balance > 0: the friend owes the user.
    net_balance < 0: the user owes the friend.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    net_balance: Decimal = Field(default=Decimal("0"))


class Transaction(BaseModel):
    """
    One ledger entry.

    Immutable once created except for deletion. Deleting a transaction
    does not reverse the balance change it caused.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    amount: Decimal = Field(..., gt=0)
    purpose: str = Field(..., min_length=1)
    date: date
    kind: TransactionKind
    account_id: Optional[str] = Field(
        default=None,
        description="Account debited/credited (None for splits a friend paid)"
    )
    to_account_id: Optional[str] = None
    participant_names: list[str] = Field(default_factory=list)
    payer_name: Optional[str] = None
    friend_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_transfer(self) -> bool:
        return self.kind == TransactionKind.TRANSFER


class Subscription(BaseModel):
    """A recurring charge."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    frequency: SubscriptionFrequency = SubscriptionFrequency.MONTHLY
    account_id: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True


# =============================================================================
# PERSONAL RECORDS
# =============================================================================

class Reminder(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    title: str = Field(..., min_length=1)
    description: str = ""
    due_date: datetime
    category: ReminderCategory = ReminderCategory.GENERAL
    is_done: bool = False

    @field_validator("due_date")
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        """Due dates are compared across front-ends, so they must be aware."""
        if v.tzinfo is None:
            raise ValueError("due_date must be timezone-aware")
        return v


class PasswordEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    service: str = Field(..., min_length=1)
    username: str = "Unknown"
    password: str = "Unknown"
    notes: str = ""


class MediaItem(BaseModel):
    """A watch-later link."""

    id: str = Field(default_factory=new_id)
    title: str
    link: str
    is_watched: bool = False
    date_added: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("link")
    @classmethod
    def require_http(cls, v: str) -> str:
        if not v.startswith("http"):
            raise ValueError("link must start with http")
        return v


class DailyHabit(BaseModel):
    """Habit counters for one day. The id is the ISO date."""

    id: str
    water_intake: int = Field(default=0, ge=0)
    wake_up_time: Optional[str] = None
    sleep_time: Optional[str] = None


MODEL_FOR_TABLE: dict[str, type[BaseModel]] = {
    Tables.ACCOUNTS: Account,
    Tables.FRIENDS: Friend,
    Tables.TRANSACTIONS: Transaction,
    Tables.SUBSCRIPTIONS: Subscription,
    Tables.REMINDERS: Reminder,
    Tables.PASSWORDS: PasswordEntry,
    Tables.MEDIA_ITEMS: MediaItem,
    Tables.DAILY_HABITS: DailyHabit,
}
