"""
Command Models

The values that flow through the command-execution core:

    Intent         what the user asked for (from the decoder or a dialogue)
    PendingAction  a destructive mutation waiting for yes/no
    Outcome        what the core answers

DESIGN DECISION: Intent.fields is a loose mapping on purpose. The decoder
is an external model that may omit or mistype any key, and the core has to
answer with a clarification in that case rather than crash. Each handler
validates the fields it needs.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class IntentKind(str, Enum):
    """Every command the core knows how to execute."""
    # Finance
    ADD_EXPENSE = "ADD_EXPENSE"
    ADD_INCOME = "ADD_INCOME"
    ADD_TRANSFER = "ADD_TRANSFER"
    DELETE_TRANSACTION = "DELETE_TRANSACTION"
    LIST_TRANSACTIONS = "LIST_TRANSACTIONS"
    GET_FINANCE_OVERVIEW = "GET_FINANCE_OVERVIEW"
    LIST_ACCOUNTS = "LIST_ACCOUNTS"
    ADD_ACCOUNT = "ADD_ACCOUNT"
    DELETE_ACCOUNT = "DELETE_ACCOUNT"
    MODIFY_BALANCE = "MODIFY_BALANCE"

    # Friends and splits
    ADD_FRIEND = "ADD_FRIEND"
    DELETE_FRIEND = "DELETE_FRIEND"
    ADD_SPLIT = "ADD_SPLIT"
    SETTLE_FRIEND = "SETTLE_FRIEND"
    VIEW_SPLITS = "VIEW_SPLITS"

    # Subscriptions
    ADD_SUB = "ADD_SUB"
    LIST_SUBS = "LIST_SUBS"
    DELETE_SUB = "DELETE_SUB"

    # Reminders
    ADD_REMINDER = "ADD_REMINDER"
    EDIT_REMINDER = "EDIT_REMINDER"
    DELETE_REMINDER = "DELETE_REMINDER"
    LIST_REMINDERS = "LIST_REMINDERS"
    MARK_REMINDER_DONE = "MARK_REMINDER_DONE"
    SNOOZE_REMINDER = "SNOOZE_REMINDER"

    # Personal records
    ADD_WATCH_LATER = "ADD_WATCH_LATER"
    LIST_WATCH_LATER = "LIST_WATCH_LATER"
    MARK_WATCHED = "MARK_WATCHED"
    ADD_PASSWORD = "ADD_PASSWORD"
    LIST_PASSWORDS = "LIST_PASSWORDS"
    VIEW_PASSWORD = "VIEW_PASSWORD"

    # Habits
    ADD_WATER = "ADD_WATER"
    SET_WAKEUP = "SET_WAKEUP"
    SET_SLEEP = "SET_SLEEP"

    UNKNOWN = "UNKNOWN"


class Intent(BaseModel):
    """
    A structured request, produced outside the core.

    Immutable: the core reads it, never edits it.
    """

    model_config = ConfigDict(frozen=True)

    intent_id: UUID = Field(default_factory=uuid4)
    kind: IntentKind
    fields: dict[str, Any] = Field(
        default_factory=dict,
        description="Decoded parameters; any key may be missing"
    )
    target_hint: Optional[str] = Field(
        default=None,
        description="Free-text hint naming the record to act on"
    )
    reply_text: Optional[str] = Field(
        default=None,
        description="Conversational reply suggested by the decoder"
    )

    def get(self, key: str, default: Any = None) -> Any:
        value = self.fields.get(key, default)
        if isinstance(value, str) and not value.strip():
            return default
        return value


class MutationKind(str, Enum):
    """Destructive mutations that must be confirmed first."""
    DELETE_TRANSACTION = "delete_transaction"
    DELETE_REMINDER = "delete_reminder"
    DELETE_ACCOUNT = "delete_account"
    DELETE_SUBSCRIPTION = "delete_subscription"
    DELETE_FRIEND = "delete_friend"
    BALANCE_OVERWRITE = "balance_overwrite"
    EDIT_REMINDER = "edit_reminder"


class PendingAction(BaseModel):
    """
    A proposed, not-yet-applied mutation.

    Lives on the Session until the next yes/no and is deleted regardless of
    the answer.
    """

    model_config = ConfigDict(frozen=True)

    action_id: UUID = Field(default_factory=uuid4)
    kind: MutationKind
    target_id: str
    payload: Optional[Any] = None
    description: str = Field(
        default="",
        description="What will happen, shown with the yes/no prompt"
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class OutcomeStatus(str, Enum):
    EXECUTED = "executed"
    CLARIFY = "clarify"
    PENDING_CONFIRMATION = "pending_confirmation"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Outcome(BaseModel):
    """The core's answer to one dispatch or resolve call."""

    status: OutcomeStatus
    message: str
    pending_action: Optional[PendingAction] = None
    options: list[str] = Field(
        default_factory=list,
        description="Choices the front-end may render as buttons"
    )

    @classmethod
    def executed(cls, message: str) -> "Outcome":
        return cls(status=OutcomeStatus.EXECUTED, message=message)

    @classmethod
    def clarify(cls, message: str, options: Optional[list[str]] = None) -> "Outcome":
        return cls(status=OutcomeStatus.CLARIFY, message=message, options=options or [])

    @classmethod
    def pending(cls, message: str, action: PendingAction) -> "Outcome":
        return cls(
            status=OutcomeStatus.PENDING_CONFIRMATION,
            message=message,
            pending_action=action,
        )

    @classmethod
    def failed(cls, message: str) -> "Outcome":
        return cls(status=OutcomeStatus.FAILED, message=message)

    @classmethod
    def cancelled(cls, message: str) -> "Outcome":
        return cls(status=OutcomeStatus.CANCELLED, message=message)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.EXECUTED
