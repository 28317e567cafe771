"""
Data Models Package

This package contains all Pydantic models used by LifeSync.
All data flowing through the command core must conform to these schemas.
"""

from lifesync.models.records import (
    MODEL_FOR_TABLE,
    Account,
    AccountType,
    DailyHabit,
    Friend,
    MediaItem,
    PasswordEntry,
    Reminder,
    ReminderCategory,
    Subscription,
    SubscriptionFrequency,
    Tables,
    Transaction,
    TransactionKind,
    new_id,
)
from lifesync.models.intent import (
    Intent,
    IntentKind,
    MutationKind,
    Outcome,
    OutcomeStatus,
    PendingAction,
)
from lifesync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records
    "MODEL_FOR_TABLE",
    "Account",
    "AccountType",
    "DailyHabit",
    "Friend",
    "MediaItem",
    "PasswordEntry",
    "Reminder",
    "ReminderCategory",
    "Subscription",
    "SubscriptionFrequency",
    "Tables",
    "Transaction",
    "TransactionKind",
    "new_id",
    # Commands
    "Intent",
    "IntentKind",
    "MutationKind",
    "Outcome",
    "OutcomeStatus",
    "PendingAction",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
