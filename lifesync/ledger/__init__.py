"""Ledger package: pure account/friend arithmetic."""

from lifesync.ledger.mutator import (
    BalanceOverwrite,
    Expense,
    Income,
    LedgerChange,
    LedgerError,
    LedgerMutation,
    OpenAccount,
    Settlement,
    Split,
    SubscriptionCharge,
    Transfer,
    apply,
    format_money,
    split_shares,
)

__all__ = [
    "BalanceOverwrite",
    "Expense",
    "Income",
    "LedgerChange",
    "LedgerError",
    "LedgerMutation",
    "OpenAccount",
    "Settlement",
    "Split",
    "SubscriptionCharge",
    "Transfer",
    "apply",
    "format_money",
    "split_shares",
]
