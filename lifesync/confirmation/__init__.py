"""Confirmation gate for destructive commands."""

from lifesync.confirmation.gate import NOTHING_TO_CONFIRM, ConfirmationGate

__all__ = ["ConfirmationGate", "NOTHING_TO_CONFIRM"]
