"""
Command Errors

DESIGN DECISION: Every failure a command can hit maps to one of four
classes, and each class has exactly one user-visible treatment:

- CommandValidationError -> Clarify, nothing changed
- TargetNotFoundError    -> Clarify, nothing changed
- PersistenceError       -> local state rolled back, user sees an error
- StaleConfirmationError -> "nothing to confirm", nothing changed

The Dispatcher and the Confirmation Gate are the only places these are
caught. Nothing below them converts errors into messages.
"""

from typing import Optional


class CommandError(Exception):
    """Base exception for the command-execution core."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CommandValidationError(CommandError):
    """A required field is missing or malformed."""
    pass


class AmbiguousTargetError(CommandValidationError):
    """A hint matched several records and the user has to pick one."""

    def __init__(self, message: str, candidates: Optional[list[str]] = None):
        super().__init__(message)
        self.candidates = candidates or []


class TargetNotFoundError(CommandError):
    """A target hint resolved to no record."""
    pass


class PersistenceError(CommandError):
    """The store rejected a write; the optimistic change was rolled back."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class StaleConfirmationError(CommandError):
    """A yes/no arrived but no action is waiting for it."""
    pass
