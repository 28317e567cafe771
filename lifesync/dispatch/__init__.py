"""Command dispatch: handler table, target resolution, outcomes."""

from lifesync.dispatch.base import HandlerContext, IntentHandler
from lifesync.dispatch.dispatcher import (
    CommandDispatcher,
    default_handlers,
    outcome_for_error,
)
from lifesync.dispatch.resolver import CLARIFY, FIRST, TargetResolver

__all__ = [
    "CLARIFY",
    "CommandDispatcher",
    "FIRST",
    "HandlerContext",
    "IntentHandler",
    "TargetResolver",
    "default_handlers",
    "outcome_for_error",
]
