"""Dialogue package: sessions and multi-turn parameter collection."""

from lifesync.dialogue.state import (
    DialogueState,
    Flow,
    Session,
    SessionTable,
)
from lifesync.dialogue.machine import (
    MAX_SNOOZE_HOURS,
    Completed,
    DialogueMachine,
    Prompt,
    parse_amount,
    parse_clock,
)

__all__ = [
    "MAX_SNOOZE_HOURS",
    "Completed",
    "DialogueMachine",
    "DialogueState",
    "Flow",
    "Prompt",
    "Session",
    "SessionTable",
    "parse_amount",
    "parse_clock",
]
