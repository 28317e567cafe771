"""
AI Agents Package

The intent decoder is the only component that talks to an LLM.
"""

from lifesync.agents.intent_decoder import (
    FALLBACK_REPLY,
    IntentDecoder,
    intent_from_payload,
    parse_json_object,
)

__all__ = [
    "FALLBACK_REPLY",
    "IntentDecoder",
    "intent_from_payload",
    "parse_json_object",
]
