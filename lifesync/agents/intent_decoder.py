"""
Intent Decoder

Turns free text or a voice note into a structured Intent using Gemini.

CRITICAL BOUNDARIES:
- The model ONLY classifies and extracts. It never executes anything.
- Whatever it returns is treated as untrusted: unknown intents become
  UNKNOWN, missing keys stay missing, and the handlers re-validate every
  field before acting.
- Failures never raise. The caller always gets an Intent back.

The payload the model is asked for is nested by topic (transaction,
account, reminder, ...). intent_from_payload() flattens it into the field
names the handlers read; it is a pure function so it can be tested without
the API.
"""

import json
from datetime import datetime
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

import google.generativeai as genai
import structlog

from lifesync.audit import AuditLogger
from lifesync.config import get_settings
from lifesync.models.intent import Intent, IntentKind


logger = structlog.get_logger("lifesync.agents")

FALLBACK_REPLY = "Sorry, I couldn't understand that right now. Please try again or use the menu."


# Nested payload key -> flat field name, per topic
_FIELD_MAP: dict[str, dict[str, str]] = {
    "transaction": {
        "amount": "amount",
        "purpose": "purpose",
        "accountHint": "account",
        "toAccountHint": "to_account",
    },
    "account": {
        "name": "name",
        "balance": "balance",
        "type": "type",
    },
    "reminder": {
        "title": "title",
        "dateStr": "due_date",
        "description": "description",
        "category": "category",
    },
    "watchLater": {
        "url": "url",
        "title": "title",
    },
    "password": {
        "service": "service",
        "username": "username",
        "password": "password",
    },
    "habit": {
        "glasses": "glasses",
        "time": "time",
    },
    "subscription": {
        "name": "name",
        "amount": "amount",
        "frequency": "frequency",
        "accountHint": "account",
        "chargeNow": "charge_now",
    },
    "split": {
        "friendName": "friend",
        "friendNames": "friends",
        "payerName": "payer",
        "amount": "amount",
        "description": "purpose",
        "accountHint": "account",
    },
}

# Which topic a kind reads first, and which key of it names the target
_TOPIC_FOR_KIND: dict[IntentKind, tuple[str, Optional[str]]] = {
    IntentKind.ADD_EXPENSE: ("transaction", None),
    IntentKind.ADD_INCOME: ("transaction", None),
    IntentKind.ADD_TRANSFER: ("transaction", None),
    IntentKind.DELETE_TRANSACTION: ("transaction", "purpose"),
    IntentKind.ADD_ACCOUNT: ("account", None),
    IntentKind.DELETE_ACCOUNT: ("account", "name"),
    IntentKind.MODIFY_BALANCE: ("account", "name"),
    IntentKind.ADD_REMINDER: ("reminder", None),
    IntentKind.EDIT_REMINDER: ("reminder", "title"),
    IntentKind.DELETE_REMINDER: ("reminder", "title"),
    IntentKind.MARK_REMINDER_DONE: ("reminder", "title"),
    IntentKind.SNOOZE_REMINDER: ("reminder", "title"),
    IntentKind.ADD_WATCH_LATER: ("watchLater", None),
    IntentKind.MARK_WATCHED: ("watchLater", "title"),
    IntentKind.ADD_PASSWORD: ("password", None),
    IntentKind.VIEW_PASSWORD: ("password", "service"),
    IntentKind.ADD_WATER: ("habit", None),
    IntentKind.SET_WAKEUP: ("habit", None),
    IntentKind.SET_SLEEP: ("habit", None),
    IntentKind.ADD_SUB: ("subscription", None),
    IntentKind.DELETE_SUB: ("subscription", "name"),
    IntentKind.ADD_FRIEND: ("split", None),
    IntentKind.DELETE_FRIEND: ("split", "friendName"),
    IntentKind.ADD_SPLIT: ("split", None),
    IntentKind.SETTLE_FRIEND: ("split", "friendName"),
}


def _section(payload: dict[str, Any], name: Optional[str]) -> dict[str, Any]:
    """A topic of the payload, or {} when it is missing or not an object."""
    section = payload.get(name) if name else None
    return section if isinstance(section, dict) else {}


def _text(value: Any) -> Optional[str]:
    """A scalar from the payload as text; empty values and containers become None."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _kind_of(payload: dict[str, Any]) -> IntentKind:
    raw = str(payload.get("intent") or "").strip().upper()
    if raw == "ADD_TRANSACTION":
        tx_type = str(_section(payload, "transaction").get("type") or "").upper()
        return IntentKind.ADD_INCOME if tx_type == "INCOME" else IntentKind.ADD_EXPENSE
    try:
        return IntentKind(raw)
    except ValueError:
        return IntentKind.UNKNOWN


def intent_from_payload(payload: dict[str, Any]) -> Intent:
    """
    Flatten a decoder payload into an Intent.

    Args:
        payload: The JSON object returned by the model

    Returns:
        Intent; UNKNOWN if the intent name is missing or not supported
    """
    kind = _kind_of(payload)
    topic, target_key = _TOPIC_FOR_KIND.get(kind, (None, None))

    topics = list(_FIELD_MAP)
    if topic:
        topics.remove(topic)
        topics.insert(0, topic)

    fields: dict[str, Any] = {}
    for name in topics:
        section = _section(payload, name)
        for source, target in _FIELD_MAP[name].items():
            value = section.get(source)
            if value is not None and value != "":
                fields.setdefault(target, value)

    if kind == IntentKind.ADD_FRIEND and "name" not in fields and "friend" in fields:
        fields["name"] = fields.pop("friend")

    if kind == IntentKind.EDIT_REMINDER:
        # The current title names the target; the new values are the edit
        reminder = _section(payload, "reminder")
        fields.pop("title", None)
        fields.pop("due_date", None)
        if _text(reminder.get("newTitle")):
            fields["title"] = _text(reminder["newTitle"])
        if _text(reminder.get("newDateStr")):
            fields["due_date"] = _text(reminder["newDateStr"])

    target_hint = _text(payload.get("actionId"))
    if target_hint is None and target_key:
        target_hint = _text(_section(payload, topic).get(target_key))

    return Intent(
        kind=kind,
        fields=fields,
        target_hint=target_hint,
        reply_text=_text(payload.get("replyText")),
    )


def parse_json_object(text: str) -> dict[str, Any]:
    """Extract the outermost JSON object from a model response."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ValueError("No JSON object in model response")
    data = json.loads(text[start:end])
    if not isinstance(data, dict):
        raise ValueError("Model response is not a JSON object")
    return data


_INSTRUCTIONS = """You are LifeSync, the assistant of a personal dashboard app.
Parse the user's input (text or a voice note) and determine their intent.
The user's local timezone is {timezone}. The current time is {now}.

Allowed intents: {intents}

Respond with ONLY a JSON object of this shape (omit keys that do not apply):
{{
  "intent": "ONE_OF_THE_ALLOWED_INTENTS",
  "actionId": "keyword naming the record to delete/edit/settle, if any",
  "transaction": {{"amount": 0, "purpose": "", "accountHint": "", "toAccountHint": ""}},
  "account": {{"name": "", "balance": 0, "type": "CASH|BANK|WALLET|CREDIT"}},
  "reminder": {{"title": "", "dateStr": "YYYY-MM-DDTHH:MM", "newTitle": "", "newDateStr": ""}},
  "watchLater": {{"url": "", "title": ""}},
  "password": {{"service": "", "username": "", "password": ""}},
  "habit": {{"glasses": 0, "time": "HH:MM"}},
  "subscription": {{"name": "", "amount": 0, "frequency": "MONTHLY|3 MONTHS|6 MONTHS|YEARLY", "accountHint": ""}},
  "split": {{"friendName": "", "friendNames": [], "payerName": "me", "amount": 0, "description": "", "accountHint": ""}},
  "replyText": "short conversational reply"
}}

Rules:
- If the input contains a URL and nothing else, it's ADD_WATCH_LATER.
- Spending money is ADD_EXPENSE, receiving money is ADD_INCOME.
- "remind me to ..." is ADD_REMINDER. Resolve relative dates to an ISO date and time.
- Asking for a saved password is VIEW_PASSWORD with the service in password.service.
- If the user is chatting or asking a general question, use UNKNOWN and answer in replyText.
- Never invent amounts, names or dates that the user did not give."""


class IntentDecoder:
    """
    Gemini-backed decoder.

    Args:
        audit_logger: Optional audit trail for API failures
        clock: Returns the current aware datetime (injectable for tests)
    """

    def __init__(
        self,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = get_settings()
        self._settings = settings.gemini
        self._tz = ZoneInfo(settings.app.timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._audit = audit_logger
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            },
        )

    def _instructions(self) -> str:
        intents = ", ".join(k.value for k in IntentKind)
        now = self._clock().astimezone(self._tz).strftime("%A %d %B %Y, %H:%M")
        return _INSTRUCTIONS.format(timezone=self._tz.key, now=now, intents=intents)

    async def decode_text(self, text: str) -> Intent:
        """Decode a typed message."""
        prompt = f"{self._instructions()}\n\nUser input:\n{text}"
        return await self._decode([prompt])

    async def decode_audio(self, audio: bytes, mime_type: str = "audio/ogg") -> Intent:
        """Decode a voice note."""
        return await self._decode([
            self._instructions(),
            {"mime_type": mime_type, "data": audio},
            "Please process this voice message.",
        ])

    async def _decode(self, contents: list) -> Intent:
        try:
            response = await self._model.generate_content_async(contents)
            intent = intent_from_payload(parse_json_object(response.text.strip()))
        except Exception as e:
            logger.warning("intent_decode_failed", error=str(e))
            if self._audit:
                await self._audit.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                )
            return Intent(kind=IntentKind.UNKNOWN, reply_text=FALLBACK_REPLY)

        logger.info("intent_decoded", kind=intent.kind.value, fields=sorted(intent.fields))
        return intent
