"""
Command Core

The single entry point both front-ends (Telegram bot, web chat widget)
drive. It ties together:

    SessionTable -> DialogueMachine -> CommandDispatcher -> ConfirmationGate
                                                        -> OptimisticSyncEngine

FLOW of handle_text(session_id, text):
1. A PendingAction is waiting:
   - yes/no words answer it
   - anything else discards it ("Previous action cancelled.") and the
     text is processed normally
2. A dialogue is in progress: cancel words cancel it, anything else
   advances it; a completed dialogue is dispatched
3. Otherwise the decoder turns the text into an Intent, which is dispatched

DESIGN DECISION: Every public method holds the session's lock for its whole
duration. Two messages of the same conversation are therefore processed
strictly one after the other; different conversations never wait on each
other.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog
from pydantic import BaseModel, Field

from lifesync.agents import IntentDecoder
from lifesync.audit import AuditLogger, create_correlation_id
from lifesync.config import get_settings
from lifesync.dialogue import Completed, DialogueMachine, Flow, Session, SessionTable
from lifesync.dispatch import CommandDispatcher, HandlerContext, TargetResolver
from lifesync.errors import CommandValidationError
from lifesync.models.audit import AuditEventType
from lifesync.models.intent import Intent, IntentKind, Outcome, OutcomeStatus
from lifesync.models.records import Tables
from lifesync.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsStore,
    InMemoryStore,
    StoreInterface,
)
from lifesync.sync import OptimisticSyncEngine


logger = structlog.get_logger("lifesync.core")

YES_WORDS = {"yes", "y", "yeah", "yep", "confirm", "ok", "okay", "sure", "✅ yes"}
NO_WORDS = {"no", "n", "nope", "cancel", "/cancel", "stop", "❌ no"}

PREVIOUS_CANCELLED = "Previous action cancelled."


class Reply(BaseModel):
    """What a front-end shows after one user action."""

    message: str
    status: OutcomeStatus
    options: list[str] = Field(
        default_factory=list,
        description="Choices to render as buttons"
    )
    awaiting_confirmation: bool = False
    in_dialogue: bool = Field(
        default=False,
        description="True while a multi-step flow is collecting input"
    )

    @classmethod
    def from_outcome(cls, outcome: Outcome, note: Optional[str] = None) -> "Reply":
        message = f"{note}\n\n{outcome.message}" if note else outcome.message
        return cls(
            message=message,
            status=outcome.status,
            options=outcome.options,
            awaiting_confirmation=outcome.status == OutcomeStatus.PENDING_CONFIRMATION,
        )


class CommandCore:
    """
    Session-aware facade over the command-execution core.

    Args:
        engine: The sync engine holding local state
        dispatcher: Handler table and confirmation gate
        machine: Dialogue state machine
        sessions: Session arena (a new one by default)
        decoder: Turns free text / audio into intents; without it only
            menu flows and explicit intents work
        audit_logger: Optional audit trail
    """

    def __init__(
        self,
        engine: OptimisticSyncEngine,
        dispatcher: CommandDispatcher,
        machine: DialogueMachine,
        sessions: Optional[SessionTable] = None,
        decoder: Optional[IntentDecoder] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.engine = engine
        self.dispatcher = dispatcher
        self.machine = machine
        self.sessions = sessions or SessionTable()
        self.decoder = decoder
        self._audit = audit_logger

    @property
    def state(self):
        return self.engine.state

    async def load(self) -> None:
        """Fetch every table from the store into local state."""
        await self.engine.refresh()
        logger.info(
            "state_loaded",
            accounts=len(self.state.all(Tables.ACCOUNTS)),
            transactions=len(self.state.all(Tables.TRANSACTIONS)),
            reminders=len(self.state.all(Tables.REMINDERS)),
        )

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def handle_text(self, session_id: str, text: str) -> Reply:
        """Process one typed (or transcribed) message."""
        session = self.sessions.get_or_create(session_id)
        async with session.lock:
            session.touch()
            correlation_id = create_correlation_id()
            text = (text or "").strip()

            note = None
            if session.pending_action is not None:
                word = text.lower()
                if word in YES_WORDS or word in NO_WORDS:
                    outcome = await self.dispatcher.resolve(session, word in YES_WORDS, correlation_id)
                    return Reply.from_outcome(outcome)
                await self.dispatcher.gate.discard(session, correlation_id)
                note = PREVIOUS_CANCELLED

            if session.dialogue is not None:
                return await self._advance(session, text, correlation_id, note)

            if self.decoder is None:
                intent = Intent(kind=IntentKind.UNKNOWN)
            else:
                intent = await self.decoder.decode_text(text)
            outcome = await self.dispatcher.dispatch(session, intent, correlation_id)
            return Reply.from_outcome(outcome, note)

    async def handle_audio(self, session_id: str, audio: bytes, mime_type: str = "audio/ogg") -> Reply:
        """Process a voice note. Without a decoder it is answered with a clarification."""
        if self.decoder is None:
            return Reply(
                message="Voice notes need the assistant to be configured.",
                status=OutcomeStatus.CLARIFY,
            )
        intent = await self.decoder.decode_audio(audio, mime_type)
        return await self.handle_intent(session_id, intent)

    async def handle_intent(self, session_id: str, intent: Intent) -> Reply:
        """Dispatch an already-structured intent (button press, scheduler)."""
        session = self.sessions.get_or_create(session_id)
        async with session.lock:
            session.touch()
            correlation_id = create_correlation_id()
            note = await self._discard_pending(session, correlation_id)
            outcome = await self.dispatcher.dispatch(session, intent, correlation_id)
            return Reply.from_outcome(outcome, note)

    async def start_flow(self, session_id: str, flow: Flow, reminder_id: Optional[str] = None) -> Reply:
        """Begin a multi-step flow, replacing any flow in progress."""
        session = self.sessions.get_or_create(session_id)
        async with session.lock:
            session.touch()
            correlation_id = create_correlation_id()
            note = await self._discard_pending(session, correlation_id)
            try:
                prompt = self.machine.start(session, flow, reminder_id=reminder_id)
            except CommandValidationError as e:
                return Reply.from_outcome(Outcome.clarify(e.message), note)

            await self._log_dialogue(AuditEventType.DIALOGUE_STARTED, flow, session, correlation_id)
            message = f"{note}\n\n{prompt.prompt}" if note else prompt.prompt
            return Reply(
                message=message,
                status=OutcomeStatus.CLARIFY,
                options=prompt.options,
                in_dialogue=True,
            )

    async def choose(self, session_id: str, option: str) -> Reply:
        """A button press inside a dialogue; same as typing the option."""
        return await self.handle_text(session_id, option)

    async def confirm(self, session_id: str, accepted: bool) -> Reply:
        """Answer the pending action (Yes/No buttons)."""
        session = self.sessions.get_or_create(session_id)
        async with session.lock:
            session.touch()
            outcome = await self.dispatcher.resolve(session, accepted, create_correlation_id())
            return Reply.from_outcome(outcome)

    async def cancel(self, session_id: str) -> Reply:
        """Drop whatever this conversation has in progress."""
        session = self.sessions.get_or_create(session_id)
        async with session.lock:
            correlation_id = create_correlation_id()
            flow = session.dialogue.flow if session.dialogue else None
            had_action = await self.dispatcher.gate.discard(session, correlation_id) is not None
            had_dialogue = self.machine.cancel(session)
            if had_dialogue:
                await self._log_dialogue(AuditEventType.DIALOGUE_CANCELLED, flow, session, correlation_id)
            if had_dialogue or had_action:
                return Reply.from_outcome(Outcome.cancelled("Cancelled."))
            return Reply.from_outcome(Outcome.clarify("Nothing to cancel."))

    def end_session(self, session_id: str) -> bool:
        """Forget a conversation (logout)."""
        return self.sessions.drop(session_id)

    def session(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _advance(
        self,
        session: Session,
        text: str,
        correlation_id: UUID,
        note: Optional[str],
    ) -> Reply:
        flow = session.dialogue.flow
        if self.machine.is_cancel(text):
            self.machine.cancel(session)
            await self._log_dialogue(AuditEventType.DIALOGUE_CANCELLED, flow, session, correlation_id)
            return Reply.from_outcome(Outcome.cancelled("Cancelled."), note)

        step = self.machine.advance(session, text)
        if not isinstance(step, Completed):
            return Reply(
                message=f"{note}\n\n{step.prompt}" if note else step.prompt,
                status=OutcomeStatus.CLARIFY,
                options=step.options,
                in_dialogue=True,
            )

        await self._log_dialogue(AuditEventType.DIALOGUE_COMPLETED, flow, session, correlation_id)
        outcome = await self.dispatcher.dispatch(session, step.intent, correlation_id)
        return Reply.from_outcome(outcome, note)

    async def _discard_pending(self, session: Session, correlation_id: UUID) -> Optional[str]:
        if session.pending_action is None:
            return None
        await self.dispatcher.gate.discard(session, correlation_id)
        return PREVIOUS_CANCELLED

    async def _log_dialogue(
        self,
        event_type: AuditEventType,
        flow: Optional[Flow],
        session: Session,
        correlation_id: UUID,
    ) -> None:
        if self._audit is None:
            return
        await self._audit.log_dialogue(
            event_type=event_type,
            flow=flow.value if flow else "unknown",
            session_id=session.session_id,
            correlation_id=correlation_id,
        )


def build_core(
    store: StoreInterface,
    audit_logger: Optional[AuditLogger] = None,
    decoder: Optional[IntentDecoder] = None,
    clock=None,
) -> CommandCore:
    """
    Wire a CommandCore around a store using the application settings.

    Args:
        store: Remote (or in-memory) store
        audit_logger: Optional audit trail
        decoder: Optional intent decoder
        clock: Returns the current aware datetime (injectable for tests)
    """
    app = get_settings().app
    tz = ZoneInfo(app.timezone)
    clock = clock or (lambda: datetime.now(tz))

    engine = OptimisticSyncEngine(
        store,
        audit_logger=audit_logger,
        currency_symbol=app.currency_symbol,
    )
    context = HandlerContext(
        engine=engine,
        resolver=TargetResolver(app.target_match_policy),
        timezone=tz,
        clock=clock,
        currency_symbol=app.currency_symbol,
        recent_limit=app.recent_lookup_limit,
        water_goal=app.daily_water_goal,
    )
    dispatcher = CommandDispatcher(context, audit_logger=audit_logger)
    machine = DialogueMachine(
        accounts=lambda: engine.state.all(Tables.ACCOUNTS),
        timezone=app.timezone,
        clock=clock,
        currency_symbol=app.currency_symbol,
    )
    return CommandCore(
        engine=engine,
        dispatcher=dispatcher,
        machine=machine,
        decoder=decoder,
        audit_logger=audit_logger,
    )


def create_app_components(
    use_storage: bool = True,
    use_decoder: bool = True,
) -> tuple[CommandCore, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run against an in-memory store.
        use_decoder: Whether to initialize the Gemini intent decoder.

    Returns:
        (core, sheets_client)
    """
    sheets_client = None
    store: StoreInterface = InMemoryStore()
    audit_logger = AuditLogger()

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsStore(sheets_client)
            audit_logger = AuditLogger(store)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            store = InMemoryStore()
            audit_logger = AuditLogger()

    decoder = None
    if use_decoder:
        try:
            decoder = IntentDecoder(audit_logger=audit_logger)
        except Exception as e:
            logger.warning("decoder_not_configured", error=str(e))

    return build_core(store, audit_logger=audit_logger, decoder=decoder), sheets_client
