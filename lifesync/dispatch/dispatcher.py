"""
Command Dispatcher

Maps a completed Intent to its handler and turns the result, or the error,
into an Outcome.

FLOW:
1. Look up the handler for intent.kind (static table)
2. handler.validate(intent): missing fields -> Clarify
3. Non-destructive: handler.handle() -> Executed
   Destructive: handler.propose() -> Confirmation Gate -> PendingConfirmation
4. CommandError anywhere -> Clarify / Failed, never an exception

DESIGN DECISION: The gate wrapping is structural. A handler that declares
destructive = True cannot be executed by dispatch(); its commit() is only
reachable from an accepted PendingAction.
"""

from dataclasses import replace
from typing import Iterable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from lifesync.audit import AuditLogger
from lifesync.confirmation import ConfirmationGate
from lifesync.dialogue import Session
from lifesync.dispatch.base import HandlerContext, IntentHandler
from lifesync.dispatch.finance import FINANCE_HANDLERS
from lifesync.dispatch.records import RECORD_HANDLERS
from lifesync.errors import (
    AmbiguousTargetError,
    CommandError,
    CommandValidationError,
    PersistenceError,
    TargetNotFoundError,
)
from lifesync.models.intent import (
    Intent,
    IntentKind,
    MutationKind,
    Outcome,
    PendingAction,
)


logger = structlog.get_logger("lifesync.dispatch")


def default_handlers() -> list[IntentHandler]:
    """One handler per IntentKind."""
    return [*FINANCE_HANDLERS, *RECORD_HANDLERS]


def invalid_record_error(error: ValidationError) -> CommandValidationError:
    """A record that failed model validation, as a clarification."""
    first = error.errors()[0] if error.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())) or "value"
    reason = first.get("msg", "invalid value")
    return CommandValidationError(f"That {field} doesn't look right: {reason}.")


def outcome_for_error(error: CommandError) -> Outcome:
    """The user-facing treatment of a command error."""
    if isinstance(error, AmbiguousTargetError):
        return Outcome.clarify(error.message, options=error.candidates)
    if isinstance(error, (CommandValidationError, TargetNotFoundError)):
        return Outcome.clarify(error.message)
    if isinstance(error, PersistenceError):
        return Outcome.failed(error.message)
    return Outcome.clarify(error.message)


class CommandDispatcher:
    """
    Routes intents to handlers.

    Args:
        context: Shared handler context (engine, resolver, clock, settings)
        handlers: Handler objects; defaults to default_handlers()
        audit_logger: Optional audit trail
    """

    def __init__(
        self,
        context: HandlerContext,
        handlers: Optional[Iterable[IntentHandler]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.context = context
        self._audit = audit_logger
        self._handlers: dict[IntentKind, IntentHandler] = {}
        self._committers: dict[MutationKind, IntentHandler] = {}
        for handler in handlers if handlers is not None else default_handlers():
            self.register(handler)
        self.gate = ConfirmationGate(self._commit, audit_logger=audit_logger)

    def register(self, handler: IntentHandler) -> None:
        self._handlers[handler.kind] = handler
        if handler.destructive:
            if handler.mutation_kind is None:
                raise ValueError(f"Destructive handler {handler.kind.value} needs a mutation_kind")
            self._committers[handler.mutation_kind] = handler

    def handler_for(self, kind: IntentKind) -> Optional[IntentHandler]:
        return self._handlers.get(kind)

    def is_destructive(self, kind: IntentKind) -> bool:
        handler = self._handlers.get(kind)
        return bool(handler and handler.destructive)

    async def dispatch(
        self,
        session: Session,
        intent: Intent,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome:
        """
        Execute or propose one intent.

        Returns:
            Executed, Clarify, PendingConfirmation or Failed
        """
        handler = self._handlers.get(intent.kind) or self._handlers.get(IntentKind.UNKNOWN)
        if handler is None:
            return Outcome.clarify("I'm not sure how to handle that.")

        ctx = replace(self.context, correlation_id=correlation_id)
        try:
            handler.validate(intent)
            if handler.destructive:
                action = handler.propose(ctx, intent)
                await self.gate.propose(session, action, correlation_id)
                outcome = Outcome.pending(action.description, action)
            else:
                outcome = Outcome.executed(await handler.handle(ctx, intent))
        except CommandError as e:
            outcome = outcome_for_error(e)
            await self._log_failure(session, intent.kind, e, correlation_id)
        except ValidationError as e:
            error = invalid_record_error(e)
            outcome = outcome_for_error(error)
            await self._log_failure(session, intent.kind, error, correlation_id)

        logger.info(
            "intent_dispatched",
            session_id=session.session_id,
            intent=intent.kind.value,
            status=outcome.status.value,
        )
        if self._audit:
            await self._audit.log_intent_dispatched(
                intent_kind=intent.kind.value,
                status=outcome.status.value,
                session_id=session.session_id,
                correlation_id=correlation_id,
            )
        return outcome

    async def resolve(
        self,
        session: Session,
        accepted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome:
        """Answer the session's pending action through the gate."""
        return await self.gate.resolve(session, accepted, correlation_id)

    async def _commit(
        self,
        session: Session,
        action: PendingAction,
        correlation_id: Optional[UUID],
    ) -> Outcome:
        handler = self._committers.get(action.kind)
        if handler is None:
            return Outcome.failed(f"I don't know how to apply {action.kind.value}.")
        ctx = replace(self.context, correlation_id=correlation_id)
        try:
            return Outcome.executed(await handler.commit(ctx, action))
        except CommandError as e:
            await self._log_failure(session, handler.kind, e, correlation_id)
            return outcome_for_error(e)
        except ValidationError as e:
            error = invalid_record_error(e)
            await self._log_failure(session, handler.kind, error, correlation_id)
            return outcome_for_error(error)

    async def _log_failure(
        self,
        session: Session,
        kind: IntentKind,
        error: CommandError,
        correlation_id: Optional[UUID],
    ) -> None:
        if isinstance(error, PersistenceError):
            logger.error("command_failed", intent=kind.value, error=error.message)
            if self._audit:
                await self._audit.log_error(
                    error_type="persistence",
                    error_message=str(error.cause) if error.cause else error.message,
                    details={"intent_kind": kind.value, "session_id": session.session_id},
                    correlation_id=correlation_id,
                )
            return
        logger.info("clarification_issued", intent=kind.value, reason=error.message)
        if self._audit:
            await self._audit.log_clarification(
                intent_kind=kind.value,
                reason=error.message,
                session_id=session.session_id,
                correlation_id=correlation_id,
            )
