"""
Confirmation Gate

Turns "execute now" into "propose, then execute only on an explicit yes"
for every destructive command.

FLOW:
1. A destructive handler computes a PendingAction (nothing changes)
2. propose() stores it on the Session, replacing any earlier one
3. The next yes/no calls resolve():
   - no  -> the action is dropped, nothing changes
   - yes -> the action is REMOVED FIRST, then executed

DESIGN DECISION: Removing before executing means a repeated "yes" (double
tap, retried webhook) finds nothing to confirm. A mutation can therefore
run at most once per proposal, even if executing it fails.
"""

from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from lifesync.audit import AuditLogger
from lifesync.dialogue import Session
from lifesync.errors import StaleConfirmationError
from lifesync.models.audit import AuditEventType
from lifesync.models.intent import Outcome, PendingAction


logger = structlog.get_logger("lifesync.confirmation")

NOTHING_TO_CONFIRM = "There's nothing waiting for confirmation."

Executor = Callable[[Session, PendingAction, Optional[UUID]], Awaitable[Outcome]]


class ConfirmationGate:
    """
    Holds at most one PendingAction per session.

    Args:
        executor: Runs an accepted action and returns its Outcome
        audit_logger: Optional audit trail
    """

    def __init__(self, executor: Executor, audit_logger: Optional[AuditLogger] = None):
        self._execute = executor
        self._audit = audit_logger

    async def propose(
        self,
        session: Session,
        action: PendingAction,
        correlation_id: Optional[UUID] = None,
    ) -> PendingAction:
        if session.pending_action is not None:
            logger.info(
                "pending_action_replaced",
                session_id=session.session_id,
                previous=session.pending_action.kind.value,
            )
        session.pending_action = action
        await self._log(AuditEventType.CONFIRMATION_PROPOSED, session, action, correlation_id)
        return action

    async def resolve(
        self,
        session: Session,
        accepted: bool,
        correlation_id: Optional[UUID] = None,
    ) -> Outcome:
        """
        Answer the pending action.

        Never raises for a missing action; a stale yes/no is a no-op.
        """
        try:
            action = self._take(session)
        except StaleConfirmationError as e:
            await self._log(AuditEventType.CONFIRMATION_STALE, session, None, correlation_id)
            return Outcome.clarify(e.message)

        if not accepted:
            await self._log(AuditEventType.CONFIRMATION_REJECTED, session, action, correlation_id)
            return Outcome.cancelled("Cancelled. Nothing was changed.")

        await self._log(AuditEventType.CONFIRMATION_ACCEPTED, session, action, correlation_id)
        return await self._execute(session, action, correlation_id)

    async def discard(
        self,
        session: Session,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[PendingAction]:
        """Drop the pending action without answering it."""
        action = session.pending_action
        session.pending_action = None
        if action is not None:
            await self._log(AuditEventType.CONFIRMATION_DISCARDED, session, action, correlation_id)
        return action

    @staticmethod
    def _take(session: Session) -> PendingAction:
        action = session.pending_action
        if action is None:
            raise StaleConfirmationError(NOTHING_TO_CONFIRM)
        session.pending_action = None
        return action

    async def _log(
        self,
        event_type: AuditEventType,
        session: Session,
        action: Optional[PendingAction],
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit is None:
            return
        await self._audit.log_confirmation(
            event_type=event_type,
            mutation_kind=action.kind.value if action else None,
            target_id=action.target_id if action else None,
            session_id=session.session_id,
            correlation_id=correlation_id,
        )
