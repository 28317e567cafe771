"""
Audit Logger

DESIGN DECISION: Every significant step of the command core is logged.
This provides:
1. Complete traceability of what each conversation changed
2. Debugging capability when a mutation is rolled back
3. A history the owner can read in the audit_log table

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from lifesync.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from lifesync.models.intent import OutcomeStatus
from lifesync.models.records import Tables
from lifesync.services.storage import StoreInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


# Conversation steps with no stored effect, kept out of the audit_log table
LOCAL_ONLY_EVENTS = frozenset({
    AuditEventType.CLARIFICATION_ISSUED,
    AuditEventType.DIALOGUE_STARTED,
    AuditEventType.DIALOGUE_COMPLETED,
    AuditEventType.DIALOGUE_CANCELLED,
    AuditEventType.CONFIRMATION_ACCEPTED,
    AuditEventType.CONFIRMATION_STALE,
    AuditEventType.CONFIRMATION_DISCARDED,
})


def is_persisted(event: AuditEvent) -> bool:
    """Whether an event belongs in the audit_log table."""
    if event.event_type in LOCAL_ONLY_EVENTS:
        return False
    if event.event_type == AuditEventType.INTENT_DISPATCHED:
        return (event.details or {}).get("status") != OutcomeStatus.CLARIFY.value
    return True


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_log table of the store (for persistence and user visibility),
       except for the conversation steps in LOCAL_ONLY_EVENTS
    """

    def __init__(
        self,
        store: Optional[StoreInterface] = None,
        history_size: int = 500,
    ):
        """
        Initialize audit logger.

        Args:
            store: Storage backend for persistence.
                   If None, only logs locally.
            history_size: How many recent events to keep in memory.
        """
        self._store = store
        self._logger = structlog.get_logger("lifesync.audit")
        self.events: deque[AuditEvent] = deque(maxlen=history_size)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available and the event
        is not local-only (see is_persisted).

        Returns True if storage write succeeded (or nothing was written).
        """
        self.events.append(event)
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._store and is_persisted(event):
            try:
                await self._store.insert(Tables.AUDIT_LOG, event.to_record())
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_intent_dispatched(
        self,
        intent_kind: str,
        status: str,
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.intent_dispatched(
            intent_kind=intent_kind,
            status=status,
            session_id=session_id,
            correlation_id=correlation_id,
        ))

    async def log_clarification(
        self,
        intent_kind: str,
        reason: str,
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.clarification_issued(
            intent_kind=intent_kind,
            reason=reason,
            session_id=session_id,
            correlation_id=correlation_id,
        ))

    async def log_dialogue(
        self,
        event_type: AuditEventType,
        flow: str,
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a dialogue start, completion or cancellation."""
        await self.log(AuditEventBuilder.dialogue_event(
            event_type=event_type,
            flow=flow,
            session_id=session_id,
            correlation_id=correlation_id,
        ))

    async def log_confirmation(
        self,
        event_type: AuditEventType,
        mutation_kind: Optional[str],
        target_id: Optional[str],
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a confirmation proposal or its resolution."""
        await self.log(AuditEventBuilder.confirmation_event(
            event_type=event_type,
            mutation_kind=mutation_kind,
            target_id=target_id,
            session_id=session_id,
            correlation_id=correlation_id,
        ))

    async def log_mutation_applied(
        self,
        description: str,
        tables: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.mutation_applied(
            description=description,
            tables=tables,
            correlation_id=correlation_id,
        ))

    async def log_mutation_rolled_back(
        self,
        description: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.mutation_rolled_back(
            description=description,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def event_types(self) -> list[AuditEventType]:
        """Types of the events logged so far, oldest first."""
        return [e.event_type for e in self.events]


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of handling one inbound user message.
    Pass it through all subsequent operations.
    """
    return uuid4()
