"""
Audit Models for LifeSync

Every significant step of the command core is logged for audit purposes.
This provides:
1. A trail of what each conversation asked for and what was changed
2. Debugging information when persistence fails and a change is rolled back
3. The ability to tell which front-end issued a mutation

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each stage of the core (dialogue, dispatch, confirmation, sync) has its
    own event types.
    """
    # Dispatch
    INTENT_DISPATCHED = "intent_dispatched"
    CLARIFICATION_ISSUED = "clarification_issued"

    # Dialogue
    DIALOGUE_STARTED = "dialogue_started"
    DIALOGUE_COMPLETED = "dialogue_completed"
    DIALOGUE_CANCELLED = "dialogue_cancelled"

    # Confirmation
    CONFIRMATION_PROPOSED = "confirmation_proposed"
    CONFIRMATION_ACCEPTED = "confirmation_accepted"
    CONFIRMATION_REJECTED = "confirmation_rejected"
    CONFIRMATION_STALE = "confirmation_stale"
    CONFIRMATION_DISCARDED = "confirmation_discarded"

    # Sync
    MUTATION_APPLIED = "mutation_applied"
    MUTATION_ROLLED_BACK = "mutation_rolled_back"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what is this about?
    session_id: Optional[str] = Field(
        default=None,
        description="Conversation the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Table of the record involved (e.g., 'accounts')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )

    # Correlation - one id per inbound user message
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events caused by the same user message"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "session_id": self.session_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_record(self) -> dict:
        """
        Convert to a flat record for the audit_log table.

        Details are JSON-encoded so every column stays a scalar.
        """
        record = self.to_log_dict()
        record["id"] = record.pop("event_id")
        record["details"] = json.dumps(self.details, default=str) if self.details else ""
        return record


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.intent_dispatched("ADD_EXPENSE", "executed", ...)
        event = AuditEventBuilder.mutation_rolled_back("log expense", "timeout", ...)
    """

    @staticmethod
    def intent_dispatched(
        intent_kind: str,
        status: str,
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTENT_DISPATCHED,
            session_id=session_id,
            correlation_id=correlation_id,
            description=f"Intent {intent_kind} dispatched: {status}",
            details={
                "intent_kind": intent_kind,
                "status": status,
            },
            is_user_action=True,
        )

    @staticmethod
    def clarification_issued(
        intent_kind: str,
        reason: str,
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLARIFICATION_ISSUED,
            severity=AuditSeverity.WARNING,
            session_id=session_id,
            correlation_id=correlation_id,
            description=f"Clarification needed for {intent_kind}",
            details={
                "intent_kind": intent_kind,
                "reason": reason,
            },
        )

    @staticmethod
    def dialogue_event(
        event_type: AuditEventType,
        flow: str,
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = event_type.value.replace("dialogue_", "")
        return AuditEvent(
            event_type=event_type,
            session_id=session_id,
            correlation_id=correlation_id,
            description=f"Dialogue '{flow}' {verb}",
            details={"flow": flow},
            is_user_action=True,
        )

    @staticmethod
    def confirmation_event(
        event_type: AuditEventType,
        mutation_kind: Optional[str],
        target_id: Optional[str],
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = event_type.value.replace("confirmation_", "")
        severity = (
            AuditSeverity.WARNING
            if event_type == AuditEventType.CONFIRMATION_STALE
            else AuditSeverity.INFO
        )
        return AuditEvent(
            event_type=event_type,
            severity=severity,
            session_id=session_id,
            correlation_id=correlation_id,
            entity_id=target_id,
            description=f"Confirmation {verb}: {mutation_kind or 'none pending'}",
            details={"mutation_kind": mutation_kind},
            is_user_action=True,
        )

    @staticmethod
    def mutation_applied(
        description: str,
        tables: list[str],
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_APPLIED,
            session_id=session_id,
            correlation_id=correlation_id,
            description=f"Mutation persisted: {description}",
            details={"tables": tables},
        )

    @staticmethod
    def mutation_rolled_back(
        description: str,
        error_message: str,
        session_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            session_id=session_id,
            correlation_id=correlation_id,
            description=f"Mutation rolled back: {description}",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
