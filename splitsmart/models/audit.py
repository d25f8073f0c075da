"""
Audit Models for the SplitSmart Ledger

Every significant action on the ledger is logged for audit purposes.
This provides:
1. Traceability of who changed which expense or settlement
2. Debugging information when replicas drift apart
3. A record of every reminder that was (or failed to be) delivered

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from splitsmart.models.ledger import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Groups and membership
    GROUP_CREATED = "group_created"
    MEMBER_INVITED = "member_invited"
    INVITATION_ACCEPTED = "invitation_accepted"

    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_SETTLED = "expense_settled"

    # Settlements
    SETTLEMENT_RECORDED = "settlement_recorded"
    SETTLEMENT_CONFIRMED = "settlement_confirmed"
    SETTLEMENT_DELETED = "settlement_deleted"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Synchronisation
    CHANGE_APPLIED = "change_applied"
    CHANGE_IGNORED = "change_ignored"
    BUS_CONNECTED = "bus_connected"
    BUS_DISCONNECTED = "bus_disconnected"
    LEDGER_RELOADED = "ledger_reloaded"

    # Notifications
    NOTIFICATION_SENT = "notification_sent"
    NOTIFICATION_FAILED = "notification_failed"

    # System events
    STORE_UNAVAILABLE = "store_unavailable"
    SYSTEM_ERROR = "system_error"


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
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
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

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'settlement', 'group')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one confirm-and-notify action)"
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
        description="Was this triggered by a direct caller rather than a sync event?"
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
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_created(expense_id, amount, correlation_id)
        event = AuditEventBuilder.change_ignored("expenses", "update", expense_id, reason)
    """

    @staticmethod
    def group_created(
        group_id: str,
        name: str,
        member_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Group created: {name}",
            details={"member_count": member_count},
            is_user_action=True,
        )

    @staticmethod
    def member_invited(
        group_id: str,
        member_id: str,
        email: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_INVITED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Member invited: {email}",
            details={"member_id": member_id, "email": email},
            is_user_action=True,
        )

    @staticmethod
    def invitation_accepted(
        group_id: str,
        member_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVITATION_ACCEPTED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description="Invitation accepted",
            details={"member_id": member_id},
            is_user_action=True,
        )

    @staticmethod
    def expense_changed(
        event_type: AuditEventType,
        expense_id: str,
        group_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense {verb}: {amount}",
            details={"group_id": group_id, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def settlement_changed(
        event_type: AuditEventType,
        settlement_id: str,
        from_member: str,
        to_member: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            entity_type="settlement",
            entity_id=settlement_id,
            correlation_id=correlation_id,
            description=f"Settlement {verb}: {from_member} -> {to_member} {amount}",
            details={
                "from_member": from_member,
                "to_member": to_member,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        record_kind: str,
        record_id: Optional[str],
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=record_kind,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"{record_kind.capitalize()} rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def change_applied(
        collection: str,
        operation: str,
        record_id: str,
        outcome: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHANGE_APPLIED,
            severity=AuditSeverity.DEBUG,
            entity_type=collection,
            entity_id=record_id,
            description=f"Applied {operation} on {collection} as {outcome}",
            details={"operation": operation, "outcome": outcome},
        )

    @staticmethod
    def change_ignored(
        collection: str,
        operation: str,
        record_id: Optional[str],
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHANGE_IGNORED,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            entity_id=record_id,
            description=f"Ignored {operation} on {collection}",
            details={"operation": operation, "reason": reason},
        )

    @staticmethod
    def bus_state_changed(connected: bool, collections: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.BUS_CONNECTED if connected
                else AuditEventType.BUS_DISCONNECTED
            ),
            severity=AuditSeverity.INFO if connected else AuditSeverity.WARNING,
            description=(
                "Subscribed to change bus" if connected
                else "Lost connection to change bus"
            ),
            details={"collections": collections},
        )

    @staticmethod
    def ledger_reloaded(counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RELOADED,
            description="Ledger reloaded from record store",
            details=counts,
        )

    @staticmethod
    def notification_result(
        kind: str,
        recipient: str,
        success: bool,
        attempts: int,
        error: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.NOTIFICATION_SENT if success
                else AuditEventType.NOTIFICATION_FAILED
            ),
            severity=AuditSeverity.INFO if success else AuditSeverity.ERROR,
            entity_type="notification",
            correlation_id=correlation_id,
            description=(
                f"{kind} delivered to {recipient}" if success
                else f"{kind} to {recipient} failed after {attempts} attempts"
            ),
            details={"kind": kind, "recipient": recipient, "attempts": attempts},
            error_message=error,
        )

    @staticmethod
    def store_unavailable(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_UNAVAILABLE,
            severity=AuditSeverity.ERROR,
            description=f"Record store unavailable during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
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
