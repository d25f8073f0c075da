"""
Audit Logger

DESIGN DECISION: Every significant action on the ledger is logged.
This provides:
1. Traceability of expense and settlement changes
2. Visibility into ignored or rejected change events
3. A record of every reminder delivery attempt

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the ledger if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitsmart.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from splitsmart.services.storage import AuditStorageInterface


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


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("splitsmart.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_group_created(
        self,
        group_id: str,
        name: str,
        member_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_created(
            group_id=group_id,
            name=name,
            member_count=member_count,
            correlation_id=correlation_id,
        ))

    async def log_member_invited(
        self,
        group_id: str,
        member_id: str,
        email: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.member_invited(
            group_id=group_id,
            member_id=member_id,
            email=email,
            correlation_id=correlation_id,
        ))

    async def log_invitation_accepted(
        self,
        group_id: str,
        member_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.invitation_accepted(
            group_id=group_id,
            member_id=member_id,
            correlation_id=correlation_id,
        ))

    async def log_expense_changed(
        self,
        event_type: AuditEventType,
        expense_id: str,
        group_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log creation, update, deletion or settling of an expense."""
        await self.log(AuditEventBuilder.expense_changed(
            event_type=event_type,
            expense_id=expense_id,
            group_id=group_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_settlement_changed(
        self,
        event_type: AuditEventType,
        settlement_id: str,
        from_member: str,
        to_member: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_changed(
            event_type=event_type,
            settlement_id=settlement_id,
            from_member=from_member,
            to_member=to_member,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        record_kind: str,
        record_id: Optional[str],
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            record_kind=record_kind,
            record_id=record_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_change_applied(
        self,
        collection: str,
        operation: str,
        record_id: str,
        outcome: str,
    ) -> None:
        await self.log(AuditEventBuilder.change_applied(
            collection=collection,
            operation=operation,
            record_id=record_id,
            outcome=outcome,
        ))

    async def log_change_ignored(
        self,
        collection: str,
        operation: str,
        record_id: Optional[str],
        reason: str,
    ) -> None:
        """Log a change event that left the ledger untouched."""
        await self.log(AuditEventBuilder.change_ignored(
            collection=collection,
            operation=operation,
            record_id=record_id,
            reason=reason,
        ))

    async def log_bus_state(self, connected: bool, collections: list[str]) -> None:
        await self.log(AuditEventBuilder.bus_state_changed(connected, collections))

    async def log_ledger_reloaded(self, counts: dict[str, int]) -> None:
        await self.log(AuditEventBuilder.ledger_reloaded(counts))

    async def log_notification(
        self,
        kind: str,
        recipient: str,
        success: bool,
        attempts: int,
        error: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the final outcome of one notification delivery."""
        await self.log(AuditEventBuilder.notification_result(
            kind=kind,
            recipient=recipient,
            success=success,
            attempts=attempts,
            error=error,
            correlation_id=correlation_id,
        ))

    async def log_store_unavailable(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.store_unavailable(
            operation=operation,
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


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a caller action (e.g., confirming a settlement).
    Pass it through all subsequent operations.
    """
    return uuid4()
