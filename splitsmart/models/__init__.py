"""
Data Models Package

All records flowing through the ledger conform to these schemas.
"""

from splitsmart.models.ledger import (
    Debtor,
    Expense,
    Group,
    LedgerRecord,
    Member,
    MemberStatus,
    OwedAmount,
    PaymentStatus,
    Settlement,
    User,
    ValidationIssue,
    ValidationResult,
    utc_now,
)
from splitsmart.models.changes import (
    ChangeEvent,
    ChangeOperation,
    CollectionType,
    ConnectionState,
    ReconcileOutcome,
)
from splitsmart.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Debtor",
    "Expense",
    "Group",
    "LedgerRecord",
    "Member",
    "MemberStatus",
    "OwedAmount",
    "PaymentStatus",
    "Settlement",
    "User",
    "ValidationIssue",
    "ValidationResult",
    "utc_now",
    # Change events
    "ChangeEvent",
    "ChangeOperation",
    "CollectionType",
    "ConnectionState",
    "ReconcileOutcome",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
