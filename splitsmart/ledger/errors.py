"""Exceptions raised by ledger operations."""

from splitsmart.models.ledger import ValidationResult


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class LedgerValidationError(LedgerError):
    """A record failed validation; nothing was changed."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__(f"Invalid {result.record_kind}: {result.summary()}")


class RecordNotFoundError(LedgerError):
    """Referenced record is not in the ledger."""

    kind = "record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"{self.kind.capitalize()} not found: {record_id}")


class ExpenseNotFoundError(RecordNotFoundError):
    kind = "expense"


class SettlementNotFoundError(RecordNotFoundError):
    kind = "settlement"


class GroupNotFoundError(RecordNotFoundError):
    kind = "group"


class InvitationError(LedgerError):
    """No pending invitation for this member in this group."""
    pass
