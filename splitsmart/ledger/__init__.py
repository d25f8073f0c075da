"""Ledger working set, balance engine and ledger errors."""

from splitsmart.ledger.balances import (
    PAYMENT_FOR_PREFIX,
    BalanceEngine,
    payment_description,
)
from splitsmart.ledger.errors import (
    ExpenseNotFoundError,
    GroupNotFoundError,
    InvitationError,
    LedgerError,
    LedgerValidationError,
    RecordNotFoundError,
    SettlementNotFoundError,
)
from splitsmart.ledger.state import LedgerState

__all__ = [
    "BalanceEngine",
    "LedgerState",
    "PAYMENT_FOR_PREFIX",
    "payment_description",
    # Errors
    "ExpenseNotFoundError",
    "GroupNotFoundError",
    "InvitationError",
    "LedgerError",
    "LedgerValidationError",
    "RecordNotFoundError",
    "SettlementNotFoundError",
]
