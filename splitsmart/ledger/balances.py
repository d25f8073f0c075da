"""
Balance Engine

Turns the expenses and settlements of a group into net balances:
positive means the member is owed money, negative means they owe.

CRITICAL RULES:
1. Balances are never stored or patched; every call refolds the
   current working set from scratch.
2. Only CONFIRMED settlements move balances.
3. The balances of a group always sum to exactly zero.

NUMERIC POLICY: Amounts are Decimal, rounded to the currency quantum
(0.01 by default) with ROUND_HALF_UP. An expense is split by whole
quantum units: everyone gets `units // n` and the first `units % n`
participants in split order get one more unit. 100.00 between three
members is 33.34, 33.33, 33.33, so shares always add back up to the
amount.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from splitsmart.config import get_settings
from splitsmart.ledger.state import LedgerState
from splitsmart.models.ledger import (
    Expense,
    OwedAmount,
    PaymentStatus,
    Settlement,
)


# Description prefix used by settlements that pay for one expense
PAYMENT_FOR_PREFIX = "Payment for: "


def payment_description(expense: Expense) -> str:
    return f"{PAYMENT_FOR_PREFIX}{expense.description}"


class BalanceEngine:
    """
    Derives balances and per-expense views from a LedgerState.

    Usage:
        engine = BalanceEngine(state)
        engine.calculate_balances("group-1")  # {"A": Decimal("60.00"), ...}
    """

    def __init__(self, state: LedgerState, quantum: Optional[Decimal] = None):
        self._state = state
        self._quantum = quantum if quantum is not None else get_settings().ledger.currency_quantum

    @property
    def quantum(self) -> Decimal:
        return self._quantum

    def quantize(self, amount: Decimal) -> Decimal:
        return amount.quantize(self._quantum, rounding=ROUND_HALF_UP)

    def split_expense(self, expense: Expense) -> dict[str, Decimal]:
        """Share of each split member, in split order."""
        members = expense.split_between
        if not members:
            return {}
        units = int(self.quantize(expense.amount) / self._quantum)
        base, extra = divmod(units, len(members))
        return {
            member_id: (base + (1 if idx < extra else 0)) * self._quantum
            for idx, member_id in enumerate(members)
        }

    # =========================================================================
    # BALANCES
    # =========================================================================

    def calculate_balances(self, group_id: str) -> dict[str, Decimal]:
        """
        Net balance per member of a group.

        Members without any expense or confirmed settlement are absent;
        treat a missing key as zero.
        """
        balances: dict[str, Decimal] = {}

        def add(member_id: str, delta: Decimal) -> None:
            balances[member_id] = balances.get(member_id, Decimal("0")) + delta

        for expense in self._state.expenses_of(group_id):
            add(expense.paid_by, self.quantize(expense.amount))
            for member_id, share in self.split_expense(expense).items():
                add(member_id, -share)

        for settlement in self._state.settlements_of(group_id):
            if not settlement.confirmed:
                continue
            amount = self.quantize(settlement.amount)
            # The payer's debt shrinks, the recipient has been paid back:
            # {A: 60, B: -30, C: -30} becomes {A: 30, B: 0, C: -30} after B pays A 30
            add(settlement.from_member, amount)
            add(settlement.to_member, -amount)

        return balances

    def total_spent(self, group_id: str) -> Decimal:
        return sum(
            (self.quantize(e.amount) for e in self._state.expenses_of(group_id)),
            Decimal("0"),
        )

    # =========================================================================
    # PER-EXPENSE QUERIES
    # =========================================================================

    def shares_for_expense(self, expense_id: str) -> dict[str, Decimal]:
        expense = self._state.get_expense(expense_id)
        return self.split_expense(expense) if expense else {}

    def expenses_where_member_owes(
        self,
        member_id: str,
        group_id: Optional[str] = None,
    ) -> list[Expense]:
        """Unsettled expenses paid by someone else that the member shares, newest first."""
        expenses = (
            self._state.expenses_of(group_id) if group_id is not None
            else self._state.expenses
        )
        owing = [
            e for e in expenses
            if member_id in e.split_between
            and e.paid_by != member_id
            and not e.settled
        ]
        return sorted(owing, key=lambda e: e.date, reverse=True)

    def amount_owed_for_expense(self, expense_id: str, member_id: str) -> Decimal:
        """The member's share of an expense, 0 when they are not in the split."""
        return self.shares_for_expense(expense_id).get(member_id, Decimal("0"))

    def owed_amounts(self, member_id: str) -> list[OwedAmount]:
        """What the member owes, per expense, and to whom."""
        return [
            OwedAmount(
                group_id=expense.group_id,
                expense_id=expense.id,
                owed_to=expense.paid_by,
                amount=self.split_expense(expense)[member_id],
            )
            for expense in self.expenses_where_member_owes(member_id)
        ]

    def settlements_for_expense(self, expense_id: str) -> list[Settlement]:
        """
        Settlements that pay for one expense.

        Linked by `expense_id`; settlements written without it fall back
        to matching the "Payment for: <description>" text.
        """
        expense = self._state.get_expense(expense_id)
        if expense is None:
            return []
        legacy_text = payment_description(expense)
        return [
            s for s in self._state.settlements_of(expense.group_id)
            if s.expense_id == expense_id
            or (s.expense_id is None and legacy_text in s.description)
        ]

    def payment_status_for_expense(self, expense_id: str, member_id: str) -> PaymentStatus:
        expense = self._state.get_expense(expense_id)
        if (
            expense is None
            or member_id == expense.paid_by
            or member_id not in expense.split_between
        ):
            return PaymentStatus.NOT_APPLICABLE

        payments = [
            s for s in self.settlements_for_expense(expense_id)
            if s.from_member == member_id and s.to_member == expense.paid_by
        ]
        if any(s.confirmed for s in payments):
            return PaymentStatus.PAID
        if payments:
            return PaymentStatus.PENDING
        return PaymentStatus.UNPAID
