"""
Ledger Working Set

The in-memory mirror of the record store: users, groups, expenses and
settlements keyed by id.

DESIGN DECISION: The working set is an explicit object, not module state.
One instance is owned by the service and handed to the balance engine,
the change coordinator and the reminder workflow, which all run on the
same event loop. No locks are needed as long as that holds.

Every expense and settlement in the working set satisfies the ledger
invariants (positive amount, non-empty split, parties set). Writes that
would break them raise LedgerValidationError before anything changes.
"""

from typing import Any, Iterable, Optional, TypeVar

from splitsmart.ledger.errors import LedgerValidationError
from splitsmart.models.ledger import (
    Expense,
    Group,
    LedgerRecord,
    Settlement,
    User,
    ValidationIssue,
    ValidationResult,
)
from splitsmart.validation import LedgerValidator


R = TypeVar("R", bound=LedgerRecord)


def _merged(record: R, fields: dict[str, Any]) -> R:
    """Copy of a frozen record with `fields` applied; the id never changes."""
    data = {**record.model_dump(), **fields, "id": record.id}
    return type(record).model_validate(data)


def _require_id(kind: str, record: LedgerRecord) -> None:
    if not record.id:
        raise LedgerValidationError(ValidationResult(
            record_kind=kind,
            issues=[ValidationIssue(
                field="id",
                issue_type="missing",
                message=f"{kind.capitalize()} has no id",
            )],
        ))


class LedgerState:
    """
    Insertion-ordered working set of ledger records.

    Upserts are last-write-wins: an existing id is replaced in place and
    keeps its position, a new id is appended.
    """

    def __init__(self, validator: Optional[LedgerValidator] = None):
        self._validator = validator or LedgerValidator()
        self._users: dict[str, User] = {}
        self._groups: dict[str, Group] = {}
        self._expenses: dict[str, Expense] = {}
        self._settlements: dict[str, Settlement] = {}

    # =========================================================================
    # READ
    # =========================================================================

    @property
    def users(self) -> list[User]:
        return list(self._users.values())

    @property
    def groups(self) -> list[Group]:
        return list(self._groups.values())

    @property
    def expenses(self) -> list[Expense]:
        return list(self._expenses.values())

    @property
    def settlements(self) -> list[Settlement]:
        return list(self._settlements.values())

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_group(self, group_id: str) -> Optional[Group]:
        return self._groups.get(group_id)

    def get_expense(self, expense_id: str) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    def get_settlement(self, settlement_id: str) -> Optional[Settlement]:
        return self._settlements.get(settlement_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        for user in self._users.values():
            if user.email.lower() == wanted:
                return user
        return None

    def expenses_of(self, group_id: str) -> list[Expense]:
        """Expenses of one group in insertion order."""
        return [e for e in self._expenses.values() if e.group_id == group_id]

    def settlements_of(self, group_id: str) -> list[Settlement]:
        """Settlements of one group in insertion order."""
        return [s for s in self._settlements.values() if s.group_id == group_id]

    def counts(self) -> dict[str, int]:
        return {
            "users": len(self._users),
            "groups": len(self._groups),
            "expenses": len(self._expenses),
            "settlements": len(self._settlements),
        }

    # =========================================================================
    # WRITE
    # =========================================================================

    def upsert_user(self, user: User) -> User:
        _require_id("user", user)
        self._users[user.id] = user
        return user

    def upsert_group(self, group: Group) -> Group:
        _require_id("group", group)
        self._groups[group.id] = group
        return group

    def upsert_expense(self, expense: Expense) -> Expense:
        """
        Insert or replace an expense.

        Raises:
            LedgerValidationError: amount not positive, empty split,
                missing payer or id
        """
        result = self._validator.check_expense(expense)
        if not result.is_valid:
            raise LedgerValidationError(result)
        self._expenses[expense.id] = expense
        return expense

    def upsert_settlement(self, settlement: Settlement) -> Settlement:
        """
        Insert or replace a settlement.

        Raises:
            LedgerValidationError: amount not positive, parties missing
                or identical, missing id
        """
        result = self._validator.check_settlement(settlement)
        if not result.is_valid:
            raise LedgerValidationError(result)
        self._settlements[settlement.id] = settlement
        return settlement

    def remove_user(self, user_id: str) -> Optional[User]:
        return self._users.pop(user_id, None)

    def remove_group(self, group_id: str) -> Optional[Group]:
        return self._groups.pop(group_id, None)

    def remove_expense(self, expense_id: str) -> Optional[Expense]:
        return self._expenses.pop(expense_id, None)

    def remove_settlement(self, settlement_id: str) -> Optional[Settlement]:
        return self._settlements.pop(settlement_id, None)

    # Partial merges return None for unknown ids and leave the set untouched.

    def merge_user(self, user_id: str, fields: dict[str, Any]) -> Optional[User]:
        current = self._users.get(user_id)
        if current is None:
            return None
        return self.upsert_user(_merged(current, fields))

    def merge_group(self, group_id: str, fields: dict[str, Any]) -> Optional[Group]:
        current = self._groups.get(group_id)
        if current is None:
            return None
        return self.upsert_group(_merged(current, fields))

    def merge_expense(self, expense_id: str, fields: dict[str, Any]) -> Optional[Expense]:
        current = self._expenses.get(expense_id)
        if current is None:
            return None
        return self.upsert_expense(_merged(current, fields))

    def merge_settlement(
        self,
        settlement_id: str,
        fields: dict[str, Any],
    ) -> Optional[Settlement]:
        current = self._settlements.get(settlement_id)
        if current is None:
            return None
        return self.upsert_settlement(_merged(current, fields))

    def clear(self) -> None:
        self._users.clear()
        self._groups.clear()
        self._expenses.clear()
        self._settlements.clear()

    def replace_all(
        self,
        users: Iterable[User] = (),
        groups: Iterable[Group] = (),
        expenses: Iterable[Expense] = (),
        settlements: Iterable[Settlement] = (),
    ) -> list[ValidationResult]:
        """
        Swap the whole working set for a fresh load.

        Records that fail validation are left out; their results are
        returned so the caller can report them.
        """
        rejected: list[ValidationResult] = []
        fresh = LedgerState(self._validator)
        loads = (
            (users, fresh.upsert_user),
            (groups, fresh.upsert_group),
            (expenses, fresh.upsert_expense),
            (settlements, fresh.upsert_settlement),
        )
        for records, upsert in loads:
            for record in records:
                try:
                    upsert(record)
                except LedgerValidationError as e:
                    rejected.append(e.result)
        self._users = fresh._users
        self._groups = fresh._groups
        self._expenses = fresh._expenses
        self._settlements = fresh._settlements
        return rejected
