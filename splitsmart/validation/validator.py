"""
Two-Stage Record Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - LEDGER INVARIANTS:
- Record has an id (when it is about to enter the working set)
- Amount is positive
- Expense split is non-empty, settlement parties are set and distinct
- These hold for EVERY record in the ledger, whatever its origin

STAGE 2 - CALLER CHECKS:
- Description is present
- Payer, split members and settlement parties belong to the group
- Dates are not in the future
- Run for records created through the service, where the caller can
  still fix the input

Records arriving from other clients through the change bus only go
through stage 1: membership is the writer's responsibility.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and the caller decides.
"""

import re
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Union

from splitsmart.models.ledger import (
    Expense,
    Group,
    Settlement,
    ValidationIssue,
    ValidationResult,
    utc_now,
)


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Clock skew allowed between clients before a date counts as future
FUTURE_DATE_TOLERANCE = timedelta(days=1)

# Largest amount a single expense or settlement may carry
MAX_AMOUNT = Decimal("1000000000000")


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


class LedgerValidator:
    """
    Validates expenses, settlements and groups.

    Usage:
        result = LedgerValidator().validate_expense(expense, group)
        if not result.is_valid:
            raise LedgerValidationError(result)
    """

    # =========================================================================
    # STAGE 1 - ledger invariants
    # =========================================================================

    def expense_invariants(
        self,
        expense: Expense,
        require_id: bool = True,
    ) -> list[ValidationIssue]:
        issues = []
        if require_id and not expense.id:
            issues.append(ValidationIssue(
                field="id",
                issue_type="missing",
                message="Expense has no id",
            ))
        if expense.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount must be greater than zero, got {expense.amount}",
            ))
        elif expense.amount > MAX_AMOUNT:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount must not exceed {MAX_AMOUNT}, got {expense.amount}",
            ))
        if not expense.split_between:
            issues.append(ValidationIssue(
                field="split_between",
                issue_type="missing",
                message="Expense must be split between at least one member",
            ))
        if not expense.paid_by:
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="missing",
                message="Expense has no payer",
            ))
        return issues

    def settlement_invariants(
        self,
        settlement: Settlement,
        require_id: bool = True,
    ) -> list[ValidationIssue]:
        issues = []
        if require_id and not settlement.id:
            issues.append(ValidationIssue(
                field="id",
                issue_type="missing",
                message="Settlement has no id",
            ))
        if settlement.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount must be greater than zero, got {settlement.amount}",
            ))
        elif settlement.amount > MAX_AMOUNT:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount must not exceed {MAX_AMOUNT}, got {settlement.amount}",
            ))
        for field in ("from_member", "to_member"):
            if not getattr(settlement, field):
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="missing",
                    message=f"Settlement has no {field.replace('_', ' ')}",
                ))
        if settlement.from_member and settlement.from_member == settlement.to_member:
            issues.append(ValidationIssue(
                field="to_member",
                issue_type="inconsistent",
                message="A member cannot settle with themselves",
            ))
        return issues

    def check_expense(self, expense: Expense) -> ValidationResult:
        """Stage 1 only. Used before an expense enters the working set."""
        return ValidationResult(
            record_kind="expense",
            record_id=expense.id or None,
            issues=self.expense_invariants(expense),
        )

    def check_settlement(self, settlement: Settlement) -> ValidationResult:
        """Stage 1 only. Used before a settlement enters the working set."""
        return ValidationResult(
            record_kind="settlement",
            record_id=settlement.id or None,
            issues=self.settlement_invariants(settlement),
        )

    # =========================================================================
    # STAGE 2 - caller checks
    # =========================================================================

    def _membership_issues(
        self,
        group: Group,
        fields: dict[str, list[str]],
    ) -> list[ValidationIssue]:
        issues = []
        member_ids = set(group.member_ids)
        for field, ids in fields.items():
            unknown = [i for i in ids if i and i not in member_ids]
            if unknown:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="not_a_member",
                    message=f"Not members of group {group.id}: {', '.join(unknown)}",
                ))
        return issues

    def _date_issues(self, record: Union[Expense, Settlement]) -> list[ValidationIssue]:
        if record.date > utc_now() + FUTURE_DATE_TOLERANCE:
            return [ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({record.date.date()}) is in the future",
                severity="warning",
            )]
        return []

    def validate_expense(
        self,
        expense: Expense,
        group: Optional[Group] = None,
        require_id: bool = False,
    ) -> ValidationResult:
        """
        Full validation of a caller-supplied expense.

        Args:
            expense: The expense to check
            group: The expense's group; membership is checked when given
            require_id: Whether the id must already be assigned
        """
        issues = self.expense_invariants(expense, require_id=require_id)
        if not expense.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
            ))
        if group is not None:
            issues.extend(self._membership_issues(group, {
                "paid_by": [expense.paid_by],
                "split_between": list(expense.split_between),
            }))
        issues.extend(self._date_issues(expense))
        return ValidationResult(
            record_kind="expense",
            record_id=expense.id or None,
            issues=issues,
        )

    def validate_settlement(
        self,
        settlement: Settlement,
        group: Optional[Group] = None,
        require_id: bool = False,
    ) -> ValidationResult:
        """Full validation of a caller-supplied settlement."""
        issues = self.settlement_invariants(settlement, require_id=require_id)
        if group is not None:
            issues.extend(self._membership_issues(group, {
                "from_member": [settlement.from_member],
                "to_member": [settlement.to_member],
            }))
        issues.extend(self._date_issues(settlement))
        return ValidationResult(
            record_kind="settlement",
            record_id=settlement.id or None,
            issues=issues,
        )

    def validate_group(self, group: Group) -> ValidationResult:
        issues = []
        if not group.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Group name is required",
            ))
        if not group.owner_id:
            issues.append(ValidationIssue(
                field="owner_id",
                issue_type="missing",
                message="Group has no owner",
            ))
        elif group.member(group.owner_id) is None:
            issues.append(ValidationIssue(
                field="owner_id",
                issue_type="not_a_member",
                message="Group owner must be a member of the group",
            ))
        for member in group.members:
            if not is_valid_email(member.email):
                issues.append(ValidationIssue(
                    field="members",
                    issue_type="invalid_format",
                    message=f"Member {member.id or member.name} has no valid email; "
                            "they will not receive notifications",
                    severity="warning",
                ))
        return ValidationResult(
            record_kind="group",
            record_id=group.id or None,
            issues=issues,
        )
