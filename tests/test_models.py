"""
Tests for SplitSmart Ledger

Test strategy:
1. Unit tests for individual components (models, normalizer, validator, engine)
2. Integration tests for flows (with in-memory store, bus and fake sender)
3. No real network calls in tests (use fakes and mocks)
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from splitsmart.models.ledger import (
    Debtor,
    Expense,
    Group,
    Member,
    MemberStatus,
    Settlement,
    ValidationIssue,
    ValidationResult,
)
from splitsmart.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from splitsmart.models.changes import (
    ChangeEvent,
    ChangeOperation,
    CollectionType,
)


class TestLedgerModels:
    """Tests for the canonical ledger records."""

    def test_member_defaults_to_accepted(self):
        """Members without a status are treated as accepted."""
        member = Member(id="m1", name="Asha", email="asha@example.com")
        assert member.status == MemberStatus.ACCEPTED

    def test_strips_whitespace(self):
        """Test that whitespace is stripped from text fields."""
        member = Member(id="  m1 ", name="  Asha  ")
        assert member.id == "m1"
        assert member.name == "Asha"

    def test_records_are_frozen(self):
        """Records cannot be mutated in place."""
        expense = Expense(id="e1", amount=Decimal("10"))
        with pytest.raises(ValidationError):
            expense.amount = Decimal("20")

    def test_expense_split_deduplicated_in_order(self):
        """Split members keep first-seen order without duplicates."""
        expense = Expense(id="e1", split_between=("B", "A", "B", "C", "A"))
        assert expense.split_between == ("B", "A", "C")

    def test_expense_category_default(self):
        expense = Expense(id="e1")
        assert expense.category == "Other"
        assert expense.settled is False

    def test_group_members_unique_first_wins(self):
        """Duplicate member ids keep the first entry."""
        group = Group(
            id="g1",
            members=(
                Member(id="A", name="First"),
                Member(id="A", name="Second"),
                Member(id="B"),
            ),
        )
        assert group.member_ids == ("A", "B")
        assert group.member("A").name == "First"

    def test_group_member_by_email_case_insensitive(self, group):
        assert group.member_by_email("BALA@example.com").id == "B"
        assert group.member_by_email("nobody@example.com") is None

    def test_to_record_uses_camel_case(self):
        """Serialized records use the store's camelCase keys."""
        settlement = Settlement(
            id="s1",
            group_id="g1",
            from_member="B",
            to_member="A",
            amount=Decimal("30"),
            expense_id="e1",
        )
        record = settlement.to_record()
        assert record["groupId"] == "g1"
        assert record["fromMember"] == "B"
        assert record["expenseId"] == "e1"
        assert "group_id" not in record

    def test_to_record_json_safe(self):
        record = Expense(id="e1", amount=Decimal("12.50")).to_record(json_safe=True)
        assert record["amount"] == "12.50"
        assert isinstance(record["date"], str)

    def test_populate_by_alias(self):
        """Records can be built from camelCase keys."""
        expense = Expense.model_validate({"id": "e1", "paidBy": "A", "groupId": "g1"})
        assert expense.paid_by == "A"
        assert expense.group_id == "g1"

    def test_debtor_requires_positive_amount(self):
        with pytest.raises(ValueError):
            Debtor(member_id="B", email="b@example.com", amount_owed=Decimal("0"))


class TestChangeModels:
    """Tests for change-event parsing."""

    @pytest.mark.parametrize("name", ["expenses", "expense", "expense_change", "EXPENSES"])
    def test_collection_name_variants(self, name):
        assert CollectionType.parse(name) == CollectionType.EXPENSES

    def test_unknown_collection_rejected(self):
        with pytest.raises(ValueError):
            CollectionType.parse("invoices")

    def test_from_wire(self):
        """The bus message shape is parsed into a ChangeEvent."""
        event = ChangeEvent.from_wire({
            "type": "settlement_change",
            "operation": "UPDATE",
            "data": {"id": "s1", "confirmed": True},
        })
        assert event.collection == CollectionType.SETTLEMENTS
        assert event.operation == ChangeOperation.UPDATE
        assert event.payload == {"id": "s1", "confirmed": True}

    def test_from_wire_unknown_operation(self):
        with pytest.raises(ValueError):
            ChangeEvent.from_wire({"type": "expenses", "operation": "upsert", "data": {}})


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            description="Expense created",
        )
        assert event.event_type == AuditEventType.EXPENSE_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.SETTLEMENT_CONFIRMED,
            description="Settlement confirmed",
            details={"amount": "30.00"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "settlement_confirmed"
        assert log_dict["details"]["amount"] == "30.00"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.MEMBER_INVITED,
            description="Member invited",
            entity_id="g1",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "member_invited"
        assert row[5] == "g1"
        assert row[10] == "True"

    def test_builder_expense_changed(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.expense_changed(
            event_type=AuditEventType.EXPENSE_DELETED,
            expense_id="e1",
            group_id="g1",
            amount="90",
            correlation_id=correlation_id,
        )
        assert event.entity_type == "expense"
        assert event.entity_id == "e1"
        assert event.description == "Expense deleted: 90"
        assert event.correlation_id == correlation_id

    def test_builder_change_ignored_is_warning(self):
        event = AuditEventBuilder.change_ignored("expenses", "update", "e9", "unknown id")
        assert event.severity == AuditSeverity.WARNING
        assert event.details["reason"] == "unknown id"

    def test_builder_notification_failed(self):
        event = AuditEventBuilder.notification_result(
            kind="payment_reminder",
            recipient="bala@example.com",
            success=False,
            attempts=3,
            error="smtp down",
        )
        assert event.event_type == AuditEventType.NOTIFICATION_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert "after 3 attempts" in event.description


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            record_kind="expense",
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.is_valid is False
        assert result.error_count == 1
        assert result.summary() == "amount: Amount must be greater than zero"

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            record_kind="expense",
            issues=[
                ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.is_valid is True
        assert result.error_count == 0

    def test_issue_severity_restricted(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
