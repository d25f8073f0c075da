"""Tests for the ledger working set and the validator."""

from datetime import timedelta
from decimal import Decimal

import pytest

from splitsmart.ledger import LedgerState, LedgerValidationError
from splitsmart.models.ledger import Group, Member, User, ValidationIssue, utc_now
from splitsmart.validation import LedgerValidator, is_valid_email
from tests.factories import make_expense, make_settlement


class TestUpserts:
    """Tests for last-write-wins upserts."""

    def test_insert_then_replace_keeps_position(self, state):
        state.upsert_expense(make_expense("e1"))
        state.upsert_expense(make_expense("e2"))
        state.upsert_expense(make_expense("e1", amount="45"))

        assert [e.id for e in state.expenses] == ["e1", "e2"]
        assert state.get_expense("e1").amount == Decimal("45")

    def test_invalid_expense_rejected(self, state):
        """Writes that break the invariants leave the set unchanged."""
        with pytest.raises(LedgerValidationError) as exc_info:
            state.upsert_expense(make_expense("e1", amount="0"))
        assert exc_info.value.result.record_id == "e1"
        assert "amount" in str(exc_info.value)
        assert state.expenses == []

    def test_empty_split_rejected(self, state):
        with pytest.raises(LedgerValidationError):
            state.upsert_expense(make_expense("e1", split=()))

    def test_self_settlement_rejected(self, state):
        with pytest.raises(LedgerValidationError):
            state.upsert_settlement(make_settlement(from_member="A", to_member="A"))

    def test_user_without_id_rejected(self, state):
        with pytest.raises(LedgerValidationError):
            state.upsert_user(User(name="Nobody"))

    def test_groups_of_expenses(self, state):
        state.upsert_expense(make_expense("e1"))
        state.upsert_expense(make_expense("e2", group_id="g2"))
        assert [e.id for e in state.expenses_of("g1")] == ["e1"]

    def test_find_user_by_email(self, state):
        state.upsert_user(User(id="u1", name="Asha", email="Asha@Example.com"))
        assert state.find_user_by_email("asha@example.com").id == "u1"
        assert state.find_user_by_email("x@example.com") is None


class TestMergeAndRemove:
    """Tests for partial merges and removals."""

    def test_merge_keeps_absent_fields(self, state):
        state.upsert_expense(make_expense("e1", description="Dinner"))
        merged = state.merge_expense("e1", {"amount": Decimal("120")})
        assert merged.amount == Decimal("120")
        assert merged.description == "Dinner"
        assert merged.split_between == ("A", "B", "C")

    def test_merge_never_changes_id(self, state):
        state.upsert_settlement(make_settlement("s1"))
        merged = state.merge_settlement("s1", {"id": "s2", "confirmed": True})
        assert merged.id == "s1"
        assert state.get_settlement("s2") is None

    def test_merge_unknown_returns_none(self, state):
        assert state.merge_expense("missing", {"amount": Decimal("1")}) is None
        assert state.expenses == []

    def test_merge_invalid_raises_and_keeps_old(self, state):
        state.upsert_expense(make_expense("e1"))
        with pytest.raises(LedgerValidationError):
            state.merge_expense("e1", {"amount": Decimal("-5")})
        assert state.get_expense("e1").amount == Decimal("90")

    def test_merge_group_members(self, state, group):
        merged = state.merge_group("g1", {"members": [*group.members, Member(id="D")]})
        assert merged.member_ids == ("A", "B", "C", "D")

    def test_remove(self, state):
        state.upsert_expense(make_expense("e1"))
        assert state.remove_expense("e1").id == "e1"
        assert state.remove_expense("e1") is None


class TestReplaceAll:
    """Tests for a full reload of the working set."""

    def test_replace_all_skips_invalid(self, state):
        rejected = state.replace_all(
            groups=[Group(id="g9", name="New")],
            expenses=[make_expense("e1", group_id="g9"), make_expense("e2", amount="-1")],
            settlements=[make_settlement("s1", group_id="g9")],
        )
        assert [r.record_id for r in rejected] == ["e2"]
        assert state.counts() == {"users": 0, "groups": 1, "expenses": 1, "settlements": 1}
        assert state.get_group("g1") is None

    def test_clear(self, state):
        state.clear()
        assert state.counts()["groups"] == 0


class TestValidator:
    """Tests for the caller-facing validation stage."""

    @pytest.fixture
    def validator(self):
        return LedgerValidator()

    def test_valid_expense(self, validator, group):
        result = validator.validate_expense(make_expense(), group)
        assert result.is_valid
        assert result.issues == []

    def test_description_required(self, validator):
        result = validator.validate_expense(make_expense(description=""))
        assert [i.field for i in result.issues] == ["description"]

    def test_non_member_in_split(self, validator, group):
        result = validator.validate_expense(make_expense(split=("A", "Z")), group)
        assert not result.is_valid
        assert result.issues[0].issue_type == "not_a_member"
        assert "Z" in result.issues[0].message

    def test_future_date_is_warning(self, validator, group):
        expense = make_expense(date=utc_now() + timedelta(days=10))
        result = validator.validate_expense(expense, group)
        assert result.is_valid
        assert result.issues[0].issue_type == "future_date"

    def test_id_optional_for_new_records(self, validator):
        assert validator.validate_expense(make_expense("")).is_valid
        assert not validator.validate_expense(make_expense(""), require_id=True).is_valid

    def test_settlement_parties(self, validator, group):
        result = validator.validate_settlement(make_settlement(to_member="Z"), group)
        assert [i.field for i in result.issues] == ["to_member"]

    def test_group_owner_must_be_member(self, validator):
        result = validator.validate_group(Group(id="g1", name="Trip", owner_id="A"))
        assert not result.is_valid
        assert result.issues[0].field == "owner_id"

    def test_member_without_email_is_warning(self, validator):
        group = Group(id="g1", name="Trip", owner_id="A", members=(Member(id="A"),))
        result = validator.validate_group(group)
        assert result.is_valid
        assert result.issues[0].severity == "warning"

    @pytest.mark.parametrize("email,expected", [
        ("asha@example.com", True),
        (" asha@example.com ", True),
        ("asha@example", False),
        ("asha example@x.com", False),
        ("", False),
        (None, False),
    ])
    def test_is_valid_email(self, email, expected):
        assert is_valid_email(email) is expected

    def test_state_uses_injected_validator(self):
        class Strict(LedgerValidator):
            def expense_invariants(self, expense, require_id=True):
                issues = super().expense_invariants(expense, require_id)
                if expense.amount > 1000:
                    issues.append(ValidationIssue(
                        field="amount", issue_type="too_large", message="Too large"
                    ))
                return issues

        state = LedgerState(Strict())
        with pytest.raises(LedgerValidationError):
            state.upsert_expense(make_expense(amount="5000"))
