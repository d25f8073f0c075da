"""Tests for the record normalizer."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from splitsmart.models.ledger import Expense, Group, MemberStatus, Settlement
from splitsmart.normalization import (
    FIELD_TABLE,
    FieldSpec,
    RecordKind,
    parse_amount,
    raw_group_id,
    raw_record_id,
)
from tests.factories import FIXED_NOW


class TestFieldTable:
    """Tests for the declared key variants."""

    def test_key_order(self):
        """camelCase first, then snake_case, UPPER_SNAKE, then aliases."""
        field_spec = FieldSpec("group_id", aliases=("gid",))
        assert field_spec.keys == ("groupId", "group_id", "GROUP_ID", "gid")

    def test_single_word_has_no_duplicates(self):
        assert FieldSpec("amount").keys == ("amount", "AMOUNT")

    def test_every_kind_declares_id(self):
        for kind, specs in FIELD_TABLE.items():
            assert specs[0].name == "id", kind

    def test_raw_ids(self):
        assert raw_record_id({"ID": " e1 "}) == "e1"
        assert raw_record_id({}) == ""
        assert raw_group_id({"GROUP_ID": "g1"}) == "g1"


class TestCasingVariants:
    """The same logical field resolves from every casing."""

    @pytest.mark.parametrize("key", ["groupId", "group_id", "GROUP_ID"])
    def test_group_id_variants(self, normalizer, key):
        expense = normalizer.normalize({"id": "e1", key: "g1"}, RecordKind.EXPENSE)
        assert expense.group_id == "g1"

    def test_camel_case_wins_over_snake_case(self, normalizer):
        expense = normalizer.normalize(
            {"id": "e1", "paidBy": "A", "paid_by": "B"},
            RecordKind.EXPENSE,
        )
        assert expense.paid_by == "A"

    def test_null_falls_through_to_next_variant(self, normalizer):
        expense = normalizer.normalize(
            {"id": "e1", "paidBy": None, "paid_by": "B"},
            RecordKind.EXPENSE,
        )
        assert expense.paid_by == "B"

    def test_legacy_settlement_keys(self, normalizer):
        """Old rows name the parties fromUser/toUser."""
        settlement = normalizer.normalize(
            {"id": "s1", "fromUser": "B", "to_user": "A", "amount": 30},
            RecordKind.SETTLEMENT,
        )
        assert settlement.from_member == "B"
        assert settlement.to_member == "A"

    def test_legacy_group_owner(self, normalizer):
        group = normalizer.normalize({"id": "g1", "createdBy": "A"}, RecordKind.GROUP)
        assert group.owner_id == "A"

    def test_created_at_used_as_expense_date(self, normalizer):
        expense = normalizer.normalize(
            {"id": "e1", "createdAt": "2024-01-02T03:04:05Z"},
            RecordKind.EXPENSE,
        )
        assert expense.date == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class TestDefaults:
    """Absent fields take the documented defaults."""

    def test_empty_expense(self, normalizer):
        expense = normalizer.normalize({}, RecordKind.EXPENSE)
        assert expense.id == ""
        assert expense.amount == Decimal("0")
        assert expense.split_between == ()
        assert expense.settled is False
        assert expense.category == "Other"
        assert expense.date == FIXED_NOW

    def test_settlement_expense_id_optional(self, normalizer):
        settlement = normalizer.normalize({"id": "s1", "expenseId": ""}, RecordKind.SETTLEMENT)
        assert settlement.expense_id is None

    def test_group_created_at_defaults_to_clock(self, normalizer):
        group = normalizer.normalize({"id": "g1"}, "group")
        assert group.created_at == FIXED_NOW

    def test_member_status_defaults_to_accepted(self, normalizer):
        group = normalizer.normalize(
            {"id": "g1", "members": [{"id": "A"}, {"id": "B", "status": "INVITED"}, {"id": "C", "status": "??"}]},
            RecordKind.GROUP,
        )
        statuses = [m.status for m in group.members]
        assert statuses == [MemberStatus.ACCEPTED, MemberStatus.INVITED, MemberStatus.ACCEPTED]

    def test_members_as_bare_ids(self, normalizer):
        group = normalizer.normalize({"id": "g1", "members": ["A", "B", None]}, RecordKind.GROUP)
        assert group.member_ids == ("A", "B")


class TestValueParsing:
    """Bad values never raise."""

    @pytest.mark.parametrize("value,expected", [
        ("12.50", Decimal("12.50")),
        (" 7 ", Decimal("7")),
        (0.1, Decimal("0.1")),
        (5, Decimal("5")),
        ("abc", Decimal("0")),
        ("NaN", Decimal("0")),
        (float("inf"), Decimal("0")),
        (True, Decimal("0")),
        ([1], Decimal("0")),
    ])
    def test_parse_amount(self, value, expected):
        assert parse_amount(value) == expected

    def test_invalid_amount_in_record(self, normalizer):
        expense = normalizer.normalize({"id": "e1", "amount": "twelve"}, RecordKind.EXPENSE)
        assert expense.amount == Decimal("0")

    @pytest.mark.parametrize("value,expected", [
        ("true", True),
        ("TRUE", True),
        ("1", True),
        ("yes", True),
        (1, True),
        ("false", False),
        ("0", False),
        ("", False),
        (0, False),
    ])
    def test_flags(self, normalizer, value, expected):
        settlement = normalizer.normalize({"id": "s1", "confirmed": value}, RecordKind.SETTLEMENT)
        assert settlement.confirmed is expected

    def test_epoch_milliseconds(self, normalizer):
        expense = normalizer.normalize({"id": "e1", "date": 1717243200000}, RecordKind.EXPENSE)
        assert expense.date == FIXED_NOW

    def test_epoch_seconds(self, normalizer):
        expense = normalizer.normalize({"id": "e1", "date": 1717243200}, RecordKind.EXPENSE)
        assert expense.date == FIXED_NOW

    def test_naive_timestamp_is_utc(self, normalizer):
        expense = normalizer.normalize({"id": "e1", "date": "2024-06-01T12:00:00"}, RecordKind.EXPENSE)
        assert expense.date == FIXED_NOW

    def test_unparseable_date_uses_clock(self, normalizer):
        expense = normalizer.normalize({"id": "e1", "date": "last tuesday"}, RecordKind.EXPENSE)
        assert expense.date == FIXED_NOW

    def test_split_from_objects(self, normalizer):
        """Older rows store split entries as objects."""
        expense = normalizer.normalize(
            {"id": "e1", "splitBetween": [{"member_id": "A", "amount": 10}, {"id": "B"}, {"amount": 3}, "A"]},
            RecordKind.EXPENSE,
        )
        assert expense.split_between == ("A", "B")

    def test_split_not_a_list(self, normalizer):
        expense = normalizer.normalize({"id": "e1", "splitBetween": "A,B"}, RecordKind.EXPENSE)
        assert expense.split_between == ()


class TestIdempotence:
    """Normalizing a canonical record returns it unchanged."""

    def test_same_instance(self, normalizer):
        expense = Expense(id="e1", amount=Decimal("10"), split_between=("A",))
        assert normalizer.normalize(expense, RecordKind.EXPENSE) is expense

    def test_round_trip_through_record(self, normalizer):
        settlement = Settlement(
            id="s1",
            group_id="g1",
            from_member="B",
            to_member="A",
            amount=Decimal("30.00"),
            date=FIXED_NOW,
            expense_id="e1",
        )
        again = normalizer.normalize(settlement.to_record(), RecordKind.SETTLEMENT)
        assert again == settlement

    def test_group_round_trip(self, normalizer, group):
        again = normalizer.normalize(group.to_record(json_safe=True), RecordKind.GROUP)
        assert again == group
        assert isinstance(again, Group)


class TestExtractFields:
    """Partial updates only carry the fields present."""

    def test_only_present_fields(self, normalizer):
        fields = normalizer.extract_fields({"id": "e1", "amount": "45"}, RecordKind.EXPENSE)
        assert fields == {"id": "e1", "amount": Decimal("45")}

    def test_no_default_date(self, normalizer):
        fields = normalizer.extract_fields({"confirmed": "true"}, RecordKind.SETTLEMENT)
        assert fields == {"confirmed": True}
