"""
Record Normalizer

The persistence layer is loosely typed: the same logical field shows up as
`groupId`, `group_id` or `GROUP_ID` depending on which client wrote the row,
amounts arrive as strings or floats, timestamps as ISO strings or epoch
milliseconds.

DESIGN DECISION: Field resolution is driven by ONE declared table
(FIELD_TABLE) listing, per record kind and canonical field, the accepted
key variants in lookup order: camelCase, snake_case, UPPER_SNAKE, then any
legacy aliases seen in stored data. No ad hoc per-call lookups.

GUARANTEES:
- Never raises on bad values; unparseable values fall back to defaults
- Amounts are Decimal, never binary floats
- Idempotent: normalizing a canonical record returns it unchanged
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

from pydantic.alias_generators import to_camel

from splitsmart.models.changes import CollectionType
from splitsmart.models.ledger import (
    Expense,
    Group,
    LedgerRecord,
    Member,
    MemberStatus,
    Settlement,
    User,
    utc_now,
)


class RecordKind(str, Enum):
    """Kinds of canonical records the normalizer produces."""
    USER = "user"
    MEMBER = "member"
    GROUP = "group"
    EXPENSE = "expense"
    SETTLEMENT = "settlement"


class FieldType(str, Enum):
    TEXT = "text"
    OPTIONAL_TEXT = "optional_text"
    AMOUNT = "amount"
    FLAG = "flag"
    TIMESTAMP = "timestamp"
    ID_LIST = "id_list"
    MEMBERS = "members"
    STATUS = "status"


@dataclass(frozen=True)
class FieldSpec:
    """One canonical field and the raw keys it may be stored under."""

    name: str
    type: FieldType = FieldType.TEXT
    aliases: tuple[str, ...] = ()

    @property
    def keys(self) -> tuple[str, ...]:
        variants = (to_camel(self.name), self.name, self.name.upper(), *self.aliases)
        return tuple(dict.fromkeys(variants))


# Timestamps of rows that predate the explicit `date` field
_CREATED_AT = ("createdAt", "created_at", "CREATED_AT")

FIELD_TABLE: dict[RecordKind, tuple[FieldSpec, ...]] = {
    RecordKind.USER: (
        FieldSpec("id"),
        FieldSpec("name"),
        FieldSpec("email"),
    ),
    RecordKind.MEMBER: (
        FieldSpec("id"),
        FieldSpec("name"),
        FieldSpec("email"),
        FieldSpec("status", FieldType.STATUS),
    ),
    RecordKind.GROUP: (
        FieldSpec("id"),
        FieldSpec("name"),
        FieldSpec("description"),
        FieldSpec("members", FieldType.MEMBERS),
        FieldSpec("owner_id", aliases=("createdBy", "created_by", "CREATED_BY")),
        FieldSpec("created_at", FieldType.TIMESTAMP),
    ),
    RecordKind.EXPENSE: (
        FieldSpec("id"),
        FieldSpec("group_id"),
        FieldSpec("description"),
        FieldSpec("amount", FieldType.AMOUNT),
        FieldSpec("paid_by"),
        FieldSpec("split_between", FieldType.ID_LIST),
        FieldSpec("date", FieldType.TIMESTAMP, aliases=_CREATED_AT),
        FieldSpec("created_by"),
        FieldSpec("settled", FieldType.FLAG),
        FieldSpec("category"),
    ),
    RecordKind.SETTLEMENT: (
        FieldSpec("id"),
        FieldSpec("group_id"),
        FieldSpec("from_member", aliases=("fromUser", "from_user", "FROM_USER")),
        FieldSpec("to_member", aliases=("toUser", "to_user", "TO_USER")),
        FieldSpec("amount", FieldType.AMOUNT),
        FieldSpec("date", FieldType.TIMESTAMP, aliases=_CREATED_AT),
        FieldSpec("confirmed", FieldType.FLAG),
        FieldSpec("description"),
        FieldSpec("expense_id", FieldType.OPTIONAL_TEXT),
    ),
}

MODEL_BY_KIND: dict[RecordKind, type[LedgerRecord]] = {
    RecordKind.USER: User,
    RecordKind.MEMBER: Member,
    RecordKind.GROUP: Group,
    RecordKind.EXPENSE: Expense,
    RecordKind.SETTLEMENT: Settlement,
}

KIND_BY_COLLECTION: dict[CollectionType, RecordKind] = {
    CollectionType.USERS: RecordKind.USER,
    CollectionType.GROUPS: RecordKind.GROUP,
    CollectionType.EXPENSES: RecordKind.EXPENSE,
    CollectionType.SETTLEMENTS: RecordKind.SETTLEMENT,
}

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}

# Epoch values above this are milliseconds (JS Date.now()), below are seconds
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def first_present(raw: Mapping[str, Any], keys: tuple[str, ...]) -> tuple[bool, Any]:
    """Return (found, value) for the first key that is present and not None."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return True, value
    return False, None


def raw_record_id(raw: Mapping[str, Any]) -> str:
    """Id of a raw record, whatever casing it is stored under."""
    _, value = first_present(raw, FieldSpec("id").keys)
    return _parse_text(value) if value is not None else ""


def raw_group_id(raw: Mapping[str, Any]) -> str:
    """Group id of a raw expense or settlement record."""
    _, value = first_present(raw, FieldSpec("group_id").keys)
    return _parse_text(value) if value is not None else ""


# =============================================================================
# VALUE PARSERS - never raise
# =============================================================================

def _parse_text(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip()


def _parse_optional_text(value: Any) -> Optional[str]:
    text = _parse_text(value)
    return text or None


def parse_amount(value: Any) -> Decimal:
    """
    Parse a monetary value to Decimal.

    Floats go through their shortest repr so 0.1 stays 0.1.
    Anything unparseable or non-finite becomes 0.
    """
    if isinstance(value, bool):
        return Decimal("0")
    try:
        if isinstance(value, Decimal):
            amount = value
        elif isinstance(value, (int, float)):
            amount = Decimal(str(value))
        else:
            amount = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    return amount


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def _parse_timestamp(value: Any, clock: Callable[[], datetime]) -> datetime:
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            parsed = datetime(value.year, value.month, value.day)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else value
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        else:
            text = str(value).strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
    except (ValueError, TypeError, OverflowError, OSError):
        return clock()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_id_list(value: Any) -> tuple[str, ...]:
    """
    Parse a list of member ids.

    Items may be bare ids or split objects such as `{"member_id": "m1",
    "amount": 10}` as written by older server code.
    """
    if not isinstance(value, (list, tuple)):
        return ()
    ids = []
    for item in value:
        if isinstance(item, Mapping):
            found, member_id = first_present(
                item, FieldSpec("member_id", aliases=("id",)).keys
            )
            if not found:
                continue
            item = member_id
        text = _parse_text(item)
        if text:
            ids.append(text)
    return tuple(dict.fromkeys(ids))


def _parse_status(value: Any) -> MemberStatus:
    if isinstance(value, MemberStatus):
        return value
    try:
        return MemberStatus(_parse_text(value).lower())
    except ValueError:
        return MemberStatus.ACCEPTED


class RecordNormalizer:
    """
    Converts raw store records into canonical ledger records.

    Usage:
        normalizer = RecordNormalizer()
        expense = normalizer.normalize(row, RecordKind.EXPENSE)
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        """
        Args:
            clock: Source of the default timestamp for records without a date
        """
        self._clock = clock

    def normalize(
        self,
        raw: Union[Mapping[str, Any], LedgerRecord],
        kind: Union[RecordKind, str],
    ) -> LedgerRecord:
        """
        Resolve every canonical field of `kind` from `raw`.

        Fields that are absent (or null under every accepted key) take the
        model default: empty string for ids/names, 0 for amounts, False for
        flags, now for dates, empty tuple for id and member lists.
        """
        kind = RecordKind(kind)
        model = MODEL_BY_KIND[kind]
        if isinstance(raw, model):
            return raw
        if isinstance(raw, LedgerRecord):
            raw = raw.to_record()
        fields = self.extract_fields(raw, kind)
        if kind in (RecordKind.EXPENSE, RecordKind.SETTLEMENT) and "date" not in fields:
            fields["date"] = self._clock()
        if kind is RecordKind.GROUP and "created_at" not in fields:
            fields["created_at"] = self._clock()
        return model.model_validate(fields)

    def extract_fields(
        self,
        raw: Mapping[str, Any],
        kind: Union[RecordKind, str],
    ) -> dict[str, Any]:
        """
        Return only the canonical fields actually present in `raw`,
        keyed by attribute name and already parsed.

        Used for partial updates, where absent fields must keep their
        previous values.
        """
        kind = RecordKind(kind)
        fields: dict[str, Any] = {}
        for field_spec in FIELD_TABLE[kind]:
            found, value = first_present(raw, field_spec.keys)
            if found:
                fields[field_spec.name] = self._parse(field_spec.type, value)
        return fields

    def _parse(self, field_type: FieldType, value: Any) -> Any:
        if field_type is FieldType.TEXT:
            return _parse_text(value)
        if field_type is FieldType.OPTIONAL_TEXT:
            return _parse_optional_text(value)
        if field_type is FieldType.AMOUNT:
            return parse_amount(value)
        if field_type is FieldType.FLAG:
            return _parse_flag(value)
        if field_type is FieldType.TIMESTAMP:
            return _parse_timestamp(value, self._clock)
        if field_type is FieldType.ID_LIST:
            return _parse_id_list(value)
        if field_type is FieldType.STATUS:
            return _parse_status(value)
        if field_type is FieldType.MEMBERS:
            return self._parse_members(value)
        raise ValueError(f"Unhandled field type: {field_type}")

    def _parse_members(self, value: Any) -> tuple[Member, ...]:
        if not isinstance(value, (list, tuple)):
            return ()
        members = []
        for item in value:
            if isinstance(item, (Mapping, Member)):
                members.append(self.normalize(item, RecordKind.MEMBER))
            elif isinstance(item, (str, int)) and not isinstance(item, bool):
                members.append(Member(id=_parse_text(item)))
        return tuple(members)
