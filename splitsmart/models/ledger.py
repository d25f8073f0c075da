"""
Core Data Models for the SplitSmart Ledger

These models define the canonical shape of every record the ledger holds.
They are designed to:
1. Give one internal shape to records that arrive in several casings
2. Be immutable once built (changes produce a new record)
3. Serialize back to the camelCase record shape the store understands

DESIGN DECISION: Canonical records are lenient about VALUES (an expense with
an empty split can be represented) but strict about TYPES. Whether a record
is acceptable in the ledger is decided by the validator, never by the model,
so that normalizing a messy store row can never raise.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Timezone-aware current timestamp used for record defaults."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class MemberStatus(str, Enum):
    """
    Membership state of a person in a group.

    Members are added as INVITED and move to ACCEPTED once they accept.
    There is no removal state.
    """
    INVITED = "invited"
    ACCEPTED = "accepted"


class PaymentStatus(str, Enum):
    """Payment state of one member's share of one expense."""
    PAID = "paid"
    PENDING = "pending"
    UNPAID = "unpaid"
    NOT_APPLICABLE = "not_applicable"


# =============================================================================
# CANONICAL RECORDS
# =============================================================================

class LedgerRecord(BaseModel):
    """
    Base class for canonical ledger records.

    Attributes are snake_case in Python and camelCase on the wire.
    Records are frozen; use `LedgerState.merge_*` or `model_copy` to change them.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )

    def to_record(self, json_safe: bool = False) -> dict[str, Any]:
        """
        Serialize to the canonical camelCase record shape.

        With json_safe=True, decimals and timestamps become strings so the
        result can be written to a JSON-backed store.
        """
        return self.model_dump(by_alias=True, mode="json" if json_safe else "python")


class User(LedgerRecord):
    """An application user (the `users` collection)."""

    id: str = ""
    name: str = ""
    email: str = ""


class Member(LedgerRecord):
    """A person's membership entry inside one group's member list."""

    id: str = ""
    name: str = ""
    email: str = ""
    status: MemberStatus = MemberStatus.ACCEPTED


class Group(LedgerRecord):
    """
    A set of members sharing expenses.

    Group identity is immutable; only the member list grows
    (invitation, then acceptance).
    """

    id: str = ""
    name: str = ""
    description: str = ""
    members: tuple[Member, ...] = ()
    owner_id: str = ""
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('created_at')
    @classmethod
    def created_at_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @field_validator('members')
    @classmethod
    def unique_members(cls, v: tuple[Member, ...]) -> tuple[Member, ...]:
        """Member ids are unique within a group; the first entry wins."""
        seen: dict[str, Member] = {}
        for member in v:
            seen.setdefault(member.id, member)
        return tuple(seen.values())

    @property
    def member_ids(self) -> tuple[str, ...]:
        return tuple(m.id for m in self.members)

    def member(self, member_id: str) -> Optional[Member]:
        for m in self.members:
            if m.id == member_id:
                return m
        return None

    def member_by_email(self, email: str) -> Optional[Member]:
        wanted = email.strip().lower()
        for m in self.members:
            if m.email.lower() == wanted:
                return m
        return None


class Expense(LedgerRecord):
    """
    A single purchase paid by one member and split evenly
    between a set of members.

    `split_between` keeps the order it was given in; duplicates are dropped.
    That order decides which participants absorb leftover cents.
    """

    id: str = ""
    group_id: str = ""
    description: str = ""
    amount: Decimal = Decimal("0")
    paid_by: str = ""
    split_between: tuple[str, ...] = ()
    date: datetime = Field(default_factory=utc_now)
    created_by: str = ""
    settled: bool = False
    category: str = "Other"

    @field_validator('split_between')
    @classmethod
    def dedupe_split(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(v))

    @field_validator('date')
    @classmethod
    def date_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class Settlement(LedgerRecord):
    """
    A claimed repayment from one member to another.

    CRITICAL: A settlement only affects balances once `confirmed` is True,
    i.e. after the recipient has acknowledged receipt.
    """

    id: str = ""
    group_id: str = ""
    from_member: str = ""
    to_member: str = ""
    amount: Decimal = Decimal("0")
    date: datetime = Field(default_factory=utc_now)
    confirmed: bool = False
    description: str = ""
    expense_id: Optional[str] = Field(
        default=None,
        description="Expense this payment is for, when it pays one specific expense"
    )

    @field_validator('date')
    @classmethod
    def date_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class Debtor(BaseModel):
    """A member who currently owes money in a group."""

    member_id: str
    name: str = ""
    email: str
    amount_owed: Decimal = Field(
        ...,
        gt=0,
        description="Magnitude of the member's negative balance"
    )


class OwedAmount(BaseModel):
    """What a member owes the payer of one expense."""

    group_id: str
    expense_id: str
    owed_to: str
    amount: Decimal


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'not_a_member')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of validating one record before it enters the ledger.

    Warnings are reported but do not block; any error does.
    """

    record_kind: str
    record_id: Optional[str] = None
    validated_at: datetime = Field(default_factory=utc_now)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def summary(self) -> str:
        return "; ".join(
            f"{issue.field}: {issue.message}"
            for issue in self.issues
            if issue.severity == "error"
        )
