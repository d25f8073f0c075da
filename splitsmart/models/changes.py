"""
Change Event Models

Row-level change notifications pushed by the change bus.

DESIGN DECISION: Every inbound notification is parsed into ONE explicit
event type (collection x operation) before anything touches the ledger.
A single reconciliation function then handles all of them, instead of
per-collection callbacks scattered across the code base.
"""

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field


class CollectionType(str, Enum):
    """Collections the ledger mirrors from the store."""
    USERS = "users"
    GROUPS = "groups"
    EXPENSES = "expenses"
    SETTLEMENTS = "settlements"

    @classmethod
    def parse(cls, value: str) -> "CollectionType":
        """
        Accept collection names in the forms the bus has been seen to use:
        `expenses`, `expense`, `expense_change`, `EXPENSES`.
        """
        name = str(value).strip().lower()
        if name.endswith("_change"):
            name = name[: -len("_change")]
        for member in cls:
            if name in (member.value, member.value.rstrip("s")):
                return member
        raise ValueError(f"Unknown collection: {value!r}")


class ChangeOperation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ConnectionState(str, Enum):
    """Subscription state of one collection on the change bus."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ReconcileOutcome(str, Enum):
    """What applying one change event did to the ledger."""
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"
    IGNORED = "ignored"    # unknown id on update/delete
    REJECTED = "rejected"  # payload unusable (no id, fails ledger invariants)


class ChangeEvent(BaseModel):
    """One row-level change delivered by the bus."""

    model_config = ConfigDict(frozen=True)

    collection: CollectionType
    operation: ChangeOperation
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_wire(cls, message: Mapping[str, Any]) -> "ChangeEvent":
        """
        Build an event from a raw bus message.

        The bus sends `{"type": "expense_change", "operation": "insert",
        "data": {...}}`; `collection` and `payload` are accepted as
        alternative key names.

        Raises:
            ValueError: unknown collection or operation, or a message or
                payload that is not a mapping
        """
        if not isinstance(message, Mapping):
            raise ValueError(f"Change message must be a mapping, got {type(message).__name__}")
        collection = message.get("type") or message.get("collection") or ""
        operation = str(message.get("operation") or "").strip().lower()
        payload = message.get("data")
        if payload is None:
            payload = message.get("payload")
        if payload is not None and not isinstance(payload, Mapping):
            raise ValueError(f"Change payload must be a mapping, got {type(payload).__name__}")
        return cls(
            collection=CollectionType.parse(collection),
            operation=ChangeOperation(operation),
            payload=dict(payload or {}),
        )
