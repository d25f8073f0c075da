"""Record builders and test doubles shared by the test modules."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from splitsmart.models.ledger import Expense, Settlement
from splitsmart.services.notifications import (
    NotificationKind,
    NotificationSenderInterface,
    NotificationSendError,
    SendResult,
)


FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeSender(NotificationSenderInterface):
    """Records every send; the first `failures` calls raise."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls: list[tuple[NotificationKind, dict[str, Any]]] = []

    async def send(self, kind: NotificationKind, params: dict[str, Any]) -> SendResult:
        self.calls.append((kind, dict(params)))
        if self.failures > 0:
            self.failures -= 1
            raise NotificationSendError("smtp down")
        return SendResult(success=True, message_id=f"msg-{len(self.calls)}")

    def recipients(self, kind: NotificationKind) -> list[str]:
        return [params["to"] for k, params in self.calls if k is kind]


def make_expense(
    expense_id: str = "e1",
    amount: str = "90",
    paid_by: str = "A",
    split: tuple[str, ...] = ("A", "B", "C"),
    group_id: str = "g1",
    **extra,
) -> Expense:
    return Expense(
        id=expense_id,
        group_id=group_id,
        description=extra.pop("description", "Dinner"),
        amount=Decimal(amount),
        paid_by=paid_by,
        split_between=split,
        date=extra.pop("date", FIXED_NOW),
        **extra,
    )


def make_settlement(
    settlement_id: str = "s1",
    from_member: str = "B",
    to_member: str = "A",
    amount: str = "30",
    confirmed: bool = False,
    group_id: str = "g1",
    **extra,
) -> Settlement:
    return Settlement(
        id=settlement_id,
        group_id=group_id,
        from_member=from_member,
        to_member=to_member,
        amount=Decimal(amount),
        confirmed=confirmed,
        date=extra.pop("date", FIXED_NOW),
        **extra,
    )
