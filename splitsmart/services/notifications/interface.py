"""
Abstract Notification Sender Interface

Outbound messages (invitations, payment reminders, settlement
confirmations) are handed to a sender. Templates and transport belong to
the sender; the ledger only supplies the parameters.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class NotificationKind(str, Enum):
    INVITATION = "invitation"
    PAYMENT_REMINDER = "payment_reminder"
    SETTLEMENT_CONFIRMATION = "settlement_confirmation"


class SendResult(BaseModel):
    """Outcome of delivering one notification."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 1


class NotificationSenderInterface(ABC):
    """
    Abstract interface for notification delivery.

    `params` always carries `to` (recipient email) plus kind-specific
    values:
        invitation:              member_name, group_name, inviter_name, invitation_link
        payment_reminder:        member_name, group_name, amount_owed, payment_link
        settlement_confirmation: member_name, group_name, amount, from_member_name
    """

    @abstractmethod
    async def send(self, kind: NotificationKind, params: dict[str, Any]) -> SendResult:
        """
        Deliver one notification.

        Returns:
            SendResult describing the delivery

        Raises:
            NotificationSendError: On a failure worth retrying
        """
        pass


class NotificationSendError(Exception):
    """Delivery of a notification failed."""
    pass
