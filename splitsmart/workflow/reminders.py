"""
Reminder and Settlement Workflow

Decides who gets reminded, sends invitations, reminders and settlement
confirmations, and moves settlements from unconfirmed to confirmed.

SETTLEMENT LIFECYCLE:
    unconfirmed --confirm--> confirmed
There is no way back and no expiry: an unconfirmed settlement stays
pending until it is confirmed or deleted.

DELIVERY: Every message goes through the retrying sender. A message that
still fails after the last attempt is reported in the result for that
member and audited; nothing retries it later.
"""

from decimal import Decimal
from typing import Optional
from urllib.parse import quote
from uuid import UUID

from pydantic import BaseModel

from splitsmart.audit import AuditLogger
from splitsmart.config import LedgerSettings, NotificationSettings, get_settings
from splitsmart.ledger import (
    BalanceEngine,
    ExpenseNotFoundError,
    LedgerState,
    SettlementNotFoundError,
)
from splitsmart.models.ledger import (
    Debtor,
    Group,
    Member,
    PaymentStatus,
    Settlement,
)
from splitsmart.services.notifications import (
    NotificationKind,
    NotificationSenderInterface,
    SendResult,
)
from splitsmart.validation import is_valid_email


class ReminderResult(BaseModel):
    """Delivery outcome of one message to one member."""

    member_id: str
    email: str
    kind: NotificationKind
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 1


class ReminderWorkflow:
    """
    Debtor selection, settlement confirmation and outbound messages.

    `sender` should already retry (RetryingNotificationSender); this class
    sends each message once and reports what came back.
    """

    def __init__(
        self,
        state: LedgerState,
        sender: NotificationSenderInterface,
        engine: Optional[BalanceEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        notification_settings: Optional[NotificationSettings] = None,
        ledger_settings: Optional[LedgerSettings] = None,
    ):
        settings = get_settings()
        self._state = state
        self._sender = sender
        self._engine = engine or BalanceEngine(state)
        self._audit = audit_logger or AuditLogger()
        self._notify = notification_settings or settings.notifications
        self._ledger = ledger_settings or settings.ledger

    # =========================================================================
    # HELPERS
    # =========================================================================

    def format_amount(self, amount: Decimal) -> str:
        return f"{self._ledger.currency_symbol}{self._engine.quantize(amount):.2f}"

    def payment_link(self, group_id: str) -> str:
        return f"{self._notify.app_base_url}/groups/{quote(group_id)}"

    def invitation_link(self, group: Group, email: str) -> str:
        return (
            f"{self._notify.app_base_url}/accept-invitation"
            f"?group={quote(group.name)}&email={quote(email)}"
        )

    def _contact(self, group: Optional[Group], member_id: str) -> tuple[str, str]:
        """
        (name, email) of a member.

        The group's member entry wins; the users directory fills in a
        missing or malformed email.
        """
        member = group.member(member_id) if group else None
        name = member.name if member else ""
        email = member.email if member else ""
        if not is_valid_email(email):
            user = self._state.get_user(member_id)
            if user is not None:
                email = user.email
                name = name or user.name
        return name or member_id, email

    async def _deliver(
        self,
        kind: NotificationKind,
        member_id: str,
        params: dict,
        correlation_id: Optional[UUID],
    ) -> ReminderResult:
        result: SendResult = await self._sender.send(kind, params)
        await self._audit.log_notification(
            kind=kind.value,
            recipient=params["to"],
            success=result.success,
            attempts=result.attempts,
            error=result.error,
            correlation_id=correlation_id,
        )
        return ReminderResult(
            member_id=member_id,
            email=params["to"],
            kind=kind,
            success=result.success,
            message_id=result.message_id,
            error=result.error,
            attempts=result.attempts,
        )

    # =========================================================================
    # DEBTORS
    # =========================================================================

    def select_debtors(self, group_id: str) -> list[Debtor]:
        """
        Members with a negative balance and a usable email address.

        `amount_owed` is the magnitude of the balance.
        """
        group = self._state.get_group(group_id)
        debtors = []
        for member_id, balance in self._engine.calculate_balances(group_id).items():
            if balance >= 0:
                continue
            name, email = self._contact(group, member_id)
            if not is_valid_email(email):
                continue
            debtors.append(Debtor(
                member_id=member_id,
                name=name,
                email=email,
                amount_owed=-balance,
            ))
        return debtors

    # =========================================================================
    # SETTLEMENTS
    # =========================================================================

    def confirm_settlement(self, settlement_id: str) -> Settlement:
        """
        Mark a settlement confirmed. Confirming twice is a no-op.

        Raises:
            SettlementNotFoundError: No settlement with this id
        """
        settlement = self._state.get_settlement(settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(settlement_id)
        if settlement.confirmed:
            return settlement
        return self._state.upsert_settlement(settlement.model_copy(update={"confirmed": True}))

    # =========================================================================
    # OUTBOUND MESSAGES
    # =========================================================================

    async def send_payment_reminders(
        self,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[ReminderResult]:
        """One reminder per debtor of the group."""
        group = self._state.get_group(group_id)
        group_name = group.name if group else group_id
        results = []
        for debtor in self.select_debtors(group_id):
            results.append(await self._deliver(
                NotificationKind.PAYMENT_REMINDER,
                debtor.member_id,
                {
                    "to": debtor.email,
                    "member_name": debtor.name,
                    "group_name": group_name,
                    "amount_owed": self.format_amount(debtor.amount_owed),
                    "payment_link": self.payment_link(group_id),
                },
                correlation_id,
            ))
        return results

    async def send_expense_reminders(
        self,
        expense_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[ReminderResult]:
        """
        Remind the participants of one expense who have not paid their share.

        Raises:
            ExpenseNotFoundError: No expense with this id
        """
        expense = self._state.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(expense_id)
        group = self._state.get_group(expense.group_id)
        results = []
        for member_id, share in self._engine.split_expense(expense).items():
            status = self._engine.payment_status_for_expense(expense_id, member_id)
            if status is not PaymentStatus.UNPAID or share <= 0:
                continue
            name, email = self._contact(group, member_id)
            if not is_valid_email(email):
                continue
            results.append(await self._deliver(
                NotificationKind.PAYMENT_REMINDER,
                member_id,
                {
                    "to": email,
                    "member_name": name,
                    "group_name": group.name if group else expense.group_id,
                    "amount_owed": self.format_amount(share),
                    "payment_link": self.payment_link(expense.group_id),
                },
                correlation_id,
            ))
        return results

    async def send_group_invitations(
        self,
        group: Group,
        members: Optional[list[Member]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[ReminderResult]:
        """
        Invite members of a group, by default everyone but the owner.
        Members without a valid email are skipped.
        """
        inviter_name, _ = self._contact(group, group.owner_id)
        targets = members if members is not None else [
            m for m in group.members if m.id != group.owner_id
        ]
        results = []
        for member in targets:
            if not is_valid_email(member.email):
                continue
            results.append(await self._deliver(
                NotificationKind.INVITATION,
                member.id,
                {
                    "to": member.email,
                    "member_name": member.name or member.email,
                    "group_name": group.name,
                    "inviter_name": inviter_name,
                    "invitation_link": self.invitation_link(group, member.email),
                },
                correlation_id,
            ))
        return results

    async def send_settlement_confirmation(
        self,
        settlement: Settlement,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[ReminderResult]:
        """
        Tell the paying member their settlement was confirmed.

        Returns None when the payer has no usable email.
        """
        group = self._state.get_group(settlement.group_id)
        name, email = self._contact(group, settlement.from_member)
        if not is_valid_email(email):
            return None
        return await self._deliver(
            NotificationKind.SETTLEMENT_CONFIRMATION,
            settlement.from_member,
            {
                "to": email,
                "member_name": name,
                "group_name": group.name if group else settlement.group_id,
                "amount": self.format_amount(settlement.amount),
                "from_member_name": name,
            },
            correlation_id,
        )
