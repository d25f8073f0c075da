"""
Main Orchestrator for the SplitSmart Ledger

This module ties together all the components and defines the caller-facing
operations on groups, expenses and settlements.

Every write follows the same order:
1. Validate (nothing is touched if this fails)
2. Write to the record store
3. Update the local working set
4. Audit, then notify where the operation calls for it

DESIGN DECISION: The record store is allowed to be away. When a store call
fails or times out the service switches to degraded mode
(`store_available = False`), keeps applying the change to the local working
set and carries on. Callers decide whether to show a "not saved" indicator;
a later reload() resynchronises.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID, uuid4

import structlog

from splitsmart.audit import AuditLogger, create_correlation_id
from splitsmart.config import StorageSettings, get_settings
from splitsmart.ledger import (
    BalanceEngine,
    ExpenseNotFoundError,
    GroupNotFoundError,
    InvitationError,
    LedgerState,
    LedgerValidationError,
    SettlementNotFoundError,
    payment_description,
)
from splitsmart.models.audit import AuditEventType
from splitsmart.models.ledger import (
    Debtor,
    Expense,
    Group,
    Member,
    MemberStatus,
    OwedAmount,
    PaymentStatus,
    Settlement,
    User,
    ValidationIssue,
    ValidationResult,
    utc_now,
)
from splitsmart.normalization import RecordKind, RecordNormalizer, parse_amount
from splitsmart.services.bus import InMemoryChangeBus
from splitsmart.services.notifications import (
    HttpNotificationSender,
    NotificationSenderInterface,
    RetryingNotificationSender,
)
from splitsmart.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    RecordStoreInterface,
    StorageError,
)
from splitsmart.sync import ChangeCoordinator
from splitsmart.validation import LedgerValidator, is_valid_email
from splitsmart.workflow import ReminderResult, ReminderWorkflow


logger = structlog.get_logger("splitsmart.service")


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex}"


class LedgerService:
    """
    Caller-facing ledger operations.

    Owns the LedgerState; the change coordinator and reminder workflow
    share it and must run on the same event loop.
    """

    def __init__(
        self,
        store: Optional[RecordStoreInterface] = None,
        state: Optional[LedgerState] = None,
        sender: Optional[NotificationSenderInterface] = None,
        validator: Optional[LedgerValidator] = None,
        normalizer: Optional[RecordNormalizer] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[StorageSettings] = None,
    ):
        """
        Args:
            store: Record store. If None the service runs purely in memory.
            sender: Notification sender, already retrying.
                    Defaults to RetryingNotificationSender over HTTP.
        """
        self._store = store
        self._validator = validator or LedgerValidator()
        self._normalizer = normalizer or RecordNormalizer()
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().storage
        self.state = state or LedgerState(self._validator)
        self.engine = BalanceEngine(self.state)
        self.workflow = ReminderWorkflow(
            self.state,
            sender or RetryingNotificationSender(HttpNotificationSender()),
            engine=self.engine,
            audit_logger=self._audit,
        )
        self.store_available = store is not None

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _store_call(
        self,
        operation: str,
        call: Callable[[RecordStoreInterface], Awaitable[Any]],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[bool, Any]:
        """
        Run one store call with the request timeout.

        Returns (ok, result). Failures switch on degraded mode and are
        audited, never raised.
        """
        if self._store is None:
            return False, None
        try:
            result = await asyncio.wait_for(
                call(self._store),
                timeout=self._settings.request_timeout_seconds,
            )
        except (StorageError, asyncio.TimeoutError) as e:
            self.store_available = False
            await self._audit.log_store_unavailable(
                operation=operation,
                error_message=str(e) or type(e).__name__,
                correlation_id=correlation_id,
            )
            return False, None
        self.store_available = True
        return True, result

    async def _ensure_valid(
        self,
        result: ValidationResult,
        correlation_id: Optional[UUID],
    ) -> None:
        if result.is_valid:
            return
        await self._audit.log_validation_failed(
            record_kind=result.record_kind,
            record_id=result.record_id,
            issues=[issue.model_dump() for issue in result.issues],
            correlation_id=correlation_id,
        )
        raise LedgerValidationError(result)

    def _group(self, group_id: str) -> Group:
        group = self.state.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    def _expense(self, expense_id: str) -> Expense:
        expense = self.state.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(expense_id)
        return expense

    # =========================================================================
    # LOADING
    # =========================================================================

    async def reload(self) -> bool:
        """
        Replace the working set with a full load from the store.

        The only way to be sure of consistency after the change bus was
        disconnected. Returns False (and keeps the current working set)
        when the store is unavailable.
        """
        correlation_id = create_correlation_id()

        async def load_all(store: RecordStoreInterface) -> list[list[dict]]:
            return [
                await store.list_records(collection)
                for collection in ("users", "groups", "expenses", "settlements")
            ]

        ok, rows = await self._store_call("reload", load_all, correlation_id)
        if not ok:
            return False

        users, groups, expenses, settlements = rows
        rejected = self.state.replace_all(
            users=[self._normalizer.normalize(r, RecordKind.USER) for r in users],
            groups=[self._normalizer.normalize(r, RecordKind.GROUP) for r in groups],
            expenses=[self._normalizer.normalize(r, RecordKind.EXPENSE) for r in expenses],
            settlements=[
                self._normalizer.normalize(r, RecordKind.SETTLEMENT) for r in settlements
            ],
        )
        for result in rejected:
            await self._audit.log_validation_failed(
                record_kind=result.record_kind,
                record_id=result.record_id,
                issues=[issue.model_dump() for issue in result.issues],
                correlation_id=correlation_id,
            )
        await self._audit.log_ledger_reloaded(self.state.counts())
        return True

    # =========================================================================
    # USERS AND GROUPS
    # =========================================================================

    async def register_user(self, name: str, email: str, user_id: Optional[str] = None) -> User:
        """Add a user to the directory used as the fallback email source."""
        user = User(id=user_id or new_id("user"), name=name, email=email)
        await self._store_call(
            "register_user",
            lambda store: store.insert_record("users", user.to_record(json_safe=True)),
        )
        return self.state.upsert_user(user)

    async def create_group(
        self,
        name: str,
        owner: Member,
        members: tuple[Member, ...] = (),
        description: str = "",
        send_invitations: bool = True,
    ) -> Group:
        """
        Create a group. The owner joins as accepted, everyone else as
        invited and, unless disabled, receives an invitation.

        Raises:
            LedgerValidationError: Missing name or owner
        """
        correlation_id = create_correlation_id()
        owner = owner.model_copy(update={
            "id": owner.id or new_id("member"),
            "status": MemberStatus.ACCEPTED,
        })
        invitees = [
            m.model_copy(update={
                "id": m.id or new_id("member"),
                "status": MemberStatus.INVITED,
            })
            for m in members
            if m.id != owner.id
        ]
        group = Group(
            id=new_id("group"),
            name=name,
            description=description,
            members=(owner, *invitees),
            owner_id=owner.id,
            created_at=utc_now(),
        )
        await self._ensure_valid(self._validator.validate_group(group), correlation_id)

        await self._store_call(
            "create_group",
            lambda store: store.insert_record("groups", group.to_record(json_safe=True)),
            correlation_id,
        )
        self.state.upsert_group(group)
        await self._audit.log_group_created(
            group_id=group.id,
            name=group.name,
            member_count=len(group.members),
            correlation_id=correlation_id,
        )

        if send_invitations:
            await self.workflow.send_group_invitations(group, correlation_id=correlation_id)
        return group

    async def _save_group(self, group: Group, operation: str, correlation_id: UUID) -> Group:
        await self._store_call(
            operation,
            lambda store: store.update_record(
                "groups", group.id, group.to_record(json_safe=True)
            ),
            correlation_id,
        )
        return self.state.upsert_group(group)

    async def invite_member(
        self,
        group_id: str,
        email: str,
        name: str = "",
        send_invitation: bool = True,
    ) -> Member:
        """
        Add an invited member to a group. Inviting an existing member
        returns their entry unchanged.

        Raises:
            GroupNotFoundError: Unknown group
            LedgerValidationError: Malformed email
        """
        correlation_id = create_correlation_id()
        group = self._group(group_id)
        existing = group.member_by_email(email)
        if existing is not None:
            return existing

        if not is_valid_email(email):
            await self._ensure_valid(ValidationResult(
                record_kind="member",
                issues=[ValidationIssue(
                    field="email",
                    issue_type="invalid_format",
                    message=f"Not a valid email address: {email!r}",
                )],
            ), correlation_id)

        member = Member(
            id=new_id("member"),
            name=name,
            email=email,
            status=MemberStatus.INVITED,
        )
        group = await self._save_group(
            group.model_copy(update={"members": (*group.members, member)}),
            "invite_member",
            correlation_id,
        )
        await self._audit.log_member_invited(
            group_id=group.id,
            member_id=member.id,
            email=email,
            correlation_id=correlation_id,
        )
        if send_invitation:
            await self.workflow.send_group_invitations(
                group, members=[member], correlation_id=correlation_id
            )
        return member

    async def accept_invitation(self, group_id: str, email: str) -> Group:
        """
        Raises:
            GroupNotFoundError: Unknown group
            InvitationError: No pending invitation for this email
        """
        correlation_id = create_correlation_id()
        group = self._group(group_id)
        member = group.member_by_email(email)
        if member is None or member.status is not MemberStatus.INVITED:
            raise InvitationError(f"No pending invitation for {email} in group {group_id}")

        accepted = member.model_copy(update={"status": MemberStatus.ACCEPTED})
        group = await self._save_group(
            group.model_copy(update={
                "members": tuple(accepted if m.id == member.id else m for m in group.members)
            }),
            "accept_invitation",
            correlation_id,
        )
        await self._audit.log_invitation_accepted(
            group_id=group.id,
            member_id=member.id,
            correlation_id=correlation_id,
        )
        return group

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def create_expense(
        self,
        group_id: str,
        description: str,
        amount: Union[Decimal, str, int, float],
        paid_by: str,
        split_between: list[str],
        created_by: Optional[str] = None,
        date: Optional[datetime] = None,
        category: str = "Other",
    ) -> Expense:
        """
        Raises:
            GroupNotFoundError: Unknown group
            LedgerValidationError: Bad amount, empty split, missing
                description, payer or split members outside the group
        """
        correlation_id = create_correlation_id()
        group = self._group(group_id)
        expense = Expense(
            id=new_id("expense"),
            group_id=group_id,
            description=description,
            amount=parse_amount(amount),
            paid_by=paid_by,
            split_between=tuple(split_between),
            date=date or utc_now(),
            created_by=created_by or paid_by,
            category=category,
        )
        await self._ensure_valid(
            self._validator.validate_expense(expense, group), correlation_id
        )

        await self._store_call(
            "create_expense",
            lambda store: store.insert_record("expenses", expense.to_record(json_safe=True)),
            correlation_id,
        )
        self.state.upsert_expense(expense)
        await self._audit.log_expense_changed(
            event_type=AuditEventType.EXPENSE_CREATED,
            expense_id=expense.id,
            group_id=group_id,
            amount=str(expense.amount),
            correlation_id=correlation_id,
        )
        return expense

    async def _save_expense(
        self,
        expense: Expense,
        event_type: AuditEventType,
        correlation_id: UUID,
    ) -> Expense:
        await self._store_call(
            event_type.value,
            lambda store: store.update_record(
                "expenses", expense.id, expense.to_record(json_safe=True)
            ),
            correlation_id,
        )
        self.state.upsert_expense(expense)
        await self._audit.log_expense_changed(
            event_type=event_type,
            expense_id=expense.id,
            group_id=expense.group_id,
            amount=str(expense.amount),
            correlation_id=correlation_id,
        )
        return expense

    async def update_expense(
        self,
        expense_id: str,
        description: Optional[str] = None,
        amount: Optional[Union[Decimal, str, int, float]] = None,
        date: Optional[datetime] = None,
        category: Optional[str] = None,
    ) -> Expense:
        """
        Edit the description, amount, date or category of an expense.

        Raises:
            ExpenseNotFoundError: Unknown expense
            LedgerValidationError: The edit would make the expense invalid
        """
        correlation_id = create_correlation_id()
        current = self._expense(expense_id)
        changes: dict[str, Any] = {}
        if description is not None:
            changes["description"] = description
        if amount is not None:
            changes["amount"] = parse_amount(amount)
        if date is not None:
            changes["date"] = date
        if category is not None:
            changes["category"] = category
        if not changes:
            return current

        updated = Expense.model_validate({**current.model_dump(), **changes})
        await self._ensure_valid(
            self._validator.validate_expense(
                updated, self.state.get_group(updated.group_id), require_id=True
            ),
            correlation_id,
        )
        return await self._save_expense(updated, AuditEventType.EXPENSE_UPDATED, correlation_id)

    async def settle_expense(self, expense_id: str) -> Expense:
        """
        Mark a whole expense settled. It stops showing up as owed.

        Raises:
            ExpenseNotFoundError: Unknown expense
        """
        expense = self._expense(expense_id)
        if expense.settled:
            return expense
        return await self._save_expense(
            expense.model_copy(update={"settled": True}),
            AuditEventType.EXPENSE_SETTLED,
            create_correlation_id(),
        )

    async def delete_expense(self, expense_id: str) -> Expense:
        """
        Raises:
            ExpenseNotFoundError: Unknown expense
        """
        correlation_id = create_correlation_id()
        expense = self._expense(expense_id)
        await self._store_call(
            "delete_expense",
            lambda store: store.delete_record("expenses", expense_id),
            correlation_id,
        )
        self.state.remove_expense(expense_id)
        await self._audit.log_expense_changed(
            event_type=AuditEventType.EXPENSE_DELETED,
            expense_id=expense_id,
            group_id=expense.group_id,
            amount=str(expense.amount),
            correlation_id=correlation_id,
        )
        return expense

    # =========================================================================
    # SETTLEMENTS
    # =========================================================================

    async def record_settlement(
        self,
        group_id: str,
        from_member: str,
        to_member: str,
        amount: Union[Decimal, str, int, float],
        description: str = "",
        expense_id: Optional[str] = None,
    ) -> Settlement:
        """
        Record a claimed payment. It does not affect balances until the
        recipient confirms it.

        Raises:
            GroupNotFoundError: Unknown group
            LedgerValidationError: Bad amount, parties missing, identical
                or outside the group
        """
        correlation_id = create_correlation_id()
        group = self._group(group_id)
        settlement = Settlement(
            id=new_id("settlement"),
            group_id=group_id,
            from_member=from_member,
            to_member=to_member,
            amount=parse_amount(amount),
            date=utc_now(),
            confirmed=False,
            description=description,
            expense_id=expense_id,
        )
        await self._ensure_valid(
            self._validator.validate_settlement(settlement, group), correlation_id
        )

        await self._store_call(
            "record_settlement",
            lambda store: store.insert_record(
                "settlements", settlement.to_record(json_safe=True)
            ),
            correlation_id,
        )
        self.state.upsert_settlement(settlement)
        await self._audit.log_settlement_changed(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            settlement_id=settlement.id,
            from_member=from_member,
            to_member=to_member,
            amount=str(settlement.amount),
            correlation_id=correlation_id,
        )
        return settlement

    async def pay_for_expense(self, expense_id: str, member_id: str) -> Settlement:
        """
        Record a settlement for the member's share of one expense,
        payable to the expense's payer.

        Raises:
            ExpenseNotFoundError: Unknown expense
            LedgerValidationError: The member has no unpaid share
        """
        expense = self._expense(expense_id)
        status = self.engine.payment_status_for_expense(expense_id, member_id)
        if status is not PaymentStatus.UNPAID:
            await self._ensure_valid(ValidationResult(
                record_kind="settlement",
                issues=[ValidationIssue(
                    field="from_member",
                    issue_type=f"payment_{status.value}",
                    message=f"{member_id} has no unpaid share of {expense_id} ({status.value})",
                )],
            ), None)

        return await self.record_settlement(
            group_id=expense.group_id,
            from_member=member_id,
            to_member=expense.paid_by,
            amount=self.engine.amount_owed_for_expense(expense_id, member_id),
            description=payment_description(expense),
            expense_id=expense_id,
        )

    async def confirm_settlement(self, settlement_id: str, notify: bool = True) -> Settlement:
        """
        Confirm receipt of a settlement; from now on it moves balances.
        Confirming an already confirmed settlement changes nothing and
        sends nothing.

        Raises:
            SettlementNotFoundError: Unknown settlement
        """
        correlation_id = create_correlation_id()
        before = self.state.get_settlement(settlement_id)
        settlement = self.workflow.confirm_settlement(settlement_id)
        if before is not None and before.confirmed:
            return settlement

        await self._store_call(
            "confirm_settlement",
            lambda store: store.update_record(
                "settlements", settlement_id, {"confirmed": True}
            ),
            correlation_id,
        )
        await self._audit.log_settlement_changed(
            event_type=AuditEventType.SETTLEMENT_CONFIRMED,
            settlement_id=settlement.id,
            from_member=settlement.from_member,
            to_member=settlement.to_member,
            amount=str(settlement.amount),
            correlation_id=correlation_id,
        )
        if notify:
            await self.workflow.send_settlement_confirmation(settlement, correlation_id)
        return settlement

    async def delete_settlement(self, settlement_id: str) -> Settlement:
        """
        Raises:
            SettlementNotFoundError: Unknown settlement
        """
        correlation_id = create_correlation_id()
        settlement = self.state.get_settlement(settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(settlement_id)
        await self._store_call(
            "delete_settlement",
            lambda store: store.delete_record("settlements", settlement_id),
            correlation_id,
        )
        self.state.remove_settlement(settlement_id)
        await self._audit.log_settlement_changed(
            event_type=AuditEventType.SETTLEMENT_DELETED,
            settlement_id=settlement.id,
            from_member=settlement.from_member,
            to_member=settlement.to_member,
            amount=str(settlement.amount),
            correlation_id=correlation_id,
        )
        return settlement

    # =========================================================================
    # READS AND REMINDERS
    # =========================================================================

    def balances(self, group_id: str) -> dict[str, Decimal]:
        return self.engine.calculate_balances(group_id)

    def debtors(self, group_id: str) -> list[Debtor]:
        return self.workflow.select_debtors(group_id)

    def owed_amounts(self, member_id: str) -> list[OwedAmount]:
        return self.engine.owed_amounts(member_id)

    async def send_payment_reminders(self, group_id: str) -> list[ReminderResult]:
        self._group(group_id)
        return await self.workflow.send_payment_reminders(
            group_id, correlation_id=create_correlation_id()
        )

    async def send_expense_reminders(self, expense_id: str) -> list[ReminderResult]:
        return await self.workflow.send_expense_reminders(
            expense_id, correlation_id=create_correlation_id()
        )


def create_ledger_components(
    use_storage: bool = True,
) -> tuple[LedgerService, ChangeCoordinator, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize the configured record store.
                    Set to False to run purely in memory.

    Returns:
        (ledger_service, change_coordinator, sheets_client)
    """
    settings = get_settings()
    sheets_client = None
    store: Optional[RecordStoreInterface] = None
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage:
        if settings.storage.backend == "google_sheets":
            try:
                sheets_client = GoogleSheetsClient()
                store = GoogleSheetsRecordStore(sheets_client)
                audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
            except Exception as e:
                # Storage not configured - continue without it
                logger.warning("storage_not_configured", error=str(e))
                sheets_client = None
                store = None
        else:
            store = InMemoryRecordStore()

    service = LedgerService(store=store, audit_logger=audit_logger)
    coordinator = ChangeCoordinator(
        service.state,
        InMemoryChangeBus(),
        engine=service.engine,
        audit_logger=audit_logger,
    )
    logger.info(
        "ledger_components_created",
        environment=settings.app.app_environment,
        backend=settings.storage.backend if store else None,
    )
    return service, coordinator, sheets_client
