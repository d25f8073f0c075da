"""
Change Propagation Coordinator

Keeps the local working set current while other clients write to the
record store. The change bus delivers row-level events; each one is parsed
into a ChangeEvent and reconciled by a single function, apply().

RECONCILIATION RULES:
- insert: new id is appended; a known id is treated as an update, so
  re-delivery and the echo of our own writes are harmless
- update: present fields are merged into the known record; unknown id is
  logged and ignored
- delete: unknown id is logged and ignored
- payloads without an id or breaking ledger invariants are rejected

None of this raises: under eventual consistency an update can legitimately
arrive for a record we never saw.

CONNECTIVITY: On a dropped connection every collection goes back to
DISCONNECTED and the coordinator reconnects (bounded attempts, fixed delay)
and subscribes again. Events missed while disconnected are NOT recovered;
callers that need certainty reload from the store.
"""

from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from splitsmart.audit import AuditLogger
from splitsmart.config import SyncSettings, get_settings
from splitsmart.ledger import BalanceEngine, LedgerState, LedgerValidationError
from splitsmart.models.changes import (
    ChangeEvent,
    ChangeOperation,
    CollectionType,
    ConnectionState,
    ReconcileOutcome,
)
from splitsmart.normalization import KIND_BY_COLLECTION, RecordNormalizer, raw_record_id
from splitsmart.services.bus import BusDisconnectedError, BusError, ChangeBusInterface


logger = structlog.get_logger("splitsmart.sync")


class ChangeCoordinator:
    """
    Subscribes to the change bus and applies events to a LedgerState.

    Usage:
        coordinator = ChangeCoordinator(state, bus)
        task = asyncio.create_task(coordinator.run())
        ...
        await coordinator.stop()
    """

    def __init__(
        self,
        state: LedgerState,
        bus: ChangeBusInterface,
        normalizer: Optional[RecordNormalizer] = None,
        engine: Optional[BalanceEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SyncSettings] = None,
    ):
        self._state = state
        self._bus = bus
        self._normalizer = normalizer or RecordNormalizer()
        self._engine = engine or BalanceEngine(state)
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().sync
        self._collections = [
            CollectionType.parse(name) for name in self._settings.collections
        ]
        self._connection: dict[CollectionType, ConnectionState] = {
            c: ConnectionState.DISCONNECTED for c in self._collections
        }
        self._running = False

        # collection -> (upsert, merge, remove, get)
        self._handlers: dict[CollectionType, tuple[Callable, ...]] = {
            CollectionType.USERS: (
                state.upsert_user, state.merge_user, state.remove_user, state.get_user,
            ),
            CollectionType.GROUPS: (
                state.upsert_group, state.merge_group, state.remove_group, state.get_group,
            ),
            CollectionType.EXPENSES: (
                state.upsert_expense, state.merge_expense,
                state.remove_expense, state.get_expense,
            ),
            CollectionType.SETTLEMENTS: (
                state.upsert_settlement, state.merge_settlement,
                state.remove_settlement, state.get_settlement,
            ),
        }

    # =========================================================================
    # CONNECTION STATE
    # =========================================================================

    @property
    def connection_states(self) -> dict[CollectionType, ConnectionState]:
        return dict(self._connection)

    @property
    def is_connected(self) -> bool:
        return all(s is ConnectionState.CONNECTED for s in self._connection.values())

    def _mark(self, state: ConnectionState) -> None:
        for collection in self._connection:
            self._connection[collection] = state

    async def connect(self) -> None:
        """
        Connect once and subscribe to the configured collections.

        Raises:
            BusError: The bus refused the connection or subscription
        """
        self._mark(ConnectionState.CONNECTING)
        try:
            await self._bus.connect()
            await self._bus.subscribe([c.value for c in self._collections])
        except BusError:
            self._mark(ConnectionState.DISCONNECTED)
            raise
        self._mark(ConnectionState.CONNECTED)
        await self._audit.log_bus_state(True, [c.value for c in self._collections])

    async def _connect_with_retry(self) -> bool:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._settings.reconnect_attempts),
                wait=wait_fixed(self._settings.reconnect_delay_seconds),
                retry=retry_if_exception_type(BusError),
                reraise=True,
            ):
                with attempt:
                    await self.connect()
        except BusError as e:
            logger.error(
                "bus_reconnect_exhausted",
                attempts=self._settings.reconnect_attempts,
                error=str(e),
            )
            return False
        return True

    # =========================================================================
    # EVENT LOOP
    # =========================================================================

    async def run(self) -> None:
        """
        Receive and apply events until stop() is called or reconnecting
        fails `reconnect_attempts` times in a row.
        """
        self._running = True
        try:
            while self._running:
                if not await self._connect_with_retry():
                    break
                try:
                    while self._running:
                        message = await self._bus.receive()
                        await self.apply_message(message)
                except BusDisconnectedError:
                    self._mark(ConnectionState.DISCONNECTED)
                    if self._running:
                        await self._audit.log_bus_state(
                            False, [c.value for c in self._collections]
                        )
        finally:
            self._running = False
            self._mark(ConnectionState.DISCONNECTED)

    async def stop(self) -> None:
        self._running = False
        await self._bus.disconnect()

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def apply_message(self, message: Mapping[str, Any]) -> ReconcileOutcome:
        """Parse a raw bus message and apply it."""
        try:
            event = ChangeEvent.from_wire(message)
        except ValueError as e:
            fields = message if isinstance(message, Mapping) else {}
            await self._audit.log_change_ignored(
                collection=str(fields.get("type") or fields.get("collection") or ""),
                operation=str(fields.get("operation") or ""),
                record_id=None,
                reason=f"Unparseable change message: {e}",
            )
            return ReconcileOutcome.REJECTED
        return await self.apply(event)

    async def apply(self, event: ChangeEvent) -> ReconcileOutcome:
        """Apply one change event to the working set. Never raises."""
        record_id = raw_record_id(event.payload)
        outcome, reason = self._reconcile(event, record_id)

        if outcome in (ReconcileOutcome.IGNORED, ReconcileOutcome.REJECTED):
            await self._audit.log_change_ignored(
                collection=event.collection.value,
                operation=event.operation.value,
                record_id=record_id or None,
                reason=reason,
            )
        else:
            await self._audit.log_change_applied(
                collection=event.collection.value,
                operation=event.operation.value,
                record_id=record_id,
                outcome=outcome.value,
            )
        return outcome

    def _reconcile(self, event: ChangeEvent, record_id: str) -> tuple[ReconcileOutcome, str]:
        if not record_id:
            return ReconcileOutcome.REJECTED, "payload has no id"

        upsert, merge, remove, get = self._handlers[event.collection]
        kind = KIND_BY_COLLECTION[event.collection]

        try:
            if event.operation is ChangeOperation.DELETE:
                if remove(record_id) is None:
                    return ReconcileOutcome.IGNORED, "unknown id"
                return ReconcileOutcome.DELETED, ""

            if event.operation is ChangeOperation.INSERT and get(record_id) is None:
                upsert(self._normalizer.normalize(event.payload, kind))
                return ReconcileOutcome.INSERTED, ""

            fields = self._normalizer.extract_fields(event.payload, kind)
            if merge(record_id, fields) is None:
                return ReconcileOutcome.IGNORED, "unknown id"
            return ReconcileOutcome.UPDATED, ""
        except LedgerValidationError as e:
            return ReconcileOutcome.REJECTED, e.result.summary()

    # =========================================================================
    # READS
    # =========================================================================

    def balances(self, group_id: str) -> dict[str, Decimal]:
        """Current balances of a group, refolded from the working set."""
        return self._engine.calculate_balances(group_id)
