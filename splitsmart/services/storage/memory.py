"""
In-Memory Storage Implementation

Used for tests and for running the ledger without a configured backend.
Follows the same interfaces as the Google Sheets storage, so business
logic cannot tell the difference.

`available` can be switched off to simulate a store outage.
"""

import copy
from typing import Optional
from uuid import UUID, uuid4

from splitsmart.models.audit import AuditEvent
from splitsmart.models.ledger import utc_now
from splitsmart.normalization.normalizer import raw_group_id, raw_record_id
from splitsmart.services.storage.interface import (
    COLLECTIONS,
    AuditStorageInterface,
    DuplicateError,
    RawRecord,
    RecordStoreInterface,
    StoreUnavailableError,
    check_collection,
)


def new_record_id(collection: str) -> str:
    """Ids look like `expense-3f2a...`."""
    return f"{collection.rstrip('s')}-{uuid4().hex[:12]}"


class InMemoryRecordStore(RecordStoreInterface):
    """
    Dict-backed record store.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, seed: Optional[dict[str, list[RawRecord]]] = None):
        self._collections: dict[str, dict[str, RawRecord]] = {
            name: {} for name in COLLECTIONS
        }
        self.available = True
        for collection, records in (seed or {}).items():
            for record in records:
                record = copy.deepcopy(record)
                self._collections[check_collection(collection)][raw_record_id(record)] = record

    def _table(self, collection: str) -> dict[str, RawRecord]:
        if not self.available:
            raise StoreUnavailableError("In-memory store is marked unavailable")
        return self._collections[check_collection(collection)]

    async def list_records(
        self,
        collection: str,
        group_id: Optional[str] = None,
    ) -> list[RawRecord]:
        records = self._table(collection).values()
        if group_id is not None:
            records = [r for r in records if raw_group_id(r) == group_id]
        return [copy.deepcopy(r) for r in records]

    async def get_record(self, collection: str, record_id: str) -> Optional[RawRecord]:
        record = self._table(collection).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def insert_record(self, collection: str, record: RawRecord) -> RawRecord:
        table = self._table(collection)
        record = copy.deepcopy(record)
        record_id = raw_record_id(record)
        if not record_id:
            record_id = new_record_id(collection)
            record["id"] = record_id
        if record_id in table:
            raise DuplicateError(f"{collection} record already exists: {record_id}")
        table[record_id] = record
        return copy.deepcopy(record)

    async def update_record(
        self,
        collection: str,
        record_id: str,
        partial: RawRecord,
    ) -> Optional[RawRecord]:
        table = self._table(collection)
        if record_id not in table:
            return None
        merged = {**table[record_id], **copy.deepcopy(partial)}
        merged["updatedAt"] = utc_now().isoformat()
        table[record_id] = merged
        return copy.deepcopy(merged)

    async def delete_record(self, collection: str, record_id: str) -> bool:
        return self._table(collection).pop(record_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
