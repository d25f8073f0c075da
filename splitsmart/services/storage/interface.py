"""
Abstract Storage Interface

DESIGN DECISION: The ledger never talks to a concrete database.
The persistence store is an external collaborator with a small,
collection-oriented contract. This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing and offline mode
3. Keep the ledger logic decoupled from storage implementation

Records crossing this boundary are loosely typed mappings. Their field
names may come in several casings; making them canonical is the job of
the normalizer, not of the store.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from splitsmart.models.audit import AuditEvent


COLLECTIONS = ("users", "groups", "expenses", "settlements")

RawRecord = dict[str, Any]


class RecordStoreInterface(ABC):
    """
    Abstract interface for the persistence store.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods for the collections in COLLECTIONS.
    """

    @abstractmethod
    async def list_records(
        self,
        collection: str,
        group_id: Optional[str] = None,
    ) -> list[RawRecord]:
        """
        List records of a collection.

        Args:
            collection: One of COLLECTIONS
            group_id: Only return records belonging to this group

        Returns:
            Raw records in store order

        Raises:
            StorageError: If the store cannot be read
        """
        pass

    @abstractmethod
    async def get_record(self, collection: str, record_id: str) -> Optional[RawRecord]:
        """
        Retrieve a record by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert_record(self, collection: str, record: RawRecord) -> RawRecord:
        """
        Insert a record.

        The store assigns an id when the record has none.

        Returns:
            The record as stored

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        collection: str,
        record_id: str,
        partial: RawRecord,
    ) -> Optional[RawRecord]:
        """
        Merge `partial` into an existing record.

        Returns:
            The updated record, or None if no record has this id
        """
        pass

    @abstractmethod
    async def delete_record(self, collection: str, record_id: str) -> bool:
        """
        Delete a record by ID.

        Returns:
            True if a record was deleted, False if none had this id
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StoreUnavailableError(StorageError):
    """Could not reach the storage backend."""
    pass


def check_collection(collection: str) -> str:
    if collection not in COLLECTIONS:
        raise StorageError(f"Unknown collection: {collection}")
    return collection
