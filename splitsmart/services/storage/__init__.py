"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the record
store and the audit log. In-memory and Google Sheets backends are
interchangeable behind the interfaces.
"""

from splitsmart.services.storage.interface import (
    COLLECTIONS,
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RawRecord,
    RecordStoreInterface,
    StorageError,
    StoreUnavailableError,
)
from splitsmart.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
    new_record_id,
)
from splitsmart.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    "COLLECTIONS",
    "RawRecord",
    # Interfaces
    "AuditStorageInterface",
    "RecordStoreInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "new_record_id",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
]
