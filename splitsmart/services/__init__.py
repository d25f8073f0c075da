"""Services package."""

from splitsmart.services.bus import (
    BusDisconnectedError,
    BusError,
    ChangeBusInterface,
    InMemoryChangeBus,
)
from splitsmart.services.notifications import (
    HttpNotificationSender,
    NotificationKind,
    NotificationSenderInterface,
    NotificationSendError,
    RetryingNotificationSender,
    SendResult,
)
from splitsmart.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
    StoreUnavailableError,
)

__all__ = [
    # Change bus
    "BusDisconnectedError",
    "BusError",
    "ChangeBusInterface",
    "InMemoryChangeBus",
    # Notifications
    "HttpNotificationSender",
    "NotificationKind",
    "NotificationSenderInterface",
    "NotificationSendError",
    "RetryingNotificationSender",
    "SendResult",
    # Storage services
    "AuditStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordStoreInterface",
    "StorageError",
    "StoreUnavailableError",
]
