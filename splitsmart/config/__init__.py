"""Configuration package."""

from splitsmart.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    NotificationSettings,
    Settings,
    StorageSettings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "NotificationSettings",
    "Settings",
    "StorageSettings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
