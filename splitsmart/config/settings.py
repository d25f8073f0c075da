"""
Configuration Management for SplitSmart Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every external collaborator (record store, change bus, notification
endpoint) is configured in one place and validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Numeric policy for balance computation."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITSMART_LEDGER_",
        extra="ignore"
    )

    currency_quantum: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Smallest currency unit amounts are rounded to"
    )
    currency_symbol: str = Field(
        default="₹",
        description="Symbol used when formatting amounts in notifications"
    )


class StorageSettings(BaseSettings):
    """Persistence store selection and request limits."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITSMART_STORAGE_",
        extra="ignore"
    )

    backend: Literal["memory", "google_sheets"] = Field(
        default="memory",
        description="Which record store implementation to use"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for a single record store call"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets record store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class NotificationSettings(BaseSettings):
    """Outbound notification (email) delivery configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITSMART_NOTIFY_",
        extra="ignore"
    )

    endpoint_url: str = Field(
        default="http://localhost:40001/api/notifications",
        description="HTTP endpoint that delivers notification messages"
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Bearer token sent to the notification endpoint"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for a single delivery request"
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Delivery attempts before a send is reported as failed"
    )
    retry_delay_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Fixed delay between delivery attempts"
    )
    app_base_url: str = Field(
        default="http://localhost:8081",
        description="Base URL used for payment and invitation links"
    )


class SyncSettings(BaseSettings):
    """Change-notification bus subscription settings."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITSMART_SYNC_",
        extra="ignore"
    )

    collections: list[str] = Field(
        default_factory=lambda: ["users", "groups", "expenses", "settlements"],
        description="Collections to subscribe to on connect"
    )
    reconnect_attempts: int = Field(
        default=5,
        ge=1,
        description="Reconnect attempts after the bus drops"
    )
    reconnect_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay between reconnect attempts"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    `<name>_error` entries for the groups that failed to load.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "storage", "google_sheets", "notifications", "sync", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
