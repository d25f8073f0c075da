"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets can back the record store for small groups:
1. Group owners can inspect the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a handful of groups)
- No transactions (a write is a single row operation)
- Limited query capabilities (we filter in Python)

Each collection lives in its own worksheet. A row holds the id, the group
id (for filtering), the last update time and the whole record as JSON, so
records keep whatever key casing the writer used and the normalizer sorts
it out on the way in.
"""

import asyncio
import json
from datetime import datetime
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from splitsmart.config import GoogleSheetsSettings, get_settings
from splitsmart.models.audit import AuditEvent, AuditEventType, AuditSeverity
from splitsmart.models.ledger import utc_now
from splitsmart.normalization.normalizer import raw_group_id, raw_record_id
from splitsmart.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    RawRecord,
    RecordStoreInterface,
    StorageError,
    StoreUnavailableError,
    check_collection,
)
from splitsmart.services.storage.memory import new_record_id


RECORD_COLUMNS = [
    "id",
    "group_id",
    "updated_at",
    "record_json",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StoreUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreUnavailableError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise StoreUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet of one collection."""
        return self._get_or_create_sheet(check_collection(collection), RECORD_COLUMNS, 1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000
        )


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    gspread is synchronous; calls run in a worker thread so a slow sheet
    cannot stall the event loop and callers can time them out.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _record_to_row(record: RawRecord) -> list:
        return [
            raw_record_id(record),
            raw_group_id(record),
            utc_now().isoformat(),
            json.dumps(record, default=str),
        ]

    @staticmethod
    def _row_to_record(row: list) -> Optional[RawRecord]:
        if len(row) < 4 or not row[3]:
            return None
        try:
            record = json.loads(row[3])
        except json.JSONDecodeError:
            return None
        return record if isinstance(record, dict) else None

    def _rows(self, collection: str) -> tuple[gspread.Worksheet, list[list]]:
        sheet = self._client.get_collection_sheet(collection)
        return sheet, sheet.get_all_values()

    @staticmethod
    def _find(rows: list[list], record_id: str) -> Optional[int]:
        """1-based sheet row index of a record (row 1 is the header)."""
        for idx, row in enumerate(rows[1:], start=2):
            if row and row[0] == record_id:
                return idx
        return None

    def _list(self, collection: str, group_id: Optional[str]) -> list[RawRecord]:
        _, rows = self._rows(collection)
        records = []
        for row in rows[1:]:
            if not row or not row[0]:  # Skip empty rows
                continue
            if group_id is not None and row[1] != group_id:
                continue
            record = self._row_to_record(row)
            if record is not None:
                records.append(record)
        return records

    def _get(self, collection: str, record_id: str) -> Optional[RawRecord]:
        _, rows = self._rows(collection)
        idx = self._find(rows, record_id)
        return self._row_to_record(rows[idx - 1]) if idx else None

    def _insert(self, collection: str, record: RawRecord) -> RawRecord:
        sheet, rows = self._rows(collection)
        record = dict(record)
        if not raw_record_id(record):
            record["id"] = new_record_id(collection)
        record_id = raw_record_id(record)
        if self._find(rows, record_id):
            raise DuplicateError(f"{collection} record already exists: {record_id}")
        sheet.append_row(self._record_to_row(record), value_input_option="RAW")
        return record

    def _update(
        self,
        collection: str,
        record_id: str,
        partial: RawRecord,
    ) -> Optional[RawRecord]:
        sheet, rows = self._rows(collection)
        idx = self._find(rows, record_id)
        if idx is None:
            return None
        merged = {**(self._row_to_record(rows[idx - 1]) or {}), **partial}
        merged["updatedAt"] = utc_now().isoformat()
        for col_idx, value in enumerate(self._record_to_row(merged), start=1):
            sheet.update_cell(idx, col_idx, value)
        return merged

    def _delete(self, collection: str, record_id: str) -> bool:
        sheet, rows = self._rows(collection)
        idx = self._find(rows, record_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True

    async def _call(self, action: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to {action}: {e}")

    async def list_records(
        self,
        collection: str,
        group_id: Optional[str] = None,
    ) -> list[RawRecord]:
        return await self._call(f"list {collection}", self._list, collection, group_id)

    async def get_record(self, collection: str, record_id: str) -> Optional[RawRecord]:
        return await self._call(f"get {collection} record", self._get, collection, record_id)

    async def insert_record(self, collection: str, record: RawRecord) -> RawRecord:
        return await self._call(f"insert {collection} record", self._insert, collection, record)

    async def update_record(
        self,
        collection: str,
        record_id: str,
        partial: RawRecord,
    ) -> Optional[RawRecord]:
        return await self._call(
            f"update {collection} record", self._update, collection, record_id, partial
        )

    async def delete_record(self, collection: str, record_id: str) -> bool:
        return await self._call(
            f"delete {collection} record", self._delete, collection, record_id
        )


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _events(self, keep) -> list[AuditEvent]:
        all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        events = []
        for row in all_rows:
            if row and row[0] and keep(row):
                try:
                    events.append(self._row_to_event(row))
                except (ValueError, IndexError):
                    continue  # Skip malformed rows
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._events(
                lambda row: len(row) > 6 and row[6] == str(correlation_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = self._events(
                lambda row: len(row) > 5 and row[4] == entity_type and row[5] == entity_id
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._events(lambda row: True)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
