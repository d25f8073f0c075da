"""Tests for the record stores and the HTTP notification sender."""

import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from splitsmart.config import NotificationSettings
from splitsmart.models.audit import AuditEventBuilder
from splitsmart.services.notifications import (
    HttpNotificationSender,
    NotificationKind,
    NotificationSendError,
)
from splitsmart.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    StorageError,
    StoreUnavailableError,
)
from splitsmart.services.storage.google_sheets import RECORD_COLUMNS


def run(coro):
    return asyncio.run(coro)


class TestInMemoryRecordStore:
    """Tests for the dict-backed store."""

    def test_insert_assigns_id(self):
        store = InMemoryRecordStore()
        record = run(store.insert_record("expenses", {"amount": "10"}))
        assert record["id"].startswith("expense-")
        assert run(store.get_record("expenses", record["id"]))["amount"] == "10"

    def test_duplicate_id(self):
        store = InMemoryRecordStore()
        run(store.insert_record("groups", {"id": "g1"}))
        with pytest.raises(DuplicateError):
            run(store.insert_record("groups", {"ID": "g1"}))

    def test_list_by_group_any_casing(self):
        store = InMemoryRecordStore(seed={"expenses": [
            {"id": "e1", "groupId": "g1"},
            {"id": "e2", "GROUP_ID": "g2"},
            {"id": "e3", "group_id": "g1"},
        ]})
        records = run(store.list_records("expenses", group_id="g1"))
        assert [r["id"] for r in records] == ["e1", "e3"]

    def test_update_merges(self):
        store = InMemoryRecordStore(seed={"settlements": [{"id": "s1", "amount": 30}]})
        updated = run(store.update_record("settlements", "s1", {"confirmed": True}))
        assert updated["amount"] == 30
        assert updated["confirmed"] is True
        assert "updatedAt" in updated
        assert run(store.update_record("settlements", "s9", {"confirmed": True})) is None

    def test_delete(self):
        store = InMemoryRecordStore(seed={"users": [{"id": "u1"}]})
        assert run(store.delete_record("users", "u1")) is True
        assert run(store.delete_record("users", "u1")) is False

    def test_returned_records_are_copies(self):
        store = InMemoryRecordStore(seed={"groups": [{"id": "g1", "members": ["A"]}]})
        record = run(store.get_record("groups", "g1"))
        record["members"].append("B")
        assert run(store.get_record("groups", "g1"))["members"] == ["A"]

    def test_unknown_collection(self):
        with pytest.raises(StorageError):
            run(InMemoryRecordStore().list_records("invoices"))

    def test_unavailable(self):
        store = InMemoryRecordStore()
        store.available = False
        with pytest.raises(StoreUnavailableError):
            run(store.list_records("users"))


class TestGoogleSheetsRecordStore:
    """Tests for the sheet-backed store against a mocked worksheet."""

    @pytest.fixture
    def sheet(self):
        sheet = MagicMock()
        sheet.get_all_values.return_value = [
            RECORD_COLUMNS,
            ["e1", "g1", "2024-06-01T12:00:00+00:00", json.dumps({"id": "e1", "groupId": "g1", "amount": "90"})],
            ["e2", "g2", "2024-06-01T12:00:00+00:00", json.dumps({"id": "e2", "groupId": "g2"})],
            ["e3", "g1", "2024-06-01T12:00:00+00:00", "{not json"],
            ["", "", "", ""],
        ]
        return sheet

    @pytest.fixture
    def store(self, sheet):
        client = MagicMock()
        client.get_collection_sheet.return_value = sheet
        return GoogleSheetsRecordStore(client)

    def test_list_skips_broken_rows(self, store):
        records = run(store.list_records("expenses"))
        assert [r["id"] for r in records] == ["e1", "e2"]

    def test_list_by_group(self, store):
        records = run(store.list_records("expenses", group_id="g1"))
        assert records == [{"id": "e1", "groupId": "g1", "amount": "90"}]

    def test_get(self, store):
        assert run(store.get_record("expenses", "e2"))["groupId"] == "g2"
        assert run(store.get_record("expenses", "e9")) is None

    def test_insert_appends_row(self, store, sheet):
        run(store.insert_record("expenses", {"id": "e4", "group_id": "g1", "amount": "5"}))
        row = sheet.append_row.call_args.args[0]
        assert row[0] == "e4"
        assert row[1] == "g1"
        assert json.loads(row[3])["amount"] == "5"

    def test_insert_duplicate(self, store):
        with pytest.raises(DuplicateError):
            run(store.insert_record("expenses", {"id": "e1"}))

    def test_update_rewrites_row(self, store, sheet):
        merged = run(store.update_record("expenses", "e2", {"amount": "40"}))
        assert merged["amount"] == "40"
        assert merged["groupId"] == "g2"
        # Row 3: header plus e1 come first
        assert {c.args[0] for c in sheet.update_cell.call_args_list} == {3}

    def test_delete(self, store, sheet):
        assert run(store.delete_record("expenses", "e1")) is True
        sheet.delete_rows.assert_called_once_with(2)
        assert run(store.delete_record("expenses", "e9")) is False

    def test_api_failure_becomes_storage_error(self, store, sheet):
        sheet.get_all_values.side_effect = RuntimeError("quota exceeded")
        with pytest.raises(StorageError, match="quota exceeded"):
            run(store.list_records("expenses"))


class TestGoogleSheetsAuditStorage:
    """Tests for the audit sheet."""

    def test_append_and_read_back(self):
        event = AuditEventBuilder.change_ignored("expenses", "update", "e9", "unknown id")
        sheet = MagicMock()
        sheet.get_all_values.return_value = [["event_id"], event.to_sheets_row(), ["junk", "row"]]
        client = MagicMock()
        client.get_audit_sheet.return_value = sheet
        storage = GoogleSheetsAuditStorage(client)

        assert run(storage.append_event(event)) is True
        sheet.append_row.assert_called_once()

        events = run(storage.get_events_by_entity("expenses", "e9"))
        assert [e.event_id for e in events] == [event.event_id]
        assert events[0].details["reason"] == "unknown id"

    def test_append_failure(self):
        client = MagicMock()
        client.get_audit_sheet.side_effect = RuntimeError("offline")
        with pytest.raises(StorageError):
            run(GoogleSheetsAuditStorage(client).append_event(
                AuditEventBuilder.ledger_reloaded({"users": 0})
            ))


class TestHttpNotificationSender:
    """Tests for delivery over HTTP with a mocked transport."""

    @pytest.fixture
    def settings(self):
        return NotificationSettings(
            endpoint_url="https://mail.test/api/notifications",
            api_key="secret",
        )

    def send(self, settings, handler, params=None):
        sender = HttpNotificationSender(settings, transport=httpx.MockTransport(handler))
        return run(sender.send(
            NotificationKind.PAYMENT_REMINDER,
            params or {"to": "bala@example.com", "amount_owed": "₹30.00"},
        ))

    def test_success(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "messageId": "m-1"})

        result = self.send(settings, handler)
        assert result.success is True
        assert result.message_id == "m-1"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {
            "kind": "payment_reminder",
            "params": {"to": "bala@example.com", "amountOwed": "₹30.00"},
        }

    def test_http_error_status(self, settings):
        with pytest.raises(NotificationSendError, match="503"):
            self.send(settings, lambda request: httpx.Response(503))

    def test_reported_failure(self, settings):
        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "mailbox full"})

        with pytest.raises(NotificationSendError, match="mailbox full"):
            self.send(settings, handler)

    def test_connection_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NotificationSendError):
            self.send(settings, handler)

    def test_invalid_json(self, settings):
        with pytest.raises(NotificationSendError):
            self.send(settings, lambda request: httpx.Response(200, content=b"<html>"))
