"""
Shared fixtures.

No test touches the network: the record store and change bus are the
in-memory implementations and notifications go to FakeSender.
"""

from decimal import Decimal

import pytest

from splitsmart.audit import AuditLogger
from splitsmart.config import (
    LedgerSettings,
    NotificationSettings,
    StorageSettings,
    SyncSettings,
)
from splitsmart.ledger import BalanceEngine, LedgerState
from splitsmart.models.ledger import Group, Member
from splitsmart.normalization import RecordNormalizer
from splitsmart.services.storage import InMemoryAuditStorage
from tests.factories import FIXED_NOW, FakeSender


@pytest.fixture
def group() -> Group:
    return Group(
        id="g1",
        name="Goa Trip",
        owner_id="A",
        members=(
            Member(id="A", name="Asha", email="asha@example.com"),
            Member(id="B", name="Bala", email="bala@example.com"),
            Member(id="C", name="Chitra", email="chitra@example.com"),
        ),
        created_at=FIXED_NOW,
    )


@pytest.fixture
def state(group) -> LedgerState:
    ledger = LedgerState()
    ledger.upsert_group(group)
    return ledger


@pytest.fixture
def engine(state) -> BalanceEngine:
    return BalanceEngine(state, quantum=Decimal("0.01"))


@pytest.fixture
def normalizer() -> RecordNormalizer:
    return RecordNormalizer(clock=lambda: FIXED_NOW)


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def notification_settings() -> NotificationSettings:
    return NotificationSettings(
        max_attempts=3,
        retry_delay_seconds=0,
        app_base_url="https://splitsmart.test",
    )


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(currency_symbol="₹")


@pytest.fixture
def sync_settings() -> SyncSettings:
    return SyncSettings(reconnect_attempts=3, reconnect_delay_seconds=0)


@pytest.fixture
def storage_settings() -> StorageSettings:
    return StorageSettings(request_timeout_seconds=0.5)
