"""
Shared fixtures.

Every test gets a fresh in-memory store and audit log, and retries
without backoff so conflict tests run instantly.
"""

import pytest

from walletledger.config import LedgerSettings
from walletledger.models.audit import AuditEventType
from walletledger.orchestrator import build_app
from walletledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStore


USER = "user-1"
OTHER_USER = "user-2"


@pytest.fixture
def settings():
    return LedgerSettings(
        max_conflict_retries=5,
        retry_wait_min_seconds=0.0,
        retry_wait_max_seconds=0.0,
    )


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def app(store, audit_storage, settings):
    return build_app(store, audit_storage, settings=settings)


async def events_of(audit_storage, event_type: AuditEventType):
    """Audit events of one type, oldest first."""
    events = await audit_storage.get_recent_events(limit=10_000)
    return [e for e in reversed(events) if e.event_type == event_type]
