"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
Ships an in-memory backend and a Google Sheets backend behind one interface.
"""

from walletledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)
from walletledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)
from walletledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
]
