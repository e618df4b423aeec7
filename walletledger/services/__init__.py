"""Services package."""

from walletledger.services.storage import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    "LedgerStoreInterface",
    "NotFoundError",
    "StorageError",
]
