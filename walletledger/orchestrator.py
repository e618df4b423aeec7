"""
Application wiring for the wallet ledger.

Builds one store, one audit logger and the services on top of them, all
sharing the same balance adjuster so every balance write goes through a
single compare-and-swap path.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from walletledger.audit import AuditLogger, configure_logging
from walletledger.config import LedgerSettings, get_settings
from walletledger.ledger import (
    BalanceAdjuster,
    BudgetReconciler,
    CategoryService,
    DebtLedger,
    SavingsGoalService,
    TransactionManager,
    WalletService,
)
from walletledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
)


logger = structlog.get_logger("walletledger.orchestrator")


@dataclass
class LedgerApp:
    """Everything a caller needs, wired to one store."""

    store: LedgerStoreInterface
    audit_logger: AuditLogger
    balance: BalanceAdjuster
    transactions: TransactionManager
    wallets: WalletService
    budgets: BudgetReconciler
    debts: DebtLedger
    savings: SavingsGoalService
    categories: CategoryService
    sheets_client: Optional[GoogleSheetsClient] = None


def build_app(
    store: LedgerStoreInterface,
    audit_storage: Optional[AuditStorageInterface] = None,
    settings: Optional[LedgerSettings] = None,
    sheets_client: Optional[GoogleSheetsClient] = None,
) -> LedgerApp:
    """Wire the services around an already-constructed store."""
    settings = settings or get_settings().ledger
    audit_logger = AuditLogger(audit_storage)
    balance = BalanceAdjuster(store, audit_logger, settings)
    transactions = TransactionManager(store, balance, audit_logger, settings)
    return LedgerApp(
        store=store,
        audit_logger=audit_logger,
        balance=balance,
        transactions=transactions,
        wallets=WalletService(store, transactions, balance, audit_logger, settings),
        budgets=BudgetReconciler(store, audit_logger),
        debts=DebtLedger(store, audit_logger),
        savings=SavingsGoalService(store, audit_logger),
        categories=CategoryService(store, audit_logger),
        sheets_client=sheets_client,
    )


def create_app_components(backend: Optional[str] = None) -> LedgerApp:
    """
    Factory function to create all application components.

    Args:
        backend: 'memory' or 'google_sheets'. Defaults to the
                 STORAGE_BACKEND setting.

    Returns:
        A LedgerApp. If Google Sheets is requested but not configured,
        the app falls back to in-memory storage.
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)
    backend = backend or settings.app.storage_backend

    if backend == "google_sheets":
        try:
            client = GoogleSheetsClient()
            return build_app(
                GoogleSheetsLedgerStore(client),
                GoogleSheetsAuditStorage(client),
                settings=settings.ledger,
                sheets_client=client,
            )
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", backend=backend, error=str(e))
    elif backend != "memory":
        raise ValueError(f"Unknown storage backend: {backend!r}")

    return build_app(InMemoryLedgerStore(), InMemoryAuditStorage(), settings=settings.ledger)
