"""
Data Models Package

This package contains all Pydantic models used by the wallet ledger.
All data flowing through the system must conform to these schemas.
"""

from walletledger.models.wallet import (
    ReconciliationReport,
    RecurrencePattern,
    Transaction,
    TransactionFilter,
    TransactionKind,
    TransactionUpdate,
    TransferResult,
    Wallet,
    WalletKind,
    WalletUpdate,
)
from walletledger.models.budget import (
    AllocationWithSpent,
    Budget,
    BudgetAllocation,
    parse_month,
)
from walletledger.models.debt import (
    Debt,
    DebtPayment,
    DebtStatus,
    PaymentResult,
)
from walletledger.models.savings import SavingsGoal
from walletledger.models.category import CustomCategory
from walletledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ReconciliationReport",
    "RecurrencePattern",
    "Transaction",
    "TransactionFilter",
    "TransactionKind",
    "TransactionUpdate",
    "TransferResult",
    "Wallet",
    "WalletKind",
    "WalletUpdate",
    # Budget models
    "AllocationWithSpent",
    "Budget",
    "BudgetAllocation",
    "parse_month",
    # Debt, savings and category models
    "Debt",
    "DebtPayment",
    "DebtStatus",
    "PaymentResult",
    "SavingsGoal",
    "CustomCategory",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
