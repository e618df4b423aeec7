"""Ledger package: balance bookkeeping and the services built on it."""

from walletledger.ledger.errors import (
    ConflictError,
    DuplicateError,
    InvalidAmountError,
    LedgerError,
    NotFoundError,
    PartialFailureError,
    SameWalletError,
)
from walletledger.ledger.balance import BalanceAdjuster, balance_from, signed_effect
from walletledger.ledger.transactions import TransactionManager, TransferLegEditError
from walletledger.ledger.wallets import WalletService
from walletledger.ledger.budgets import BudgetReconciler
from walletledger.ledger.debts import DebtLedger, DebtUpdate
from walletledger.ledger.savings import SavingsGoalService, SavingsGoalUpdate, progress
from walletledger.ledger.categories import CategoryService, CustomCategoryUpdate

__all__ = [
    # Errors
    "ConflictError",
    "DuplicateError",
    "InvalidAmountError",
    "LedgerError",
    "NotFoundError",
    "PartialFailureError",
    "SameWalletError",
    "TransferLegEditError",
    # Balances and transactions
    "BalanceAdjuster",
    "TransactionManager",
    "WalletService",
    "balance_from",
    "signed_effect",
    # Overlays
    "BudgetReconciler",
    "DebtLedger",
    "DebtUpdate",
    "SavingsGoalService",
    "SavingsGoalUpdate",
    "progress",
    "CategoryService",
    "CustomCategoryUpdate",
]
