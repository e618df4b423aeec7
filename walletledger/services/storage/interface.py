"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from storage implementation

Each method reads or writes a single record. Shared mutable records (a
wallet's balance, a transaction being edited or deleted) are written
with compare-and-swap: the caller passes the version it read and the
write fails with ConflictError if anyone else got there first.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from walletledger.models.audit import AuditEvent
from walletledger.models.budget import Budget
from walletledger.models.category import CustomCategory
from walletledger.models.debt import Debt
from walletledger.models.savings import SavingsGoal
from walletledger.models.wallet import Transaction, TransactionFilter, Wallet


class LedgerStoreInterface(ABC):
    """
    Abstract interface for ledger record storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods. Returned models are copies:
    mutating them never changes stored state.
    """

    # -------------------------------------------------------------------------
    # Wallets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_wallet(self, wallet: Wallet) -> Wallet:
        """
        Persist a new wallet.

        Raises:
            DuplicateError: If a wallet with this ID exists
        """

    @abstractmethod
    async def get_wallet(self, wallet_id: UUID) -> Optional[Wallet]:
        """Retrieve a wallet by ID, or None."""

    @abstractmethod
    async def list_wallets(self, user_id: str) -> list[Wallet]:
        """List a user's wallets, newest first."""

    @abstractmethod
    async def update_wallet_metadata(self, wallet: Wallet) -> Wallet:
        """
        Overwrite name, kind, icon and color. Balance and version are untouched.

        Raises:
            NotFoundError: If the wallet doesn't exist
        """

    @abstractmethod
    async def write_wallet_balance(
        self,
        wallet_id: UUID,
        new_balance: int,
        expected_version: int,
    ) -> Wallet:
        """
        Compare-and-swap the balance.

        Args:
            wallet_id: The wallet to write
            new_balance: Balance to store
            expected_version: Version observed when the balance was read

        Returns:
            The wallet after the write (version incremented)

        Raises:
            NotFoundError: If the wallet doesn't exist
            ConflictError: If the stored version differs from expected_version
        """

    @abstractmethod
    async def delete_wallet(self, wallet_id: UUID) -> bool:
        """Delete a wallet. Its transactions are left in place."""

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Raises:
            DuplicateError: If a transaction with this ID exists
        """

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by ID, or None."""

    @abstractmethod
    async def replace_transaction(
        self,
        transaction: Transaction,
        expected_version: int,
    ) -> Transaction:
        """
        Compare-and-swap a transaction's field values.

        Returns:
            The stored transaction, with version expected_version + 1

        Raises:
            NotFoundError: If the transaction doesn't exist
            ConflictError: If the stored version differs from expected_version
        """

    @abstractmethod
    async def delete_transaction(
        self,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        """
        Delete a transaction. Returns False if it was already gone.

        Raises:
            ConflictError: If expected_version is given and the stored
                version differs
        """

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """List a user's transactions matching the filters, newest first."""

    @abstractmethod
    async def list_wallet_transactions(self, wallet_id: UUID) -> list[Transaction]:
        """Every transaction referencing a wallet, regardless of owner."""

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_budget(self, user_id: str, month: str) -> Optional[Budget]:
        """The budget for one (user, month), or None."""

    @abstractmethod
    async def list_budgets(self, user_id: str) -> list[Budget]:
        """All budgets of a user, newest month first."""

    @abstractmethod
    async def upsert_budget(self, budget: Budget) -> Budget:
        """Insert or fully overwrite the budget for (budget.user_id, budget.month)."""

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_debt(self, debt: Debt) -> Debt:
        """Persist a new debt."""

    @abstractmethod
    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        """Retrieve a debt by ID, or None."""

    @abstractmethod
    async def list_debts(self, user_id: str) -> list[Debt]:
        """A user's debts, earliest due date first."""

    @abstractmethod
    async def replace_debt(self, debt: Debt) -> Debt:
        """
        Overwrite an existing debt.

        Raises:
            NotFoundError: If the debt doesn't exist
        """

    @abstractmethod
    async def delete_debt(self, debt_id: UUID) -> bool:
        """Delete a debt. Returns False if it was already gone."""

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """Persist a new savings goal."""

    @abstractmethod
    async def get_goal(self, goal_id: UUID) -> Optional[SavingsGoal]:
        """Retrieve a goal by ID, or None."""

    @abstractmethod
    async def list_goals(self, user_id: str) -> list[SavingsGoal]:
        """A user's goals, newest first."""

    @abstractmethod
    async def replace_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """
        Overwrite an existing goal.

        Raises:
            NotFoundError: If the goal doesn't exist
        """

    @abstractmethod
    async def delete_goal(self, goal_id: UUID) -> bool:
        """Delete a goal. Returns False if it was already gone."""

    # -------------------------------------------------------------------------
    # Custom categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_category(self, category: CustomCategory) -> CustomCategory:
        """
        Persist a new category.

        Raises:
            DuplicateError: If the user already has a category with this
                name and kind
        """

    @abstractmethod
    async def get_category(self, category_id: UUID) -> Optional[CustomCategory]:
        """Retrieve a category by ID, or None."""

    @abstractmethod
    async def list_categories(self, user_id: str) -> list[CustomCategory]:
        """A user's categories, sorted by name."""

    @abstractmethod
    async def replace_category(self, category: CustomCategory) -> CustomCategory:
        """
        Overwrite an existing category.

        Raises:
            NotFoundError: If the category doesn't exist
            DuplicateError: If the new name clashes with another category
        """

    @abstractmethod
    async def delete_category(self, category_id: UUID) -> bool:
        """Delete a category. Returns False if it was already gone."""


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one logical operation, in chronological order."""

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """All events for one entity, in chronological order."""

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent events, newest first."""


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage (or not owned by the caller)."""
    pass


class ConflictError(StorageError):
    """A compare-and-swap write lost to a concurrent writer."""

    def __init__(self, message: str, expected_version: Optional[int] = None,
                 actual_version: Optional[int] = None):
        super().__init__(message)
        self.expected_version = expected_version
        self.actual_version = actual_version


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
