"""
In-Memory Storage Implementation

Dict-backed implementation of the storage interfaces. Used by the test
suite and as the default backend when no spreadsheet is configured.

Every read hands out a deep copy and every write stores one, so callers
can never change stored state by mutating a model they hold. A single
asyncio.Lock serializes writes, which makes the balance compare-and-swap
atomic within the event loop.
"""

import asyncio
from typing import Optional
from uuid import UUID

from walletledger.models.audit import AuditEvent
from walletledger.models.budget import Budget
from walletledger.models.category import CustomCategory
from walletledger.models.debt import Debt
from walletledger.models.savings import SavingsGoal
from walletledger.models.wallet import Transaction, TransactionFilter, Wallet, utcnow
from walletledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
)


class InMemoryLedgerStore(LedgerStoreInterface):
    """Ledger records held in process memory."""

    def __init__(self):
        self._wallets: dict[UUID, Wallet] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._budgets: dict[tuple[str, str], Budget] = {}
        self._debts: dict[UUID, Debt] = {}
        self._goals: dict[UUID, SavingsGoal] = {}
        self._categories: dict[UUID, CustomCategory] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _copy(model):
        return model.model_copy(deep=True) if model is not None else None

    # Wallets

    async def create_wallet(self, wallet: Wallet) -> Wallet:
        async with self._lock:
            if wallet.id in self._wallets:
                raise DuplicateError(f"Wallet already exists: {wallet.id}")
            self._wallets[wallet.id] = self._copy(wallet)
            return self._copy(wallet)

    async def get_wallet(self, wallet_id: UUID) -> Optional[Wallet]:
        return self._copy(self._wallets.get(wallet_id))

    async def list_wallets(self, user_id: str) -> list[Wallet]:
        wallets = [w for w in self._wallets.values() if w.user_id == user_id]
        wallets.sort(key=lambda w: w.created_at, reverse=True)
        return [self._copy(w) for w in wallets]

    async def update_wallet_metadata(self, wallet: Wallet) -> Wallet:
        async with self._lock:
            stored = self._wallets.get(wallet.id)
            if stored is None:
                raise NotFoundError(f"Wallet not found: {wallet.id}")
            updated = stored.model_copy(update={
                "name": wallet.name,
                "kind": wallet.kind,
                "icon": wallet.icon,
                "color": wallet.color,
                "updated_at": utcnow(),
            })
            self._wallets[wallet.id] = updated
            return self._copy(updated)

    async def write_wallet_balance(
        self,
        wallet_id: UUID,
        new_balance: int,
        expected_version: int,
    ) -> Wallet:
        async with self._lock:
            stored = self._wallets.get(wallet_id)
            if stored is None:
                raise NotFoundError(f"Wallet not found: {wallet_id}")
            if stored.version != expected_version:
                raise ConflictError(
                    f"Wallet {wallet_id} changed concurrently",
                    expected_version=expected_version,
                    actual_version=stored.version,
                )
            updated = stored.model_copy(update={
                "balance": new_balance,
                "version": stored.version + 1,
                "updated_at": utcnow(),
            })
            self._wallets[wallet_id] = updated
            return self._copy(updated)

    async def delete_wallet(self, wallet_id: UUID) -> bool:
        async with self._lock:
            return self._wallets.pop(wallet_id, None) is not None

    # Transactions

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        async with self._lock:
            if transaction.id in self._transactions:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            self._transactions[transaction.id] = self._copy(transaction)
            return self._copy(transaction)

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._copy(self._transactions.get(transaction_id))

    def _check_transaction_version(self, transaction_id: UUID, expected_version: int) -> None:
        stored = self._transactions[transaction_id]
        if stored.version != expected_version:
            raise ConflictError(
                f"Transaction {transaction_id} changed concurrently",
                expected_version=expected_version,
                actual_version=stored.version,
            )

    async def replace_transaction(
        self,
        transaction: Transaction,
        expected_version: int,
    ) -> Transaction:
        async with self._lock:
            if transaction.id not in self._transactions:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            self._check_transaction_version(transaction.id, expected_version)
            updated = transaction.model_copy(update={"version": expected_version + 1}, deep=True)
            self._transactions[transaction.id] = updated
            return self._copy(updated)

    async def delete_transaction(
        self,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        async with self._lock:
            if transaction_id not in self._transactions:
                return False
            if expected_version is not None:
                self._check_transaction_version(transaction_id, expected_version)
            del self._transactions[transaction_id]
            return True

    async def list_transactions(
        self,
        user_id: str,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilter()
        matches = [
            t for t in self._transactions.values()
            if t.user_id == user_id and filters.matches(t)
        ]
        matches.sort(key=lambda t: t.occurred_at, reverse=True)
        return [self._copy(t) for t in matches]

    async def list_wallet_transactions(self, wallet_id: UUID) -> list[Transaction]:
        return [
            self._copy(t) for t in self._transactions.values()
            if t.wallet_id == wallet_id
        ]

    # Budgets

    async def get_budget(self, user_id: str, month: str) -> Optional[Budget]:
        return self._copy(self._budgets.get((user_id, month)))

    async def list_budgets(self, user_id: str) -> list[Budget]:
        budgets = [b for (uid, _), b in self._budgets.items() if uid == user_id]
        budgets.sort(key=lambda b: b.month, reverse=True)
        return [self._copy(b) for b in budgets]

    async def upsert_budget(self, budget: Budget) -> Budget:
        async with self._lock:
            self._budgets[(budget.user_id, budget.month)] = self._copy(budget)
            return self._copy(budget)

    # Debts

    async def save_debt(self, debt: Debt) -> Debt:
        async with self._lock:
            if debt.id in self._debts:
                raise DuplicateError(f"Debt already exists: {debt.id}")
            self._debts[debt.id] = self._copy(debt)
            return self._copy(debt)

    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        return self._copy(self._debts.get(debt_id))

    async def list_debts(self, user_id: str) -> list[Debt]:
        debts = [d for d in self._debts.values() if d.user_id == user_id]
        debts.sort(key=lambda d: d.due_date)
        return [self._copy(d) for d in debts]

    async def replace_debt(self, debt: Debt) -> Debt:
        async with self._lock:
            if debt.id not in self._debts:
                raise NotFoundError(f"Debt not found: {debt.id}")
            self._debts[debt.id] = self._copy(debt)
            return self._copy(debt)

    async def delete_debt(self, debt_id: UUID) -> bool:
        async with self._lock:
            return self._debts.pop(debt_id, None) is not None

    # Savings goals

    async def save_goal(self, goal: SavingsGoal) -> SavingsGoal:
        async with self._lock:
            if goal.id in self._goals:
                raise DuplicateError(f"Savings goal already exists: {goal.id}")
            self._goals[goal.id] = self._copy(goal)
            return self._copy(goal)

    async def get_goal(self, goal_id: UUID) -> Optional[SavingsGoal]:
        return self._copy(self._goals.get(goal_id))

    async def list_goals(self, user_id: str) -> list[SavingsGoal]:
        goals = [g for g in self._goals.values() if g.user_id == user_id]
        goals.sort(key=lambda g: g.created_at, reverse=True)
        return [self._copy(g) for g in goals]

    async def replace_goal(self, goal: SavingsGoal) -> SavingsGoal:
        async with self._lock:
            if goal.id not in self._goals:
                raise NotFoundError(f"Savings goal not found: {goal.id}")
            self._goals[goal.id] = self._copy(goal)
            return self._copy(goal)

    async def delete_goal(self, goal_id: UUID) -> bool:
        async with self._lock:
            return self._goals.pop(goal_id, None) is not None

    # Custom categories

    def _check_category_name(self, category: CustomCategory) -> None:
        for other in self._categories.values():
            if other.id != category.id and other.unique_key == category.unique_key:
                raise DuplicateError(
                    f"Category already exists: {category.name} ({category.kind.value})"
                )

    async def save_category(self, category: CustomCategory) -> CustomCategory:
        async with self._lock:
            if category.id in self._categories:
                raise DuplicateError(f"Category already exists: {category.id}")
            self._check_category_name(category)
            self._categories[category.id] = self._copy(category)
            return self._copy(category)

    async def get_category(self, category_id: UUID) -> Optional[CustomCategory]:
        return self._copy(self._categories.get(category_id))

    async def list_categories(self, user_id: str) -> list[CustomCategory]:
        categories = [c for c in self._categories.values() if c.user_id == user_id]
        categories.sort(key=lambda c: c.name)
        return [self._copy(c) for c in categories]

    async def replace_category(self, category: CustomCategory) -> CustomCategory:
        async with self._lock:
            if category.id not in self._categories:
                raise NotFoundError(f"Category not found: {category.id}")
            self._check_category_name(category)
            self._categories[category.id] = self._copy(category)
            return self._copy(category)

    async def delete_category(self, category_id: UUID) -> bool:
        async with self._lock:
            return self._categories.pop(category_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in process memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
