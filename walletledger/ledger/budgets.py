"""
Budget Reconciliation Unit

Budgets store allocations only. Spend is derived on every read from the
user's expense transactions in the budget month, across all wallets, so
it can never disagree with the transactions it summarizes.

Matching rules:
- only expense-kind transactions count; bills do not
- categories match exactly, case-sensitive
- the month is the half-open range [first day, first day of next month)
"""

from collections import defaultdict
from typing import Iterable, Optional, Union

from walletledger.audit import AuditLogger
from walletledger.models.audit import AuditEventBuilder
from walletledger.models.budget import (
    AllocationWithSpent,
    Budget,
    BudgetAllocation,
    parse_month,
)
from walletledger.models.wallet import TransactionFilter, TransactionKind, utcnow
from walletledger.services.storage import LedgerStoreInterface, NotFoundError


class BudgetReconciler:
    """Reads budgets with derived spend and replaces their allocations."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()

    async def compute_spent(self, user_id: str, month: str) -> dict[str, int]:
        """
        Sum the user's expenses in `month` per category.

        Raises:
            ValueError: If month is not YYYY-MM
        """
        start, end = parse_month(month)
        expenses = await self._store.list_transactions(
            user_id,
            TransactionFilter(kind=TransactionKind.EXPENSE, date_from=start, date_to=end),
        )
        spent: dict[str, int] = defaultdict(int)
        for transaction in expenses:
            # date_to is inclusive; the next month's first instant is not ours
            if transaction.occurred_at >= end:
                continue
            spent[transaction.category] += transaction.amount
        return dict(spent)

    async def get_budget(self, user_id: str, month: str) -> Budget:
        parse_month(month)
        budget = await self._store.get_budget(user_id, month)
        if budget is None:
            raise NotFoundError(f"No budget for {month}")
        return budget

    async def list_budgets(self, user_id: str) -> list[Budget]:
        """All of a user's budgets, newest month first."""
        return await self._store.list_budgets(user_id)

    async def get_allocations_with_spent(
        self,
        user_id: str,
        month: str,
    ) -> list[AllocationWithSpent]:
        """
        A month's allocations, each with its freshly computed spend.

        A month without a stored budget has no allocations and yields an
        empty list rather than an error.
        """
        spent = await self.compute_spent(user_id, month)
        budget = await self._store.get_budget(user_id, month)
        if budget is None:
            return []
        return [
            AllocationWithSpent(
                category=allocation.category,
                allocated=allocation.amount,
                spent=spent.get(allocation.category, 0),
                description=allocation.description,
            )
            for allocation in budget.allocations
        ]

    async def replace_allocations(
        self,
        user_id: str,
        month: str,
        allocations: Iterable[Union[BudgetAllocation, dict]],
        total_budget: Optional[int] = None,
    ) -> Budget:
        """
        Overwrite a month's allocations with the given list.

        Categories left out are removed. A `spent` key on an incoming
        allocation is ignored. `total_budget` defaults to the sum of the
        allocated amounts.

        Raises:
            ValueError: On a malformed month, a negative amount or a
                category listed twice (nothing is written)
        """
        parse_month(month)
        parsed = [
            a if isinstance(a, BudgetAllocation) else BudgetAllocation.model_validate(a)
            for a in allocations
        ]
        if total_budget is None:
            total_budget = sum(a.amount for a in parsed)

        existing = await self._store.get_budget(user_id, month)
        fields = {
            "user_id": user_id,
            "month": month,
            "total_budget": total_budget,
            "allocations": parsed,
        }
        if existing is not None:
            fields.update(id=existing.id, created_at=existing.created_at, updated_at=utcnow())
        budget = await self._store.upsert_budget(Budget(**fields))

        await self._audit.log(AuditEventBuilder.budget_replaced(
            budget_id=budget.id,
            user_id=user_id,
            month=month,
            categories=[a.category for a in budget.allocations],
            total_budget=budget.total_budget,
        ))
        return budget
