"""
Tests for Wallet Ledger models

Test strategy:
1. Unit tests for the Pydantic models and their validators
2. Service tests run against the in-memory store (see the other modules)
3. No real spreadsheet calls in tests
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

from walletledger.models import (
    AllocationWithSpent,
    Budget,
    BudgetAllocation,
    Debt,
    DebtPayment,
    DebtStatus,
    ReconciliationReport,
    RecurrencePattern,
    SavingsGoal,
    Transaction,
    TransactionFilter,
    TransactionKind,
    TransactionUpdate,
    Wallet,
    WalletKind,
    WalletUpdate,
    parse_month,
)
from walletledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


def make_transaction(**overrides) -> Transaction:
    fields = {
        "user_id": "user-1",
        "wallet_id": uuid4(),
        "kind": TransactionKind.EXPENSE,
        "category": "Food",
        "amount": 1000,
    }
    fields.update(overrides)
    return Transaction(**fields)


class TestWalletModels:
    """Tests for wallet models."""

    def test_wallet_defaults(self):
        """A new wallet starts empty at version 0 with the default look."""
        wallet = Wallet(user_id="user-1", name="Cash", kind=WalletKind.CASH)
        assert wallet.balance == 0
        assert wallet.version == 0
        assert wallet.icon == "wallet"
        assert wallet.color == "#3b82f6"

    def test_wallet_strips_whitespace(self):
        wallet = Wallet(user_id="user-1", name="  Main Bank  ", kind=WalletKind.BANK)
        assert wallet.name == "Main Bank"

    def test_wallet_name_length(self):
        with pytest.raises(ValueError):
            Wallet(user_id="user-1", name="x" * 61, kind=WalletKind.CASH)

    def test_wallet_kind_values(self):
        assert WalletKind("e-wallet") == WalletKind.E_WALLET

    def test_wallet_balance_may_be_negative(self):
        wallet = Wallet(user_id="user-1", name="Card", kind=WalletKind.BANK, balance=-500)
        assert wallet.balance == -500

    def test_wallet_update_rejects_balance(self):
        """Balance is not an editable field."""
        with pytest.raises(ValueError):
            WalletUpdate(balance=100)


class TestTransactionModels:
    """Tests for transaction models."""

    def test_transaction_creation(self):
        transaction = make_transaction()
        assert transaction.amount == 1000
        assert transaction.transfer_id is None
        assert transaction.is_transfer_leg is False

    @pytest.mark.parametrize("amount", [0, -1])
    def test_transaction_rejects_non_positive_amount(self, amount):
        with pytest.raises(ValueError):
            make_transaction(amount=amount)

    def test_recurring_requires_pattern(self):
        with pytest.raises(ValueError):
            make_transaction(is_recurring=True)
        transaction = make_transaction(
            is_recurring=True, recurring_pattern=RecurrencePattern.MONTHLY
        )
        assert transaction.recurring_pattern == RecurrencePattern.MONTHLY

    def test_occurred_at_normalized_to_naive_utc(self):
        aware = datetime(2024, 3, 1, 7, 0, tzinfo=timezone(timedelta(hours=7)))
        transaction = make_transaction(occurred_at=aware)
        assert transaction.occurred_at == datetime(2024, 3, 1, 0, 0)
        assert transaction.occurred_at.tzinfo is None

    def test_effect_ignores_metadata(self):
        transaction = make_transaction()
        relabelled = transaction.model_copy(update={"description": "lunch", "category": "Eating out"})
        assert relabelled.effect == transaction.effect
        assert transaction.model_copy(update={"amount": 5}).effect != transaction.effect

    def test_new_transaction_starts_at_version_zero(self):
        assert make_transaction().version == 0

    def test_update_rejects_unknown_fields(self):
        with pytest.raises(ValueError):
            TransactionUpdate(user_id="someone-else")


class TestTransactionFilter:
    """Tests for listing filters."""

    def test_dates_are_inclusive(self):
        transaction = make_transaction(occurred_at=datetime(2024, 3, 31))
        assert TransactionFilter(date_to=date(2024, 3, 31)).matches(transaction)
        assert TransactionFilter(date_from=date(2024, 3, 31)).matches(transaction)
        assert not TransactionFilter(date_from=date(2024, 4, 1)).matches(transaction)

    def test_filter_by_kind_and_category(self):
        transaction = make_transaction()
        assert TransactionFilter(kind=TransactionKind.EXPENSE, category="Food").matches(transaction)
        assert not TransactionFilter(kind=TransactionKind.INCOME).matches(transaction)
        assert not TransactionFilter(category="food").matches(transaction)


class TestReconciliationReport:

    def test_drift(self):
        report = ReconciliationReport(
            wallet_id=uuid4(), stored_balance=700, computed_balance=500, transaction_count=2
        )
        assert report.drift == 200
        assert report.is_consistent is False


class TestBudgetModels:
    """Tests for budget models."""

    def test_parse_month_bounds(self):
        assert parse_month("2024-03") == (datetime(2024, 3, 1), datetime(2024, 4, 1))
        assert parse_month("2024-12") == (datetime(2024, 12, 1), datetime(2025, 1, 1))

    @pytest.mark.parametrize("month", ["2024-13", "2024-3", "March", ""])
    def test_parse_month_rejects_malformed(self, month):
        with pytest.raises(ValueError):
            parse_month(month)

    def test_allocation_drops_spent(self):
        """A stored spent figure is never kept."""
        allocation = BudgetAllocation(category="Food", amount=500000, spent=999)
        assert "spent" not in allocation.model_dump()

    def test_budget_rejects_duplicate_categories(self):
        with pytest.raises(ValueError):
            Budget(
                user_id="user-1",
                month="2024-03",
                allocations=[
                    BudgetAllocation(category="Food", amount=1),
                    BudgetAllocation(category="Food", amount=2),
                ],
            )

    def test_allocation_with_spent(self):
        row = AllocationWithSpent(category="Food", allocated=500, spent=700)
        assert row.remaining == -200
        assert row.is_over_budget is True


class TestDebtModels:
    """Tests for debt models."""

    def test_principal_defaults_to_amount(self):
        debt = Debt(user_id="user-1", creditor="Bank", amount=1000000, due_date=date(2024, 6, 1))
        assert debt.original_principal == 1000000
        assert debt.status == DebtStatus.UNPAID
        assert debt.total_paid == 0

    def test_total_paid(self):
        debt = Debt(
            user_id="user-1",
            creditor="Bank",
            amount=600,
            original_principal=1000,
            due_date=date(2024, 6, 1),
            payments=[DebtPayment(amount=300), DebtPayment(amount=100)],
        )
        assert debt.total_paid == 400


class TestSavingsGoalModel:

    @pytest.mark.parametrize("current,target,expected", [
        (0, 1000, 0),
        (333, 1000, 33),
        (1000, 1000, 100),
        (2500, 1000, 100),
        (0, 0, 100),
    ])
    def test_progress_is_capped(self, current, target, expected):
        goal = SavingsGoal(
            user_id="user-1", name="Holiday", target_amount=target, current_amount=current
        )
        assert goal.progress_percent == expected


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.WALLET_CREATED,
            description="Wallet created",
        )
        assert event.event_type == AuditEventType.WALLET_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Transaction created",
            details={"category": "Food"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transaction_created"
        assert log_dict["details"]["category"] == "Food"

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.PARTIAL_FAILURE,
            description="transfer could not be rolled back",
            error_message="boom",
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "partial_failure"
        assert row[10] == "boom"

    def test_builder_reconciled_with_drift_warns(self):
        wallet_id = uuid4()
        event = AuditEventBuilder.wallet_reconciled(
            wallet_id=wallet_id,
            user_id="user-1",
            stored_balance=700,
            computed_balance=500,
            repaired=True,
        )
        assert event.event_type == AuditEventType.BALANCE_DRIFT_DETECTED
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == wallet_id

    def test_builder_reconciled_clean(self):
        event = AuditEventBuilder.wallet_reconciled(
            wallet_id=uuid4(),
            user_id="user-1",
            stored_balance=500,
            computed_balance=500,
            repaired=False,
        )
        assert event.event_type == AuditEventType.WALLET_RECONCILED
        assert event.severity == AuditSeverity.INFO

    def test_builder_partial_failure_is_critical(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.partial_failure(
            operation="transfer",
            completed_steps=["expense leg saved"],
            cause="StorageError: down",
            correlation_id=correlation_id,
        )
        assert event.severity == AuditSeverity.CRITICAL
        assert event.error_code == "PARTIAL_FAILURE"
        assert event.correlation_id == correlation_id


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
