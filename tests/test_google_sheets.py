"""
Tests for the Google Sheets backend

Runs against an in-process stand-in for gspread worksheets, so no
spreadsheet or credentials are needed.
"""

from datetime import date
from uuid import uuid4

import pytest
from gspread.utils import a1_to_rowcol
from tenacity import wait_none

from conftest import USER
from walletledger.models import (
    Budget,
    BudgetAllocation,
    CustomCategory,
    Debt,
    DebtPayment,
    Transaction,
    TransactionKind,
    Wallet,
    WalletKind,
)
from walletledger.orchestrator import build_app
from walletledger.services.storage import (
    ConflictError,
    DuplicateError,
    GoogleSheetsLedgerStore,
    NotFoundError,
)
from walletledger.services.storage.google_sheets import (
    BUDGET_COLUMNS,
    CATEGORY_COLUMNS,
    DEBT_COLUMNS,
    GOAL_COLUMNS,
    TRANSACTION_COLUMNS,
    WALLET_COLUMNS,
    model_to_row,
    row_to_model,
)


class FakeWorksheet:
    """The handful of gspread.Worksheet calls the store makes."""

    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def col_values(self, col):
        return [row[col - 1] if len(row) >= col else "" for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name, values, value_input_option=None):
        row, _ = a1_to_rowcol(range_name.split(":")[0])
        self.rows[row - 1] = [str(v) for v in values[0]]

    def delete_rows(self, index):
        del self.rows[index - 1]


class LostResponseWorksheet(FakeWorksheet):
    """The first append lands but the caller gets an error back."""

    def __init__(self, columns):
        super().__init__(columns)
        self.lost_responses = 1

    def append_row(self, values, value_input_option=None):
        super().append_row(values, value_input_option)
        if self.lost_responses:
            self.lost_responses -= 1
            raise ConnectionError("connection reset after write")


class FakeSheetsClient:

    def __init__(self):
        self.sheets = {
            "wallets": FakeWorksheet(WALLET_COLUMNS),
            "transactions": FakeWorksheet(TRANSACTION_COLUMNS),
            "budgets": FakeWorksheet(BUDGET_COLUMNS),
            "debts": FakeWorksheet(DEBT_COLUMNS),
            "goals": FakeWorksheet(GOAL_COLUMNS),
            "categories": FakeWorksheet(CATEGORY_COLUMNS),
        }

    def wallets_sheet(self):
        return self.sheets["wallets"]

    def transactions_sheet(self):
        return self.sheets["transactions"]

    def budgets_sheet(self):
        return self.sheets["budgets"]

    def debts_sheet(self):
        return self.sheets["debts"]

    def goals_sheet(self):
        return self.sheets["goals"]

    def categories_sheet(self):
        return self.sheets["categories"]


@pytest.fixture
def sheets_store():
    return GoogleSheetsLedgerStore(FakeSheetsClient())


class TestRowConversion:

    def test_wallet_row(self):
        wallet = Wallet(user_id=USER, name="Cash", kind=WalletKind.CASH, balance=-250, version=3)
        row = model_to_row(wallet, WALLET_COLUMNS)
        assert row[WALLET_COLUMNS.index("balance")] == "-250"
        assert row_to_model(row, WALLET_COLUMNS, Wallet) == wallet

    def test_nested_payments_are_json(self):
        debt = Debt(
            user_id=USER,
            creditor="Bank",
            amount=600,
            original_principal=1000,
            due_date=date(2024, 6, 1),
            payments=[DebtPayment(amount=400)],
        )
        row = model_to_row(debt, DEBT_COLUMNS)
        assert row[DEBT_COLUMNS.index("payments")].startswith("[{")
        restored = row_to_model(row, DEBT_COLUMNS, Debt)
        assert restored.payments[0].amount == 400
        assert restored.description is None


class TestGoogleSheetsLedgerStore:

    @pytest.mark.asyncio
    async def test_balance_write_is_version_checked(self, sheets_store):
        wallet = await sheets_store.create_wallet(
            Wallet(user_id=USER, name="Cash", kind=WalletKind.CASH)
        )
        updated = await sheets_store.write_wallet_balance(wallet.id, 100, expected_version=0)
        assert updated.version == 1

        with pytest.raises(ConflictError):
            await sheets_store.write_wallet_balance(wallet.id, 999, expected_version=0)
        assert (await sheets_store.get_wallet(wallet.id)).balance == 100

    @pytest.mark.asyncio
    async def test_budget_upsert_keeps_one_row(self, sheets_store):
        await sheets_store.upsert_budget(Budget(user_id=USER, month="2024-03"))
        await sheets_store.upsert_budget(Budget(
            user_id=USER, month="2024-03", allocations=[BudgetAllocation(category="Food", amount=5)]
        ))
        budgets = await sheets_store.list_budgets(USER)
        assert len(budgets) == 1
        assert budgets[0].allocations[0].category == "Food"

    @pytest.mark.asyncio
    async def test_ledger_runs_on_sheets(self, sheets_store, settings):
        app = build_app(sheets_store, settings=settings)
        source, _ = await app.wallets.create_wallet(
            USER, "A", WalletKind.BANK, opening_balance=50000
        )
        destination, _ = await app.wallets.create_wallet(USER, "B", WalletKind.CASH)

        await app.transactions.transfer(USER, source.id, destination.id, 20000)

        assert (await sheets_store.get_wallet(source.id)).balance == 30000
        assert (await sheets_store.get_wallet(destination.id)).balance == 20000
        reports = await app.wallets.reconcile_user(USER)
        assert all(r.is_consistent for r in reports)


def expense(**fields):
    fields.setdefault("user_id", USER)
    fields.setdefault("wallet_id", uuid4())
    fields.setdefault("amount", 1000)
    return Transaction(kind=TransactionKind.EXPENSE, category="Food", **fields)


class TestTransactionRows:

    @pytest.mark.asyncio
    async def test_repeated_save_of_same_record_keeps_one_row(self, sheets_store):
        transaction = expense()
        await sheets_store.save_transaction(transaction)
        await sheets_store.save_transaction(transaction)

        assert len(await sheets_store.list_transactions(USER)) == 1
        with pytest.raises(DuplicateError):
            await sheets_store.save_transaction(expense(id=transaction.id, amount=5))

    @pytest.mark.asyncio
    async def test_append_retried_after_lost_response(self):
        client = FakeSheetsClient()
        client.sheets["transactions"] = LostResponseWorksheet(TRANSACTION_COLUMNS)
        store = GoogleSheetsLedgerStore(client)
        save = GoogleSheetsLedgerStore.save_transaction.retry_with(wait=wait_none())

        transaction = expense()
        assert await save(store, transaction) == transaction

        assert len(client.sheets["transactions"].rows) == 2
        assert await store.get_transaction(transaction.id) == transaction

    @pytest.mark.asyncio
    async def test_rewrite_and_delete_are_version_checked(self, sheets_store):
        transaction = expense()
        await sheets_store.save_transaction(transaction)

        edited = await sheets_store.replace_transaction(
            transaction.model_copy(update={"amount": 2000}), expected_version=0
        )
        assert edited.version == 1

        with pytest.raises(ConflictError):
            await sheets_store.replace_transaction(transaction, expected_version=0)
        with pytest.raises(ConflictError):
            await sheets_store.delete_transaction(transaction.id, expected_version=0)
        assert (await sheets_store.get_transaction(transaction.id)).amount == 2000

        assert await sheets_store.delete_transaction(transaction.id, expected_version=1) is True
        assert await sheets_store.delete_transaction(transaction.id, expected_version=1) is False
        with pytest.raises(NotFoundError):
            await sheets_store.replace_transaction(edited, expected_version=1)


class TestCategoryRows:

    @pytest.mark.asyncio
    async def test_names_unique_per_kind(self, sheets_store):
        await sheets_store.save_category(
            CustomCategory(user_id=USER, name="Gifts", kind=TransactionKind.EXPENSE)
        )
        await sheets_store.save_category(
            CustomCategory(user_id=USER, name="Gifts", kind=TransactionKind.INCOME)
        )
        with pytest.raises(DuplicateError):
            await sheets_store.save_category(
                CustomCategory(user_id=USER, name="Gifts", kind=TransactionKind.EXPENSE)
            )
        assert [c.kind for c in await sheets_store.list_categories(USER)] == [
            TransactionKind.EXPENSE,
            TransactionKind.INCOME,
        ]
