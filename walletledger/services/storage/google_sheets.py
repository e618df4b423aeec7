"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions and no conditional writes: the wallet and transaction
  compare-and-swaps re-read the version cell immediately before writing,
  under a process lock. Writers in other processes can still race,
  which is what the reconciliation sweep is for.
- Limited query capabilities (we filter in Python)

Each record type lives in its own worksheet, one record per row, with a
header row. Nested fields (allocations, payments) are JSON-serialized.
"""

import asyncio
import json
from typing import Optional, Type
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from pydantic import BaseModel
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from walletledger.config import get_settings
from walletledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from walletledger.models.budget import Budget
from walletledger.models.category import CustomCategory
from walletledger.models.debt import Debt
from walletledger.models.savings import SavingsGoal
from walletledger.models.wallet import Transaction, TransactionFilter, Wallet, utcnow
from walletledger.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    ConnectionError,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
)


WALLET_COLUMNS = [
    "id", "user_id", "name", "kind", "balance", "icon", "color",
    "version", "created_at", "updated_at",
]

TRANSACTION_COLUMNS = [
    "id", "user_id", "wallet_id", "kind", "category", "amount",
    "description", "occurred_at", "is_recurring", "recurring_pattern",
    "transfer_id", "version", "created_at", "updated_at",
]

BUDGET_COLUMNS = [
    "id", "user_id", "month", "total_budget", "allocations",
    "created_at", "updated_at",
]

DEBT_COLUMNS = [
    "id", "user_id", "creditor", "amount", "original_principal", "due_date",
    "status", "description", "payments", "created_at", "updated_at",
]

GOAL_COLUMNS = [
    "id", "user_id", "name", "target_amount", "current_amount", "deadline",
    "icon", "color", "created_at", "updated_at",
]

CATEGORY_COLUMNS = [
    "id", "user_id", "name", "kind", "icon", "color", "created_at", "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]

# Columns holding JSON-encoded lists
JSON_COLUMNS = {"allocations", "payments"}

# Spreadsheet API calls are retried; outcomes the caller must act on are not
_api_retry = retry(
    retry=retry_if_not_exception_type((NotFoundError, ConflictError, DuplicateError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @_api_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def wallets_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.wallets_sheet_name, WALLET_COLUMNS)

    def transactions_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=5000
        )

    def budgets_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.budgets_sheet_name, BUDGET_COLUMNS)

    def debts_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.debts_sheet_name, DEBT_COLUMNS)

    def goals_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.goals_sheet_name, GOAL_COLUMNS)

    def categories_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.categories_sheet_name, CATEGORY_COLUMNS)

    def audit_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def model_to_row(model: BaseModel, columns: list[str]) -> list[str]:
    """Convert a model to a spreadsheet row in column order."""
    data = model.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(column)
        if column in JSON_COLUMNS:
            row.append(json.dumps(value or []))
        elif value is None:
            row.append("")
        else:
            row.append(str(value))
    return row


def row_to_model(row: list, columns: list[str], model_cls: Type[BaseModel]):
    """Convert a spreadsheet row back to a model. Empty cells become None."""
    data = {}
    for index, column in enumerate(columns):
        cell = row[index] if index < len(row) else ""
        if column in JSON_COLUMNS:
            data[column] = json.loads(cell) if cell else []
        elif cell != "":
            data[column] = cell
    return model_cls.model_validate(data)


class _SheetTable:
    """One worksheet treated as a table of models keyed by the first column."""

    def __init__(self, sheet_getter, columns: list[str], model_cls: Type[BaseModel]):
        self._sheet_getter = sheet_getter
        self._columns = columns
        self._model_cls = model_cls

    def _rows(self) -> list[list]:
        return self._sheet_getter().get_all_values()[1:]

    def find_row_number(self, record_id: UUID) -> Optional[int]:
        ids = self._sheet_getter().col_values(1)
        for idx, value in enumerate(ids[1:], start=2):  # row 1 is the header
            if value == str(record_id):
                return idx
        return None

    def get(self, record_id: UUID):
        for row in self._rows():
            if row and row[0] == str(record_id):
                return row_to_model(row, self._columns, self._model_cls)
        return None

    def all(self) -> list:
        records = []
        for row in self._rows():
            if not row or not row[0]:  # Skip empty rows
                continue
            records.append(row_to_model(row, self._columns, self._model_cls))
        return records

    def insert(self, model: BaseModel) -> None:
        """
        Append a record. Inserting an identical record again is a no-op,
        so a retried append whose first response was lost still succeeds.
        """
        if self.find_row_number(model.id) is not None:
            if self.get(model.id) == model:
                return
            raise DuplicateError(f"{self._model_cls.__name__} already exists: {model.id}")
        self._sheet_getter().append_row(
            model_to_row(model, self._columns), value_input_option="RAW"
        )

    def overwrite(self, model: BaseModel) -> None:
        row_number = self.find_row_number(model.id)
        if row_number is None:
            raise NotFoundError(f"{self._model_cls.__name__} not found: {model.id}")
        start = rowcol_to_a1(row_number, 1)
        end = rowcol_to_a1(row_number, len(self._columns))
        self._sheet_getter().update(
            range_name=f"{start}:{end}",
            values=[model_to_row(model, self._columns)],
            value_input_option="RAW",
        )

    def remove(self, record_id: UUID) -> bool:
        row_number = self.find_row_number(record_id)
        if row_number is None:
            return False
        self._sheet_getter().delete_rows(row_number)
        return True


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of ledger storage.

    Spreadsheet API failures are wrapped in StorageError; NotFoundError,
    ConflictError and DuplicateError pass through untouched.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._wallets = _SheetTable(self._client.wallets_sheet, WALLET_COLUMNS, Wallet)
        self._transactions = _SheetTable(
            self._client.transactions_sheet, TRANSACTION_COLUMNS, Transaction
        )
        self._budgets = _SheetTable(self._client.budgets_sheet, BUDGET_COLUMNS, Budget)
        self._debts = _SheetTable(self._client.debts_sheet, DEBT_COLUMNS, Debt)
        self._goals = _SheetTable(self._client.goals_sheet, GOAL_COLUMNS, SavingsGoal)
        self._categories = _SheetTable(
            self._client.categories_sheet, CATEGORY_COLUMNS, CustomCategory
        )
        self._balance_lock = asyncio.Lock()
        self._transaction_lock = asyncio.Lock()
        self._category_lock = asyncio.Lock()

    @staticmethod
    def _wrap(action: str, func, *args):
        try:
            return func(*args)
        except (NotFoundError, ConflictError, DuplicateError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to {action}: {e}")

    # Wallets

    @_api_retry
    async def create_wallet(self, wallet: Wallet) -> Wallet:
        self._wrap("save wallet", self._wallets.insert, wallet)
        return wallet

    async def get_wallet(self, wallet_id: UUID) -> Optional[Wallet]:
        return self._wrap("get wallet", self._wallets.get, wallet_id)

    async def list_wallets(self, user_id: str) -> list[Wallet]:
        wallets = [
            w for w in self._wrap("list wallets", self._wallets.all)
            if w.user_id == user_id
        ]
        wallets.sort(key=lambda w: w.created_at, reverse=True)
        return wallets

    async def update_wallet_metadata(self, wallet: Wallet) -> Wallet:
        async with self._balance_lock:
            stored = await self.get_wallet(wallet.id)
            if stored is None:
                raise NotFoundError(f"Wallet not found: {wallet.id}")
            updated = stored.model_copy(update={
                "name": wallet.name,
                "kind": wallet.kind,
                "icon": wallet.icon,
                "color": wallet.color,
                "updated_at": utcnow(),
            })
            self._wrap("update wallet", self._wallets.overwrite, updated)
            return updated

    async def write_wallet_balance(
        self,
        wallet_id: UUID,
        new_balance: int,
        expected_version: int,
    ) -> Wallet:
        async with self._balance_lock:
            stored = await self.get_wallet(wallet_id)
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
            self._wrap("write wallet balance", self._wallets.overwrite, updated)
            return updated

    async def delete_wallet(self, wallet_id: UUID) -> bool:
        return self._wrap("delete wallet", self._wallets.remove, wallet_id)

    # Transactions

    @_api_retry
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        self._wrap("save transaction", self._transactions.insert, transaction)
        return transaction

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._wrap("get transaction", self._transactions.get, transaction_id)

    def _check_transaction_version(self, transaction_id: UUID, expected_version: int) -> bool:
        stored = self._wrap("get transaction", self._transactions.get, transaction_id)
        if stored is None:
            return False
        if stored.version != expected_version:
            raise ConflictError(
                f"Transaction {transaction_id} changed concurrently",
                expected_version=expected_version,
                actual_version=stored.version,
            )
        return True

    async def replace_transaction(
        self,
        transaction: Transaction,
        expected_version: int,
    ) -> Transaction:
        async with self._transaction_lock:
            if not self._check_transaction_version(transaction.id, expected_version):
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            updated = transaction.model_copy(update={"version": expected_version + 1})
            self._wrap("update transaction", self._transactions.overwrite, updated)
            return updated

    async def delete_transaction(
        self,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        async with self._transaction_lock:
            if expected_version is not None:
                if not self._check_transaction_version(transaction_id, expected_version):
                    return False
            return self._wrap("delete transaction", self._transactions.remove, transaction_id)

    async def list_transactions(
        self,
        user_id: str,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilter()
        transactions = [
            t for t in self._wrap("list transactions", self._transactions.all)
            if t.user_id == user_id and filters.matches(t)
        ]
        transactions.sort(key=lambda t: t.occurred_at, reverse=True)
        return transactions

    async def list_wallet_transactions(self, wallet_id: UUID) -> list[Transaction]:
        return [
            t for t in self._wrap("list transactions", self._transactions.all)
            if t.wallet_id == wallet_id
        ]

    # Budgets

    async def get_budget(self, user_id: str, month: str) -> Optional[Budget]:
        for budget in await self.list_budgets(user_id):
            if budget.month == month:
                return budget
        return None

    async def list_budgets(self, user_id: str) -> list[Budget]:
        budgets = [
            b for b in self._wrap("list budgets", self._budgets.all)
            if b.user_id == user_id
        ]
        budgets.sort(key=lambda b: b.month, reverse=True)
        return budgets

    async def upsert_budget(self, budget: Budget) -> Budget:
        existing = await self.get_budget(budget.user_id, budget.month)
        if existing is not None:
            # Keep one row per (user, month)
            budget = budget.model_copy(update={"id": existing.id})
            self._wrap("update budget", self._budgets.overwrite, budget)
        else:
            self._wrap("save budget", self._budgets.insert, budget)
        return budget

    # Debts

    async def save_debt(self, debt: Debt) -> Debt:
        self._wrap("save debt", self._debts.insert, debt)
        return debt

    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        return self._wrap("get debt", self._debts.get, debt_id)

    async def list_debts(self, user_id: str) -> list[Debt]:
        debts = [d for d in self._wrap("list debts", self._debts.all) if d.user_id == user_id]
        debts.sort(key=lambda d: d.due_date)
        return debts

    async def replace_debt(self, debt: Debt) -> Debt:
        self._wrap("update debt", self._debts.overwrite, debt)
        return debt

    async def delete_debt(self, debt_id: UUID) -> bool:
        return self._wrap("delete debt", self._debts.remove, debt_id)

    # Savings goals

    async def save_goal(self, goal: SavingsGoal) -> SavingsGoal:
        self._wrap("save savings goal", self._goals.insert, goal)
        return goal

    async def get_goal(self, goal_id: UUID) -> Optional[SavingsGoal]:
        return self._wrap("get savings goal", self._goals.get, goal_id)

    async def list_goals(self, user_id: str) -> list[SavingsGoal]:
        goals = [g for g in self._wrap("list savings goals", self._goals.all) if g.user_id == user_id]
        goals.sort(key=lambda g: g.created_at, reverse=True)
        return goals

    async def replace_goal(self, goal: SavingsGoal) -> SavingsGoal:
        self._wrap("update savings goal", self._goals.overwrite, goal)
        return goal

    async def delete_goal(self, goal_id: UUID) -> bool:
        return self._wrap("delete savings goal", self._goals.remove, goal_id)

    # Custom categories

    async def _check_category_name(self, category: CustomCategory) -> None:
        for other in await self.list_categories(category.user_id):
            if other.id != category.id and other.unique_key == category.unique_key:
                raise DuplicateError(
                    f"Category already exists: {category.name} ({category.kind.value})"
                )

    async def save_category(self, category: CustomCategory) -> CustomCategory:
        async with self._category_lock:
            await self._check_category_name(category)
            self._wrap("save category", self._categories.insert, category)
            return category

    async def get_category(self, category_id: UUID) -> Optional[CustomCategory]:
        return self._wrap("get category", self._categories.get, category_id)

    async def list_categories(self, user_id: str) -> list[CustomCategory]:
        categories = [
            c for c in self._wrap("list categories", self._categories.all)
            if c.user_id == user_id
        ]
        categories.sort(key=lambda c: c.name)
        return categories

    async def replace_category(self, category: CustomCategory) -> CustomCategory:
        async with self._category_lock:
            await self._check_category_name(category)
            self._wrap("update category", self._categories.overwrite, category)
            return category

    async def delete_category(self, category_id: UUID) -> bool:
        return self._wrap("delete category", self._categories.remove, category_id)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            rows = self._client.audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        return [self._row_to_event(row) for row in rows if row and row[0]]

    @_api_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._all_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
