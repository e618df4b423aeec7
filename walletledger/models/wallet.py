"""
Core Ledger Models for Wallet Ledger

These models define the strict schemas for wallets and the transactions
recorded against them. They are designed to:
1. Enforce type safety at runtime
2. Keep every monetary value an integer in minor currency units
3. Be serializable for storage and logging

DESIGN DECISION: A transaction amount is always stored positive.
The sign of its effect on the wallet balance is derived from its kind.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class WalletKind(str, Enum):
    """Where the money is held."""
    CASH = "cash"
    BANK = "bank"
    E_WALLET = "e-wallet"


class TransactionKind(str, Enum):
    """
    Transaction kind.

    Income adds to the wallet; expense and bill both subtract.
    Only EXPENSE counts towards budget spending.
    """
    INCOME = "income"
    EXPENSE = "expense"
    BILL = "bill"


class RecurrencePattern(str, Enum):
    """How often a recurring transaction repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# WALLET
# =============================================================================

class Wallet(BaseModel):
    """
    A wallet owned by one user.

    CRITICAL: `balance` is derived state. It must always equal the sum of
    the signed effects of the wallet's transactions and is only ever written
    through the balance adjustment unit.

    `version` is bumped on every balance write so concurrent writers can
    detect each other (compare-and-swap).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=60,
        description="Display name"
    )
    kind: WalletKind
    balance: int = Field(
        default=0,
        description="Current balance in minor units (may be negative)"
    )
    icon: str = Field(default="wallet", max_length=40)
    color: str = Field(default="#3b82f6", max_length=20)
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WalletUpdate(BaseModel):
    """Editable wallet metadata. The balance is deliberately absent."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=60)
    kind: Optional[WalletKind] = None
    icon: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=20)


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A single movement of money on one wallet.

    Transfers are two of these (an expense leg and an income leg)
    sharing the same `transfer_id`.

    `version` is bumped by the store on every rewrite; edits and deletes
    are checked against the version they read.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    wallet_id: UUID
    kind: TransactionKind
    category: str = Field(..., min_length=1, max_length=100)
    amount: int = Field(
        ...,
        gt=0,
        description="Positive amount in minor units"
    )
    description: Optional[str] = Field(default=None, max_length=500)
    occurred_at: datetime = Field(default_factory=utcnow)
    is_recurring: bool = False
    recurring_pattern: Optional[RecurrencePattern] = None
    transfer_id: Optional[UUID] = Field(
        default=None,
        description="Shared by both legs of a transfer"
    )
    version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('occurred_at')
    @classmethod
    def normalize_occurred_at(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'Transaction':
        if self.is_recurring and self.recurring_pattern is None:
            raise ValueError("Recurring transactions need a recurring_pattern")
        return self

    @property
    def is_transfer_leg(self) -> bool:
        return self.transfer_id is not None

    @property
    def effect(self) -> tuple[UUID, TransactionKind, int]:
        """What the balance depends on: wallet, kind and amount."""
        return (self.wallet_id, self.kind, self.amount)


class TransactionUpdate(BaseModel):
    """
    Fields that may change when a transaction is edited.

    Unset fields keep their current value.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    wallet_id: Optional[UUID] = None
    kind: Optional[TransactionKind] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)
    occurred_at: Optional[datetime] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurrencePattern] = None


class TransactionFilter(BaseModel):
    """Owner-scoped listing filters. Dates are inclusive."""

    wallet_id: Optional[UUID] = None
    kind: Optional[TransactionKind] = None
    category: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    transfer_id: Optional[UUID] = None

    @field_validator('date_from', 'date_to', mode='before')
    @classmethod
    def widen_dates(cls, v):
        """Plain dates are accepted and widened to midnight."""
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime(v.year, v.month, v.day)
        return v

    @field_validator('date_from', 'date_to')
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v is not None else None

    def matches(self, transaction: Transaction) -> bool:
        if self.wallet_id and transaction.wallet_id != self.wallet_id:
            return False
        if self.kind and transaction.kind != self.kind:
            return False
        if self.category is not None and transaction.category != self.category:
            return False
        if self.date_from and transaction.occurred_at < self.date_from:
            return False
        if self.date_to and transaction.occurred_at > self.date_to:
            return False
        if self.transfer_id and transaction.transfer_id != self.transfer_id:
            return False
        return True


class TransferResult(BaseModel):
    """Outcome of a completed two-leg transfer."""

    transfer_id: UUID
    expense_leg: Transaction
    income_leg: Transaction
    source_balance: int
    destination_balance: int


class ReconciliationReport(BaseModel):
    """Stored balance versus the balance recomputed from transactions."""

    wallet_id: UUID
    stored_balance: int
    computed_balance: int
    transaction_count: int = Field(ge=0)
    repaired: bool = False

    @property
    def drift(self) -> int:
        return self.stored_balance - self.computed_balance

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0
