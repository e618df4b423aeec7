"""
Debt Models

A debt is an informational overlay: it never moves money between wallets.
Recording a payment does not create a wallet transaction.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from walletledger.models.wallet import utcnow


class DebtStatus(str, Enum):
    """Repayment status of a debt."""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class DebtPayment(BaseModel):
    """One recorded payment against a debt."""

    amount: int = Field(..., gt=0)
    paid_at: datetime = Field(default_factory=utcnow)


class Debt(BaseModel):
    """
    A single-principal payable.

    `amount` is what is still owed. It is reduced by payments and
    overwritten by a full edit, so after a manual edit the payment
    history no longer adds up to `original_principal - amount`.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    creditor: str = Field(..., min_length=1, max_length=200)
    amount: int = Field(..., ge=0, description="Remaining amount in minor units")
    original_principal: Optional[int] = Field(default=None, ge=0)
    due_date: date
    status: DebtStatus = DebtStatus.UNPAID
    description: Optional[str] = Field(default=None, max_length=500)
    payments: list[DebtPayment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def default_principal(self) -> 'Debt':
        if self.original_principal is None:
            self.original_principal = self.amount
        return self

    @property
    def total_paid(self) -> int:
        return sum(payment.amount for payment in self.payments)


class PaymentResult(BaseModel):
    """Outcome of a recorded debt payment."""

    debt_id: UUID
    new_remaining: int = Field(ge=0)
    new_status: DebtStatus

