"""
Debt Ledger

Tracks what the user owes and the payments made against it. Debts are
an overlay on the wallets: paying a debt here does not debit any wallet.
"""

from datetime import date
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from walletledger.audit import AuditLogger
from walletledger.ledger.errors import InvalidAmountError, require_positive
from walletledger.models.audit import AuditEventBuilder, AuditEventType
from walletledger.models.debt import Debt, DebtPayment, DebtStatus, PaymentResult
from walletledger.models.wallet import utcnow
from walletledger.services.storage import LedgerStoreInterface, NotFoundError


class DebtUpdate(BaseModel):
    """A full edit of a debt. Every field is replaced."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    creditor: str = Field(..., min_length=1, max_length=200)
    amount: int = Field(..., ge=0)
    due_date: date
    status: DebtStatus
    description: Optional[str] = Field(default=None, max_length=500)


class DebtLedger:
    """Owner-scoped debt operations."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()

    async def get_debt(self, user_id: str, debt_id: UUID) -> Debt:
        debt = await self._store.get_debt(debt_id)
        if debt is None or debt.user_id != user_id:
            raise NotFoundError(f"Debt not found: {debt_id}")
        return debt

    async def list_debts(self, user_id: str) -> list[Debt]:
        """A user's debts, earliest due first."""
        return await self._store.list_debts(user_id)

    async def create_debt(
        self,
        user_id: str,
        creditor: str,
        amount: int,
        due_date: date,
        description: Optional[str] = None,
    ) -> Debt:
        require_positive(amount)
        debt = await self._store.save_debt(Debt(
            user_id=user_id,
            creditor=creditor,
            amount=amount,
            due_date=due_date,
            description=description,
        ))
        await self._log(AuditEventType.DEBT_CREATED, debt)
        return debt

    async def record_payment(
        self,
        user_id: str,
        debt_id: UUID,
        payment_amount: int,
    ) -> PaymentResult:
        """
        Reduce a debt's remaining amount by a payment.

        The status becomes paid when nothing remains, partial otherwise.

        Raises:
            InvalidAmountError: If the payment is not positive or exceeds
                what remains (the debt is left unchanged)
            NotFoundError: If the debt is missing or not the user's
        """
        require_positive(payment_amount, "Payment")
        debt = await self.get_debt(user_id, debt_id)
        if payment_amount > debt.amount:
            raise InvalidAmountError(
                f"Payment of {payment_amount} exceeds the remaining {debt.amount}",
                payment_amount,
            )

        debt.amount -= payment_amount
        debt.status = DebtStatus.PAID if debt.amount == 0 else DebtStatus.PARTIAL
        debt.payments.append(DebtPayment(amount=payment_amount))
        debt.updated_at = utcnow()
        debt = await self._store.replace_debt(debt)

        await self._log(AuditEventType.DEBT_PAYMENT_RECORDED, debt)
        return PaymentResult(
            debt_id=debt.id,
            new_remaining=debt.amount,
            new_status=debt.status,
        )

    async def update_debt(
        self,
        user_id: str,
        debt_id: UUID,
        changes: Union[DebtUpdate, dict],
    ) -> Debt:
        """
        Replace a debt's creditor, amount, due date, status and description.

        The new amount becomes both the remaining amount and the principal.
        Earlier payments stay on record but no longer account for the
        difference between principal and remaining.
        """
        if isinstance(changes, dict):
            changes = DebtUpdate(**changes)
        debt = await self.get_debt(user_id, debt_id)
        data = debt.model_dump()
        data.update(changes.model_dump())
        data["original_principal"] = changes.amount
        data["updated_at"] = utcnow()
        debt = await self._store.replace_debt(Debt.model_validate(data))
        await self._log(AuditEventType.DEBT_UPDATED, debt)
        return debt

    async def delete_debt(self, user_id: str, debt_id: UUID) -> Debt:
        debt = await self.get_debt(user_id, debt_id)
        await self._store.delete_debt(debt_id)
        await self._log(AuditEventType.DEBT_DELETED, debt)
        return debt

    async def _log(self, event_type: AuditEventType, debt: Debt) -> None:
        await self._audit.log(AuditEventBuilder.debt_changed(
            event_type,
            debt_id=debt.id,
            user_id=debt.user_id,
            creditor=debt.creditor,
            amount=debt.amount,
            status=debt.status.value,
        ))
