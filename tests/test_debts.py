"""Tests for the debt ledger."""

from datetime import date
from uuid import uuid4

import pytest

from conftest import OTHER_USER, USER, events_of
from walletledger.ledger import InvalidAmountError, NotFoundError
from walletledger.models import DebtStatus, WalletKind
from walletledger.models.audit import AuditEventType


async def new_debt(app, amount=1000000, user_id=USER, due=date(2024, 6, 30)):
    return await app.debts.create_debt(user_id, "Bank Mandiri", amount, due, "car loan")


class TestDebtPayments:

    @pytest.mark.asyncio
    async def test_pay_down_to_zero(self, app):
        debt = await new_debt(app)
        assert debt.status == DebtStatus.UNPAID

        first = await app.debts.record_payment(USER, debt.id, 400000)
        assert first.new_remaining == 600000
        assert first.new_status == DebtStatus.PARTIAL

        second = await app.debts.record_payment(USER, debt.id, 600000)
        assert second.new_remaining == 0
        assert second.new_status == DebtStatus.PAID

        with pytest.raises(InvalidAmountError):
            await app.debts.record_payment(USER, debt.id, 100)

        stored = await app.debts.get_debt(USER, debt.id)
        assert stored.amount == 0
        assert stored.status == DebtStatus.PAID
        assert [p.amount for p in stored.payments] == [400000, 600000]
        assert stored.original_principal == 1000000

    @pytest.mark.asyncio
    async def test_overpayment_changes_nothing(self, app):
        debt = await new_debt(app, amount=500)
        with pytest.raises(InvalidAmountError):
            await app.debts.record_payment(USER, debt.id, 501)
        stored = await app.debts.get_debt(USER, debt.id)
        assert stored.amount == 500
        assert stored.status == DebtStatus.UNPAID
        assert stored.payments == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payment", [0, -10])
    async def test_non_positive_payment(self, app, payment):
        debt = await new_debt(app, amount=500)
        with pytest.raises(InvalidAmountError):
            await app.debts.record_payment(USER, debt.id, payment)

    @pytest.mark.asyncio
    async def test_payment_does_not_touch_wallets(self, app):
        wallet, _ = await app.wallets.create_wallet(
            USER, "Bank", WalletKind.BANK, opening_balance=5000
        )
        debt = await new_debt(app, amount=500)
        await app.debts.record_payment(USER, debt.id, 200)
        assert (await app.wallets.get_wallet(USER, wallet.id)).balance == 5000

    @pytest.mark.asyncio
    async def test_payment_is_audited(self, app, audit_storage):
        debt = await new_debt(app, amount=500)
        await app.debts.record_payment(USER, debt.id, 200)
        events = await events_of(audit_storage, AuditEventType.DEBT_PAYMENT_RECORDED)
        assert events[-1].entity_id == debt.id
        assert events[-1].details["amount"] == 300


class TestDebtRecords:

    @pytest.mark.asyncio
    async def test_create_rejects_non_positive_amount(self, app):
        with pytest.raises(InvalidAmountError):
            await new_debt(app, amount=0)

    @pytest.mark.asyncio
    async def test_full_edit_overwrites_remaining(self, app):
        debt = await new_debt(app)
        await app.debts.record_payment(USER, debt.id, 400000)

        edited = await app.debts.update_debt(USER, debt.id, {
            "creditor": "Bank BCA",
            "amount": 750000,
            "due_date": date(2024, 12, 31),
            "status": DebtStatus.PARTIAL,
            "description": None,
        })

        assert edited.creditor == "Bank BCA"
        assert edited.amount == 750000
        assert edited.original_principal == 750000
        assert edited.description is None
        # History survives the edit even though it no longer adds up
        assert edited.total_paid == 400000

    @pytest.mark.asyncio
    async def test_full_edit_requires_every_field(self, app):
        debt = await new_debt(app)
        with pytest.raises(ValueError):
            await app.debts.update_debt(USER, debt.id, {"amount": 5})

    @pytest.mark.asyncio
    async def test_list_orders_by_due_date(self, app):
        later = await new_debt(app, due=date(2024, 9, 1))
        sooner = await new_debt(app, due=date(2024, 7, 1))
        await new_debt(app, user_id=OTHER_USER)

        debts = await app.debts.list_debts(USER)

        assert [d.id for d in debts] == [sooner.id, later.id]

    @pytest.mark.asyncio
    async def test_delete(self, app):
        debt = await new_debt(app)
        await app.debts.delete_debt(USER, debt.id)
        with pytest.raises(NotFoundError):
            await app.debts.get_debt(USER, debt.id)

    @pytest.mark.asyncio
    async def test_foreign_debt_not_found(self, app):
        debt = await new_debt(app, user_id=OTHER_USER)
        with pytest.raises(NotFoundError):
            await app.debts.record_payment(USER, debt.id, 1)
        with pytest.raises(NotFoundError):
            await app.debts.delete_debt(USER, uuid4())
