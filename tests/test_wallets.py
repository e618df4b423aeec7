"""Tests for the wallet service."""

from uuid import uuid4

import pytest

from conftest import OTHER_USER, USER, events_of
from walletledger.ledger import InvalidAmountError, NotFoundError, PartialFailureError
from walletledger.models import TransactionFilter, TransactionKind, WalletKind
from walletledger.models.audit import AuditEventType
from walletledger.orchestrator import build_app
from walletledger.services.storage import InMemoryLedgerStore, StorageError


class UnwritableBalanceStore(InMemoryLedgerStore):
    """Wallets can be created but their balance never written."""

    def __init__(self, wallet_deletes_fail=False):
        super().__init__()
        self.wallet_deletes_fail = wallet_deletes_fail

    async def write_wallet_balance(self, wallet_id, new_balance, expected_version):
        raise StorageError("balance column locked")

    async def delete_wallet(self, wallet_id):
        if self.wallet_deletes_fail:
            raise StorageError("wallet sheet unavailable")
        return await super().delete_wallet(wallet_id)


class TestWalletCreation:

    @pytest.mark.asyncio
    async def test_opening_balance_is_recorded_as_income(self, app):
        wallet, opening = await app.wallets.create_wallet(
            USER, "Main Bank", WalletKind.BANK, opening_balance=250000
        )

        assert wallet.balance == 250000
        assert opening.kind == TransactionKind.INCOME
        assert opening.category == "Opening Balance"
        assert opening.amount == 250000
        assert opening.wallet_id == wallet.id

    @pytest.mark.asyncio
    async def test_zero_opening_balance_creates_no_transaction(self, app):
        wallet, opening = await app.wallets.create_wallet(USER, "Cash", WalletKind.CASH)
        assert opening is None
        assert wallet.balance == 0
        assert await app.transactions.list_transactions(USER) == []

    @pytest.mark.asyncio
    async def test_custom_icon_and_color(self, app):
        wallet, _ = await app.wallets.create_wallet(
            USER, "GoPay", WalletKind.E_WALLET, icon="phone", color="#000000"
        )
        assert wallet.icon == "phone"
        assert wallet.color == "#000000"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("opening", [-1, 1.5])
    async def test_rejects_bad_opening_balance(self, app, opening):
        with pytest.raises(InvalidAmountError):
            await app.wallets.create_wallet(USER, "Cash", WalletKind.CASH, opening_balance=opening)
        assert await app.wallets.list_wallets(USER) == []

    @pytest.mark.asyncio
    async def test_creation_is_audited(self, app, audit_storage):
        wallet, _ = await app.wallets.create_wallet(USER, "Cash", WalletKind.CASH)
        events = await audit_storage.get_events_by_entity("wallet", wallet.id)
        assert events[0].event_type == AuditEventType.WALLET_CREATED


    @pytest.mark.asyncio
    async def test_failed_opening_balance_removes_wallet(self, audit_storage, settings):
        store = UnwritableBalanceStore()
        app = build_app(store, audit_storage, settings=settings)

        with pytest.raises(StorageError):
            await app.wallets.create_wallet(
                USER, "Main Bank", WalletKind.BANK, opening_balance=250000
            )

        assert await app.wallets.list_wallets(USER) == []
        assert await app.transactions.list_transactions(USER) == []
        compensations = await events_of(audit_storage, AuditEventType.COMPENSATION_APPLIED)
        assert compensations[-1].details["operation"] == "create_wallet"
        assert compensations[-1].details["undone_steps"] == ["wallet created"]

    @pytest.mark.asyncio
    async def test_unremovable_wallet_is_a_partial_failure(self, audit_storage, settings):
        store = UnwritableBalanceStore(wallet_deletes_fail=True)
        app = build_app(store, audit_storage, settings=settings)

        with pytest.raises(PartialFailureError) as excinfo:
            await app.wallets.create_wallet(
                USER, "Main Bank", WalletKind.BANK, opening_balance=250000
            )

        assert excinfo.value.operation == "create_wallet"
        assert isinstance(excinfo.value.__cause__, StorageError)
        assert len(await app.wallets.list_wallets(USER)) == 1
        assert await events_of(audit_storage, AuditEventType.PARTIAL_FAILURE)

class TestWalletQueries:

    @pytest.mark.asyncio
    async def test_list_is_owner_scoped(self, app):
        await app.wallets.create_wallet(USER, "Mine", WalletKind.CASH)
        await app.wallets.create_wallet(OTHER_USER, "Theirs", WalletKind.CASH)
        assert [w.name for w in await app.wallets.list_wallets(USER)] == ["Mine"]

    @pytest.mark.asyncio
    async def test_total_balance(self, app):
        await app.wallets.create_wallet(USER, "A", WalletKind.CASH, opening_balance=100)
        await app.wallets.create_wallet(USER, "B", WalletKind.BANK, opening_balance=250)
        assert await app.wallets.total_balance(USER) == 350

    @pytest.mark.asyncio
    async def test_foreign_wallet_not_found(self, app):
        wallet, _ = await app.wallets.create_wallet(OTHER_USER, "Theirs", WalletKind.CASH)
        with pytest.raises(NotFoundError):
            await app.wallets.get_wallet(USER, wallet.id)
        with pytest.raises(NotFoundError):
            await app.wallets.get_wallet(USER, uuid4())


class TestWalletEdits:

    @pytest.mark.asyncio
    async def test_update_metadata_keeps_balance(self, app):
        wallet, _ = await app.wallets.create_wallet(
            USER, "Cash", WalletKind.CASH, opening_balance=500
        )
        updated = await app.wallets.update_wallet(
            USER, wallet.id, {"name": "Pocket", "color": "#ff0000"}
        )
        assert updated.name == "Pocket"
        assert updated.color == "#ff0000"
        assert updated.kind == WalletKind.CASH
        assert updated.balance == 500
        assert updated.version == wallet.version

    @pytest.mark.asyncio
    async def test_update_rejects_balance_field(self, app):
        wallet, _ = await app.wallets.create_wallet(USER, "Cash", WalletKind.CASH)
        with pytest.raises(ValueError):
            await app.wallets.update_wallet(USER, wallet.id, {"balance": 1})

    @pytest.mark.asyncio
    async def test_delete_leaves_transactions(self, app):
        wallet, opening = await app.wallets.create_wallet(
            USER, "Cash", WalletKind.CASH, opening_balance=500
        )
        deleted = await app.wallets.delete_wallet(USER, wallet.id)

        assert deleted.balance == 500
        with pytest.raises(NotFoundError):
            await app.wallets.get_wallet(USER, wallet.id)
        remaining = await app.transactions.list_transactions(
            USER, TransactionFilter(wallet_id=wallet.id)
        )
        assert [t.id for t in remaining] == [opening.id]


class TestBalanceAdjustment:

    @pytest.mark.asyncio
    async def test_adjust_up_records_income(self, app):
        wallet, _ = await app.wallets.create_wallet(
            USER, "Cash", WalletKind.CASH, opening_balance=1000
        )
        adjustment = await app.wallets.adjust_balance(USER, wallet.id, 1500)

        assert adjustment.kind == TransactionKind.INCOME
        assert adjustment.category == "Adjustment"
        assert adjustment.amount == 500
        assert (await app.wallets.get_wallet(USER, wallet.id)).balance == 1500

    @pytest.mark.asyncio
    async def test_adjust_down_records_expense(self, app):
        wallet, _ = await app.wallets.create_wallet(
            USER, "Cash", WalletKind.CASH, opening_balance=1000
        )
        adjustment = await app.wallets.adjust_balance(
            USER, wallet.id, -200, description="counted the drawer"
        )

        assert adjustment.kind == TransactionKind.EXPENSE
        assert adjustment.amount == 1200
        assert adjustment.description == "counted the drawer"
        assert (await app.wallets.get_wallet(USER, wallet.id)).balance == -200

    @pytest.mark.asyncio
    async def test_adjust_to_same_balance_is_a_no_op(self, app):
        wallet, _ = await app.wallets.create_wallet(
            USER, "Cash", WalletKind.CASH, opening_balance=1000
        )
        assert await app.wallets.adjust_balance(USER, wallet.id, 1000) is None
        assert len(await app.transactions.list_transactions(USER)) == 1


class TestReconciliation:

    @pytest.mark.asyncio
    async def test_consistent_wallet_is_left_alone(self, app, audit_storage):
        wallet, _ = await app.wallets.create_wallet(
            USER, "Cash", WalletKind.CASH, opening_balance=1000
        )
        report = await app.wallets.reconcile_wallet(USER, wallet.id)

        assert report.is_consistent
        assert report.repaired is False
        assert report.transaction_count == 1
        assert await events_of(audit_storage, AuditEventType.WALLET_RECONCILED)

    @pytest.mark.asyncio
    async def test_drift_is_detected_and_repaired(self, app, store, audit_storage):
        wallet, _ = await app.wallets.create_wallet(
            USER, "Cash", WalletKind.CASH, opening_balance=1000
        )
        # Simulate a balance write that no transaction accounts for
        current = await store.get_wallet(wallet.id)
        await store.write_wallet_balance(wallet.id, 1700, expected_version=current.version)

        report = await app.wallets.reconcile_wallet(USER, wallet.id)

        assert report.stored_balance == 1700
        assert report.computed_balance == 1000
        assert report.drift == 700
        assert report.repaired is True
        assert (await store.get_wallet(wallet.id)).balance == 1000
        drift_events = await events_of(audit_storage, AuditEventType.BALANCE_DRIFT_DETECTED)
        assert drift_events[-1].details["repaired"] is True

    @pytest.mark.asyncio
    async def test_report_only(self, app, store):
        wallet, _ = await app.wallets.create_wallet(USER, "Cash", WalletKind.CASH)
        await store.write_wallet_balance(wallet.id, 42, expected_version=0)

        report = await app.wallets.reconcile_wallet(USER, wallet.id, repair=False)

        assert report.drift == 42
        assert report.repaired is False
        assert (await store.get_wallet(wallet.id)).balance == 42

    @pytest.mark.asyncio
    async def test_reconcile_user_covers_every_wallet(self, app, store):
        first, _ = await app.wallets.create_wallet(USER, "A", WalletKind.CASH, opening_balance=10)
        second, _ = await app.wallets.create_wallet(USER, "B", WalletKind.BANK)
        await store.write_wallet_balance(second.id, -5, expected_version=0)

        reports = await app.wallets.reconcile_user(USER)

        by_wallet = {r.wallet_id: r for r in reports}
        assert set(by_wallet) == {first.id, second.id}
        assert by_wallet[first.id].is_consistent
        assert by_wallet[second.id].repaired is True
        assert (await store.get_wallet(second.id)).balance == 0
