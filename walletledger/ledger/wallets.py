"""
Wallet Service

Wallet CRUD plus the two recovery tools for balance drift.

The balance is never set directly:
- initial funds become an income transaction in the opening-balance category
- a manual correction becomes an income or expense in the adjustment category
- reconciliation recomputes the balance from the wallet's transactions

Deleting a wallet does not delete its transactions.
"""

from typing import Optional, Union
from uuid import UUID

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from walletledger.audit import AuditLogger, create_correlation_id
from walletledger.config import LedgerSettings, get_settings
from walletledger.ledger.balance import BalanceAdjuster, balance_from
from walletledger.ledger.errors import InvalidAmountError, PartialFailureError
from walletledger.ledger.transactions import TransactionManager
from walletledger.models.audit import AuditEventBuilder, AuditEventType
from walletledger.models.wallet import (
    ReconciliationReport,
    Transaction,
    TransactionKind,
    Wallet,
    WalletKind,
    WalletUpdate,
    utcnow,
)
from walletledger.services.storage import ConflictError, LedgerStoreInterface, NotFoundError


class WalletService:
    """Owner-scoped wallet operations."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        transactions: Optional[TransactionManager] = None,
        balance: Optional[BalanceAdjuster] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger
        self._balance = balance or BalanceAdjuster(store, self._audit, self._settings)
        self._transactions = transactions or TransactionManager(
            store, self._balance, self._audit, self._settings
        )

    async def create_wallet(
        self,
        user_id: str,
        name: str,
        kind: WalletKind,
        opening_balance: int = 0,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> tuple[Wallet, Optional[Transaction]]:
        """
        Create a wallet with balance 0, then record any opening balance.

        Returns:
            (wallet, opening_transaction) - the transaction is None
            when opening_balance is 0

        If the opening balance cannot be recorded the wallet is removed
        again and the error is re-raised.
        """
        if isinstance(opening_balance, bool) or not isinstance(opening_balance, int):
            raise InvalidAmountError("Opening balance must be an integer", opening_balance)
        if opening_balance < 0:
            raise InvalidAmountError(
                f"Opening balance cannot be negative, got {opening_balance}",
                opening_balance,
            )

        fields = {"user_id": user_id, "name": name, "kind": kind}
        if icon is not None:
            fields["icon"] = icon
        if color is not None:
            fields["color"] = color
        wallet = await self._store.create_wallet(Wallet(**fields))

        correlation_id = create_correlation_id()
        await self._audit.log(AuditEventBuilder.wallet_created(
            wallet_id=wallet.id,
            user_id=user_id,
            name=wallet.name,
            kind=wallet.kind.value,
            correlation_id=correlation_id,
        ))

        opening = None
        if opening_balance > 0:
            try:
                opening = await self._transactions.create_transaction(
                    user_id=user_id,
                    wallet_id=wallet.id,
                    kind=TransactionKind.INCOME,
                    category=self._settings.opening_balance_category,
                    amount=opening_balance,
                    correlation_id=correlation_id,
                )
            except Exception as exc:
                await self._discard_wallet(wallet, exc, correlation_id)
                raise
            wallet = await self._store.get_wallet(wallet.id)
        return wallet, opening

    async def _discard_wallet(self, wallet: Wallet, cause: Exception, correlation_id: UUID) -> None:
        """Remove a wallet whose opening balance could not be recorded."""
        steps = ["wallet created"]
        try:
            await self._store.delete_wallet(wallet.id)
        except Exception as undo_error:
            await self._audit.log_partial_failure(
                operation="create_wallet",
                completed_steps=steps,
                cause=undo_error,
                user_id=wallet.user_id,
                correlation_id=correlation_id,
            )
            raise PartialFailureError(
                "create_wallet", steps, [wallet.id], cause=undo_error
            ) from cause
        await self._audit.log_compensation(
            operation="create_wallet",
            undone_steps=steps,
            cause=cause,
            user_id=wallet.user_id,
            correlation_id=correlation_id,
        )

    async def get_wallet(self, user_id: str, wallet_id: UUID) -> Wallet:
        return await self._transactions.owned_wallet(user_id, wallet_id)

    async def list_wallets(self, user_id: str) -> list[Wallet]:
        return await self._store.list_wallets(user_id)

    async def total_balance(self, user_id: str) -> int:
        return sum(w.balance for w in await self.list_wallets(user_id))

    async def update_wallet(
        self,
        user_id: str,
        wallet_id: UUID,
        changes: Union[WalletUpdate, dict],
    ) -> Wallet:
        """Edit name, kind, icon or color. Balance edits go through adjust_balance."""
        if isinstance(changes, dict):
            changes = WalletUpdate(**changes)
        wallet = await self.get_wallet(user_id, wallet_id)
        data = wallet.model_dump()
        data.update(changes.model_dump(exclude_unset=True))
        data["updated_at"] = utcnow()
        updated = await self._store.update_wallet_metadata(Wallet.model_validate(data))
        await self._audit.log(AuditEventBuilder.wallet_changed(
            AuditEventType.WALLET_UPDATED,
            wallet_id=wallet_id,
            user_id=user_id,
            details=changes.model_dump(exclude_unset=True, mode="json"),
        ))
        return updated

    async def delete_wallet(self, user_id: str, wallet_id: UUID) -> Wallet:
        """Delete a wallet, leaving its transactions untouched."""
        wallet = await self.get_wallet(user_id, wallet_id)
        await self._store.delete_wallet(wallet_id)
        await self._audit.log(AuditEventBuilder.wallet_changed(
            AuditEventType.WALLET_DELETED,
            wallet_id=wallet_id,
            user_id=user_id,
            details={"name": wallet.name, "final_balance": wallet.balance},
        ))
        return wallet

    async def adjust_balance(
        self,
        user_id: str,
        wallet_id: UUID,
        target_balance: int,
        description: Optional[str] = None,
    ) -> Optional[Transaction]:
        """
        Bring a wallet to `target_balance` by recording the difference.

        Returns:
            The adjustment transaction, or None if the balance already matches
        """
        if isinstance(target_balance, bool) or not isinstance(target_balance, int):
            raise InvalidAmountError("Target balance must be an integer", target_balance)
        wallet = await self.get_wallet(user_id, wallet_id)
        difference = target_balance - wallet.balance
        if difference == 0:
            return None
        return await self._transactions.create_transaction(
            user_id=user_id,
            wallet_id=wallet_id,
            kind=TransactionKind.INCOME if difference > 0 else TransactionKind.EXPENSE,
            category=self._settings.adjustment_category,
            amount=abs(difference),
            description=description or (
                "Balance adjustment in" if difference > 0 else "Balance adjustment out"
            ),
        )

    async def reconcile_wallet(
        self,
        user_id: str,
        wallet_id: UUID,
        repair: bool = True,
    ) -> ReconciliationReport:
        """
        Recompute a wallet's balance from its transactions.

        When `repair` is set and the stored balance has drifted, the
        recomputed value is written back against the version read at the
        start; if another write lands in between, the whole comparison
        is redone.

        Run this while no lifecycle operation is in flight on the wallet
        (e.g. after a PartialFailureError): a transaction that is saved
        but not yet applied looks exactly like drift.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ConflictError),
            stop=stop_after_attempt(self._settings.max_conflict_retries),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                wallet = await self.get_wallet(user_id, wallet_id)
                transactions = await self._store.list_wallet_transactions(wallet_id)
                report = ReconciliationReport(
                    wallet_id=wallet_id,
                    stored_balance=wallet.balance,
                    computed_balance=balance_from(transactions),
                    transaction_count=len(transactions),
                )
                if repair and not report.is_consistent:
                    await self._balance.set_balance(
                        wallet_id, report.computed_balance, expected_version=wallet.version
                    )
                    report.repaired = True

        await self._audit.log(AuditEventBuilder.wallet_reconciled(
            wallet_id=wallet_id,
            user_id=user_id,
            stored_balance=report.stored_balance,
            computed_balance=report.computed_balance,
            repaired=report.repaired,
        ))
        return report

    async def reconcile_user(
        self,
        user_id: str,
        repair: bool = True,
    ) -> list[ReconciliationReport]:
        """Reconcile every wallet of a user."""
        reports = []
        for wallet in await self.list_wallets(user_id):
            try:
                reports.append(await self.reconcile_wallet(user_id, wallet.id, repair))
            except NotFoundError:
                # Deleted while the sweep was running
                continue
        return reports
