"""
Transaction Lifecycle Manager

Creates, edits and deletes transactions together with the balance
changes they imply, and records transfers as a pair of transactions.

Every multi-step operation keeps a list of undo actions, one per step
that has taken effect. If a later step fails, the undo actions run
newest-first and the original error is re-raised: the caller sees a
rejected operation and no leftover effect. If an undo action fails too,
PartialFailureError is raised and the wallets involved must be
reconciled (see WalletService.reconcile_wallet).

Step order:
- create:   persist record -> apply effect
- update:   reverse old effect -> persist new values -> apply new effect
- delete:   reverse effect -> remove record
- transfer: expense leg + debit source -> income leg + credit destination

Edits and deletes are checked against the transaction version they read.
If a concurrent edit or delete of the same record wins, the loser undoes
its steps and starts over from a fresh read.
"""

from datetime import datetime
from typing import Awaitable, Callable, Optional, Union
from uuid import UUID, uuid4

from tenacity import (
    AsyncRetrying,
    AttemptManager,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from walletledger.audit import AuditLogger, create_correlation_id
from walletledger.config import LedgerSettings, get_settings
from walletledger.ledger.balance import BalanceAdjuster
from walletledger.ledger.errors import (
    LedgerError,
    PartialFailureError,
    SameWalletError,
    require_positive,
)
from walletledger.models.audit import AuditEventBuilder, AuditEventType
from walletledger.models.wallet import (
    RecurrencePattern,
    Transaction,
    TransactionFilter,
    TransactionKind,
    TransactionUpdate,
    TransferResult,
    Wallet,
    utcnow,
)
from walletledger.services.storage import ConflictError, LedgerStoreInterface, NotFoundError


UndoStep = tuple[str, Callable[[], Awaitable]]


class TransferLegEditError(LedgerError, ValueError):
    """Kind, amount or wallet of a transfer leg cannot be edited on its own."""
    pass


class TransactionManager:
    """
    Orchestrates transaction mutations and their balance effects.

    All operations are scoped to the acting user: records owned by
    someone else are reported as NotFoundError.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        balance: Optional[BalanceAdjuster] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger
        self._balance = balance or BalanceAdjuster(store, self._audit, self._settings)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def owned_wallet(self, user_id: str, wallet_id: UUID) -> Wallet:
        wallet = await self._store.get_wallet(wallet_id)
        if wallet is None or wallet.user_id != user_id:
            raise NotFoundError(f"Wallet not found: {wallet_id}")
        return wallet

    async def get_transaction(self, user_id: str, transaction_id: UUID) -> Transaction:
        transaction = await self._store.get_transaction(transaction_id)
        if transaction is None or transaction.user_id != user_id:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction

    async def list_transactions(
        self,
        user_id: str,
        filters: Optional[TransactionFilter] = None,
    ) -> list[Transaction]:
        """A user's transactions, newest first, optionally filtered."""
        return await self._store.list_transactions(user_id, filters)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create_transaction(
        self,
        user_id: str,
        wallet_id: UUID,
        kind: TransactionKind,
        category: str,
        amount: int,
        description: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
        is_recurring: bool = False,
        recurring_pattern: Optional[RecurrencePattern] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a transaction and apply it to its wallet.

        Raises:
            InvalidAmountError: If amount is not positive
            NotFoundError: If the wallet is missing or not the user's
            ConflictError: If the balance could not be written (record rolled back)
            PartialFailureError: If the record could not be rolled back
        """
        require_positive(amount)
        await self.owned_wallet(user_id, wallet_id)
        transaction = Transaction(
            user_id=user_id,
            wallet_id=wallet_id,
            kind=kind,
            category=category,
            amount=amount,
            description=description,
            occurred_at=occurred_at or utcnow(),
            is_recurring=is_recurring,
            recurring_pattern=recurring_pattern,
        )
        correlation_id = correlation_id or create_correlation_id()

        undo: list[UndoStep] = []
        try:
            await self._store.save_transaction(transaction)
            undo.append(("transaction saved", self._deleter(transaction)))
            new_balance = await self._apply(transaction, correlation_id)
        except Exception as exc:
            await self._compensate(
                "create_transaction", undo, exc, user_id, [wallet_id], correlation_id
            )
            raise

        await self._audit.log(AuditEventBuilder.transaction_changed(
            AuditEventType.TRANSACTION_CREATED,
            transaction_id=transaction.id,
            user_id=user_id,
            wallet_id=wallet_id,
            kind=transaction.kind.value,
            amount=amount,
            details={"category": transaction.category, "new_balance": new_balance},
            correlation_id=correlation_id,
        ))
        return transaction

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    async def update_transaction(
        self,
        user_id: str,
        transaction_id: UUID,
        changes: Union[TransactionUpdate, dict],
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Edit a transaction, moving its balance effect if kind, amount or wallet change.

        The old effect is reversed and written before the new one is applied,
        so the old and new effects are never both live. The rewrite is
        checked against the version that was read; if another edit or delete
        got there first, the completed steps are undone and the edit starts
        over from a fresh read.

        Raises:
            InvalidAmountError: If the new amount is not positive
            NotFoundError: If the transaction or the new wallet is missing
            TransferLegEditError: If a transfer leg's kind, amount or wallet is edited
            ConflictError: If the record kept changing for every retry
        """
        if isinstance(changes, dict):
            changes = TransactionUpdate(**changes)
        if "amount" in changes.model_fields_set:
            require_positive(changes.amount)

        correlation_id = correlation_id or create_correlation_id()
        async for attempt in self._record_retrying():
            with attempt:
                await self._log_record_retry(
                    attempt, transaction_id, "update_transaction", user_id, correlation_id
                )
                old, new, new_balance = await self._update_once(
                    user_id, transaction_id, changes, correlation_id
                )

        details = {"changed": sorted(changes.model_fields_set)}
        if old.effect != new.effect:
            details.update({
                "old_wallet_id": str(old.wallet_id),
                "old_kind": old.kind.value,
                "old_amount": old.amount,
                "new_balance": new_balance,
            })
        await self._audit.log(AuditEventBuilder.transaction_changed(
            AuditEventType.TRANSACTION_UPDATED,
            transaction_id=new.id,
            user_id=user_id,
            wallet_id=new.wallet_id,
            kind=new.kind.value,
            amount=new.amount,
            details=details,
            correlation_id=correlation_id,
        ))
        return new

    async def _update_once(
        self,
        user_id: str,
        transaction_id: UUID,
        changes: TransactionUpdate,
        correlation_id: UUID,
    ) -> tuple[Transaction, Transaction, Optional[int]]:
        old = await self.get_transaction(user_id, transaction_id)
        data = old.model_dump()
        data.update(changes.model_dump(exclude_unset=True))
        data["updated_at"] = utcnow()
        new = Transaction.model_validate(data)

        moves_balance = old.effect != new.effect
        if moves_balance and old.is_transfer_leg:
            raise TransferLegEditError(
                "Transfer legs keep their wallet, kind and amount; delete and redo the transfer"
            )

        old_wallet_exists = True
        if moves_balance:
            await self.owned_wallet(user_id, new.wallet_id)
            # The old wallet may have been deleted; its effect is then already gone
            old_wallet_exists = await self._store.get_wallet(old.wallet_id) is not None

        undo: list[UndoStep] = []
        new_balance = None
        try:
            if moves_balance and old_wallet_exists:
                await self._reverse(old, correlation_id)
                undo.append(("old effect reversed", lambda: self._apply(old, correlation_id)))
            new = await self._store.replace_transaction(new, expected_version=old.version)
            undo.append(("transaction rewritten", self._rewriter(old, new.version)))
            if moves_balance:
                new_balance = await self._apply(new, correlation_id)
        except Exception as exc:
            await self._compensate(
                "update_transaction",
                undo,
                exc,
                user_id,
                list({old.wallet_id, new.wallet_id}),
                correlation_id,
            )
            raise
        return old, new, new_balance

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete_transaction(
        self,
        user_id: str,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Reverse a transaction's effect and remove it.

        Deleting either leg of a transfer deletes the whole transfer. If the
        record is edited while the delete runs, the delete is undone and
        retried on the edited record; if it is deleted by someone else
        first, the reversal is undone and NotFoundError is raised.

        Returns:
            The deleted transaction
        """
        transaction = await self.get_transaction(user_id, transaction_id)
        if transaction.is_transfer_leg:
            await self.delete_transfer(user_id, transaction.transfer_id, correlation_id)
            return transaction

        correlation_id = correlation_id or create_correlation_id()
        async for attempt in self._record_retrying():
            with attempt:
                await self._log_record_retry(
                    attempt, transaction_id, "delete_transaction", user_id, correlation_id
                )
                transaction = await self.get_transaction(user_id, transaction_id)
                await self._remove_all("delete_transaction", [transaction], user_id, correlation_id)

        await self._audit.log(AuditEventBuilder.transaction_changed(
            AuditEventType.TRANSACTION_DELETED,
            transaction_id=transaction.id,
            user_id=user_id,
            wallet_id=transaction.wallet_id,
            kind=transaction.kind.value,
            amount=transaction.amount,
            correlation_id=correlation_id,
        ))
        return transaction

    # -------------------------------------------------------------------------
    # Transfers
    # -------------------------------------------------------------------------

    async def transfer(
        self,
        user_id: str,
        source_wallet_id: UUID,
        destination_wallet_id: UUID,
        amount: int,
        description: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> TransferResult:
        """
        Move money between two of the user's wallets.

        Recorded as an expense leg on the source and an income leg on the
        destination, both in the transfer category and sharing one
        transfer_id. If the second leg fails the first is rolled back.

        Raises:
            InvalidAmountError: If amount is not positive
            SameWalletError: If source and destination are the same wallet
            NotFoundError: If either wallet is missing or not the user's
        """
        require_positive(amount)
        if source_wallet_id == destination_wallet_id:
            raise SameWalletError("Cannot transfer to the same wallet")
        source = await self.owned_wallet(user_id, source_wallet_id)
        destination = await self.owned_wallet(user_id, destination_wallet_id)

        transfer_id = uuid4()
        occurred_at = occurred_at or utcnow()
        suffix = f": {description}" if description else ""
        expense_leg = Transaction(
            user_id=user_id,
            wallet_id=source.id,
            kind=TransactionKind.EXPENSE,
            category=self._settings.transfer_category,
            amount=amount,
            description=f"Transfer to {destination.name}{suffix}",
            occurred_at=occurred_at,
            transfer_id=transfer_id,
        )
        income_leg = Transaction(
            user_id=user_id,
            wallet_id=destination.id,
            kind=TransactionKind.INCOME,
            category=self._settings.transfer_category,
            amount=amount,
            description=f"Transfer from {source.name}{suffix}",
            occurred_at=occurred_at,
            transfer_id=transfer_id,
        )
        correlation_id = correlation_id or create_correlation_id()

        undo: list[UndoStep] = []
        try:
            await self._store.save_transaction(expense_leg)
            undo.append(("expense leg saved", self._deleter(expense_leg)))
            source_balance = await self._apply(expense_leg, correlation_id)
            undo.append(("source debited", lambda: self._reverse(expense_leg, correlation_id)))
            await self._store.save_transaction(income_leg)
            undo.append(("income leg saved", self._deleter(income_leg)))
            destination_balance = await self._apply(income_leg, correlation_id)
        except Exception as exc:
            await self._compensate(
                "transfer", undo, exc, user_id, [source.id, destination.id], correlation_id
            )
            raise

        await self._audit.log(AuditEventBuilder.transfer_completed(
            transfer_id=transfer_id,
            user_id=user_id,
            source_wallet_id=source.id,
            destination_wallet_id=destination.id,
            amount=amount,
            correlation_id=correlation_id,
        ))
        return TransferResult(
            transfer_id=transfer_id,
            expense_leg=expense_leg,
            income_leg=income_leg,
            source_balance=source_balance,
            destination_balance=destination_balance,
        )

    async def delete_transfer(
        self,
        user_id: str,
        transfer_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """Delete both legs of a transfer as one unit."""
        correlation_id = correlation_id or create_correlation_id()
        async for attempt in self._record_retrying():
            with attempt:
                legs = await self._store.list_transactions(
                    user_id, TransactionFilter(transfer_id=transfer_id)
                )
                if not legs:
                    raise NotFoundError(f"Transfer not found: {transfer_id}")
                await self._log_record_retry(
                    attempt, legs[0].id, "delete_transfer", user_id, correlation_id
                )
                await self._remove_all("delete_transfer", legs, user_id, correlation_id)

        await self._audit.log(AuditEventBuilder.transfer_deleted(
            transfer_id=transfer_id,
            user_id=user_id,
            leg_count=len(legs),
            correlation_id=correlation_id,
        ))
        return legs

    # -------------------------------------------------------------------------
    # Steps and compensation
    # -------------------------------------------------------------------------

    def _record_retrying(self) -> AsyncRetrying:
        """Restart an edit or delete whose record changed underneath it."""
        return AsyncRetrying(
            retry=retry_if_exception_type(ConflictError),
            stop=stop_after_attempt(self._settings.max_conflict_retries),
            wait=wait_exponential(
                multiplier=0.01,
                min=self._settings.retry_wait_min_seconds,
                max=self._settings.retry_wait_max_seconds,
            ),
            reraise=True,
        )

    async def _log_record_retry(
        self,
        attempt: AttemptManager,
        transaction_id: UUID,
        operation: str,
        user_id: str,
        correlation_id: UUID,
    ) -> None:
        number = attempt.retry_state.attempt_number
        if number > 1:
            await self._audit.log_transaction_conflict_retry(
                transaction_id=transaction_id,
                operation=operation,
                attempt=number - 1,
                user_id=user_id,
                correlation_id=correlation_id,
            )

    async def _apply(self, transaction: Transaction, correlation_id: UUID) -> int:
        return await self._balance.apply_effect(
            transaction.wallet_id, transaction.kind, transaction.amount, correlation_id
        )

    async def _reverse(self, transaction: Transaction, correlation_id: UUID) -> int:
        return await self._balance.reverse_effect(
            transaction.wallet_id, transaction.kind, transaction.amount, correlation_id
        )

    def _deleter(self, transaction: Transaction) -> Callable[[], Awaitable]:
        return lambda: self._store.delete_transaction(transaction.id)

    def _restorer(self, transaction: Transaction) -> Callable[[], Awaitable]:
        return lambda: self._store.save_transaction(transaction)

    def _rewriter(self, previous: Transaction, current_version: int) -> Callable[[], Awaitable]:
        return lambda: self._store.replace_transaction(
            previous, expected_version=current_version
        )

    async def _remove_all(
        self,
        operation: str,
        transactions: list[Transaction],
        user_id: str,
        correlation_id: UUID,
    ) -> None:
        undo: list[UndoStep] = []
        try:
            for transaction in transactions:
                await self._remove(transaction, undo, correlation_id)
        except Exception as exc:
            await self._compensate(
                operation,
                undo,
                exc,
                user_id,
                list({t.wallet_id for t in transactions}),
                correlation_id,
            )
            raise

    async def _remove(
        self,
        transaction: Transaction,
        undo: list[UndoStep],
        correlation_id: UUID,
    ) -> None:
        """
        Reverse then delete one transaction, recording undo steps as they land.

        The delete is checked against the version that was read. A record
        that is already gone raises NotFoundError, so the reversal made for
        it is undone instead of being applied twice.
        """
        label = str(transaction.id)
        # A deleted wallet has no balance left to correct
        if await self._store.get_wallet(transaction.wallet_id) is not None:
            await self._reverse(transaction, correlation_id)
            undo.append((
                f"effect of {label} reversed",
                lambda: self._apply(transaction, correlation_id),
            ))
        removed = await self._store.delete_transaction(
            transaction.id, expected_version=transaction.version
        )
        if not removed:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        undo.append((f"{label} removed", self._restorer(transaction)))

    async def _compensate(
        self,
        operation: str,
        undo: list[UndoStep],
        cause: Exception,
        user_id: str,
        wallet_ids: list[UUID],
        correlation_id: UUID,
    ) -> None:
        """
        Undo completed steps newest-first.

        Returns normally when everything was undone, so the caller can
        re-raise the original error. Raises PartialFailureError otherwise.
        """
        if not undo:
            return
        undone: list[str] = []
        for name, action in reversed(undo):
            try:
                await action()
            except Exception as undo_error:
                still_applied = [step for step, _ in undo if step not in undone]
                await self._audit.log_partial_failure(
                    operation=operation,
                    completed_steps=still_applied,
                    cause=undo_error,
                    user_id=user_id,
                    correlation_id=correlation_id,
                )
                raise PartialFailureError(
                    operation, still_applied, wallet_ids, cause=undo_error
                ) from cause
            undone.append(name)
        await self._audit.log_compensation(
            operation=operation,
            undone_steps=undone,
            cause=cause,
            user_id=user_id,
            correlation_id=correlation_id,
        )
