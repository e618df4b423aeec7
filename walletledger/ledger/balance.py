"""
Balance Adjustment Unit

The only code that writes a wallet balance.

Every write is an optimistic read-modify-write:
1. Read balance and version
2. Compute the new balance with integer arithmetic
3. Write it back only if the version is unchanged

A lost race raises ConflictError from the store; we re-read and try
again, up to `max_conflict_retries` attempts, before surfacing it.
"""

from typing import Iterable, Optional
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from walletledger.audit import AuditLogger
from walletledger.config import LedgerSettings, get_settings
from walletledger.ledger.errors import require_positive
from walletledger.models.wallet import Transaction, TransactionKind, Wallet
from walletledger.services.storage import (
    ConflictError,
    LedgerStoreInterface,
    NotFoundError,
)


def signed_effect(kind: TransactionKind, amount: int) -> int:
    """Income adds to a wallet; expense and bill subtract."""
    kind = TransactionKind(kind)
    if kind == TransactionKind.INCOME:
        return amount
    return -amount


def balance_from(transactions: Iterable[Transaction]) -> int:
    """The balance a set of transactions implies for their wallet."""
    return sum(signed_effect(t.kind, t.amount) for t in transactions)


class BalanceAdjuster:
    """
    Applies and reverses transaction effects on wallet balances.

    `reverse_effect` is `apply_effect` with the sign flipped, so
    apply-then-reverse restores the original balance exactly.
    Negative balances are allowed: nothing here checks for funds.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().ledger

    async def apply_effect(
        self,
        wallet_id: UUID,
        kind: TransactionKind,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Add a transaction's effect to its wallet.

        Returns:
            The new balance

        Raises:
            InvalidAmountError: If amount is not positive (nothing is read or written)
            NotFoundError: If the wallet doesn't exist
            ConflictError: If every attempt lost to a concurrent writer
        """
        require_positive(amount)
        wallet = await self._adjust(wallet_id, signed_effect(kind, amount), correlation_id)
        return wallet.balance

    async def reverse_effect(
        self,
        wallet_id: UUID,
        kind: TransactionKind,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Remove a transaction's effect from its wallet. Exact inverse of apply_effect."""
        require_positive(amount)
        wallet = await self._adjust(wallet_id, -signed_effect(kind, amount), correlation_id)
        return wallet.balance

    async def set_balance(
        self,
        wallet_id: UUID,
        target_balance: int,
        expected_version: int,
    ) -> Wallet:
        """
        Overwrite the balance with a recomputed value.

        Only the reconciliation sweep uses this; everything else moves
        balances by deltas. Not retried: a conflict means the balance the
        target was computed against is gone, so the caller must recompute.
        """
        return await self._store.write_wallet_balance(
            wallet_id, target_balance, expected_version=expected_version
        )

    async def _adjust(
        self,
        wallet_id: UUID,
        delta: int,
        correlation_id: Optional[UUID],
    ) -> Wallet:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ConflictError),
            stop=stop_after_attempt(self._settings.max_conflict_retries),
            wait=wait_exponential(
                multiplier=0.01,
                min=self._settings.retry_wait_min_seconds,
                max=self._settings.retry_wait_max_seconds,
            ),
            reraise=True,
        )
        wallet = None
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    await self._audit.log_conflict_retry(
                        wallet_id=wallet_id,
                        attempt=number - 1,
                        correlation_id=correlation_id,
                    )
                # Fresh read on every attempt
                current = await self._store.get_wallet(wallet_id)
                if current is None:
                    raise NotFoundError(f"Wallet not found: {wallet_id}")
                wallet = await self._store.write_wallet_balance(
                    wallet_id,
                    current.balance + delta,
                    expected_version=current.version,
                )
        return wallet
