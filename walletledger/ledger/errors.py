"""
Ledger Errors

Callers see one taxonomy:
- NotFoundError: wallet/transaction/debt/goal absent or not owned by the caller
- InvalidAmountError: a non-positive or precondition-violating amount
- ConflictError: a concurrent write to the same wallet or transaction won
  every retry
- DuplicateError: a custom category name already taken for that kind
- PartialFailureError: a multi-step operation stopped halfway and could not
  be rolled back; the affected wallets need reconciliation

NotFoundError, ConflictError and DuplicateError come from the storage
layer and are re-exported here unchanged.
"""

from typing import Optional
from uuid import UUID

from walletledger.services.storage import ConflictError, DuplicateError, NotFoundError


class LedgerError(Exception):
    """Base exception for ledger rule violations."""
    pass


class InvalidAmountError(LedgerError, ValueError):
    """Amount is not positive or exceeds what the operation allows."""

    def __init__(self, message: str, amount: Optional[int] = None):
        super().__init__(message)
        self.amount = amount


class SameWalletError(LedgerError, ValueError):
    """Transfer source and destination are the same wallet."""
    pass


class PartialFailureError(LedgerError):
    """
    Some steps of an operation took effect and undoing them failed too.

    Attributes:
        operation: Name of the operation (e.g. 'transfer')
        completed_steps: Steps that are still in effect
        wallet_ids: Wallets whose balance may now disagree with their transactions
    """

    def __init__(
        self,
        operation: str,
        completed_steps: list[str],
        wallet_ids: list[UUID],
        cause: Optional[BaseException] = None,
    ):
        message = (
            f"{operation} failed after {', '.join(completed_steps) or 'no steps'}"
            f" and could not be rolled back"
        )
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.operation = operation
        self.completed_steps = completed_steps
        self.wallet_ids = wallet_ids
        self.cause = cause


def require_positive(amount, what: str = "Amount") -> int:
    """Reject anything that is not a strictly positive integer."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"{what} must be an integer in minor units", amount)
    if amount <= 0:
        raise InvalidAmountError(f"{what} must be positive, got {amount}", amount)
    return amount


__all__ = [
    "ConflictError",
    "DuplicateError",
    "InvalidAmountError",
    "LedgerError",
    "NotFoundError",
    "PartialFailureError",
    "SameWalletError",
    "require_positive",
]
