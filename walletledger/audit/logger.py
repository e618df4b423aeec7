"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability for failed multi-step operations
3. A record of every compensation and every unresolved partial failure

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a broken audit sink never fails a ledger write)
- Supports correlation IDs to trace the steps of one operation
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from walletledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from walletledger.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog (JSON lines on the stdlib root logger)."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level))
    logging.getLogger().setLevel(getattr(logging, log_level))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("walletledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_conflict_retry(
        self,
        wallet_id: UUID,
        attempt: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a lost compare-and-swap on a wallet balance."""
        event = AuditEventBuilder.balance_conflict_retried(
            wallet_id=wallet_id,
            attempt=attempt,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_conflict_retry(
        self,
        transaction_id: UUID,
        operation: str,
        attempt: int,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an edit or delete that lost to a concurrent change of the same record."""
        event = AuditEventBuilder.transaction_conflict_retried(
            transaction_id=transaction_id,
            operation=operation,
            attempt=attempt,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_compensation(
        self,
        operation: str,
        undone_steps: list[str],
        cause: Exception,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a successful rollback of a half-finished operation."""
        event = AuditEventBuilder.compensation_applied(
            operation=operation,
            undone_steps=undone_steps,
            cause=f"{type(cause).__name__}: {cause}",
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_partial_failure(
        self,
        operation: str,
        completed_steps: list[str],
        cause: Exception,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an operation that could neither finish nor be rolled back."""
        event = AuditEventBuilder.partial_failure(
            operation=operation,
            completed_steps=completed_steps,
            cause=f"{type(cause).__name__}: {cause}",
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new ledger operation (e.g., a transfer).
    Pass it through all subsequent steps.
    """
    return uuid4()
