"""
Audit Models for Wallet Ledger

Every ledger mutation is logged for audit purposes.
This provides:
1. Complete traceability of balance changes
2. Debugging information when a multi-step operation fails
3. The raw material for reconstructing how a balance drifted

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from walletledger.models.wallet import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Wallets
    WALLET_CREATED = "wallet_created"
    WALLET_UPDATED = "wallet_updated"
    WALLET_DELETED = "wallet_deleted"
    WALLET_RECONCILED = "wallet_reconciled"
    BALANCE_DRIFT_DETECTED = "balance_drift_detected"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSFER_COMPLETED = "transfer_completed"
    TRANSFER_DELETED = "transfer_deleted"

    # Consistency
    BALANCE_CONFLICT_RETRIED = "balance_conflict_retried"
    TRANSACTION_CONFLICT_RETRIED = "transaction_conflict_retried"
    COMPENSATION_APPLIED = "compensation_applied"
    PARTIAL_FAILURE = "partial_failure"

    # Budgets
    BUDGET_REPLACED = "budget_replaced"

    # Debts
    DEBT_CREATED = "debt_created"
    DEBT_UPDATED = "debt_updated"
    DEBT_DELETED = "debt_deleted"
    DEBT_PAYMENT_RECORDED = "debt_payment_recorded"

    # Savings goals
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_DELETED = "goal_deleted"
    GOAL_CONTRIBUTION = "goal_contribution"

    # Custom categories
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'wallet', 'transaction', 'debt')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - ties together the steps of one logical operation
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(transaction, new_balance, correlation_id)
        event = AuditEventBuilder.transfer_completed(result, user_id, correlation_id)
    """

    @staticmethod
    def wallet_created(
        wallet_id: UUID,
        user_id: str,
        name: str,
        kind: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WALLET_CREATED,
            user_id=user_id,
            entity_type="wallet",
            entity_id=wallet_id,
            correlation_id=correlation_id,
            description=f"Wallet created: {name}",
            details={"name": name, "kind": kind},
        )

    @staticmethod
    def wallet_changed(
        event_type: AuditEventType,
        wallet_id: UUID,
        user_id: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = "updated" if event_type == AuditEventType.WALLET_UPDATED else "deleted"
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="wallet",
            entity_id=wallet_id,
            correlation_id=correlation_id,
            description=f"Wallet {verb}",
            details=details or {},
        )

    @staticmethod
    def wallet_reconciled(
        wallet_id: UUID,
        user_id: str,
        stored_balance: int,
        computed_balance: int,
        repaired: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        drift = stored_balance - computed_balance
        return AuditEvent(
            event_type=(
                AuditEventType.WALLET_RECONCILED if drift == 0
                else AuditEventType.BALANCE_DRIFT_DETECTED
            ),
            severity=AuditSeverity.INFO if drift == 0 else AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="wallet",
            entity_id=wallet_id,
            correlation_id=correlation_id,
            description=(
                "Wallet balance matches its transactions" if drift == 0
                else f"Wallet balance drifted by {drift}"
            ),
            details={
                "stored_balance": stored_balance,
                "computed_balance": computed_balance,
                "repaired": repaired,
            },
        )

    @staticmethod
    def transaction_changed(
        event_type: AuditEventType,
        transaction_id: UUID,
        user_id: str,
        wallet_id: UUID,
        kind: str,
        amount: int,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        action = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {action}: {kind} {amount}",
            details={
                "wallet_id": str(wallet_id),
                "kind": kind,
                "amount": amount,
                **(details or {}),
            },
        )

    @staticmethod
    def transfer_completed(
        transfer_id: UUID,
        user_id: str,
        source_wallet_id: UUID,
        destination_wallet_id: UUID,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            user_id=user_id,
            entity_type="transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"Transferred {amount} between wallets",
            details={
                "source_wallet_id": str(source_wallet_id),
                "destination_wallet_id": str(destination_wallet_id),
                "amount": amount,
            },
        )

    @staticmethod
    def transfer_deleted(
        transfer_id: UUID,
        user_id: str,
        leg_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_DELETED,
            user_id=user_id,
            entity_type="transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"Transfer deleted ({leg_count} legs)",
            details={"leg_count": leg_count},
        )

    @staticmethod
    def balance_conflict_retried(
        wallet_id: UUID,
        attempt: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_CONFLICT_RETRIED,
            severity=AuditSeverity.DEBUG,
            entity_type="wallet",
            entity_id=wallet_id,
            correlation_id=correlation_id,
            description=f"Concurrent balance write detected, retry #{attempt}",
            details={"attempt": attempt},
        )

    @staticmethod
    def transaction_conflict_retried(
        transaction_id: UUID,
        operation: str,
        attempt: int,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CONFLICT_RETRIED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction changed during {operation}, retry #{attempt}",
            details={"operation": operation, "attempt": attempt},
        )

    @staticmethod
    def compensation_applied(
        operation: str,
        undone_steps: list[str],
        cause: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMPENSATION_APPLIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="operation",
            correlation_id=correlation_id,
            description=f"{operation} rolled back after failure",
            details={"operation": operation, "undone_steps": undone_steps},
            error_message=cause,
        )

    @staticmethod
    def partial_failure(
        operation: str,
        completed_steps: list[str],
        cause: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIAL_FAILURE,
            severity=AuditSeverity.CRITICAL,
            user_id=user_id,
            entity_type="operation",
            correlation_id=correlation_id,
            description=f"{operation} could not be rolled back; reconciliation required",
            details={"operation": operation, "completed_steps": completed_steps},
            error_code="PARTIAL_FAILURE",
            error_message=cause,
        )

    @staticmethod
    def budget_replaced(
        budget_id: UUID,
        user_id: str,
        month: str,
        categories: list[str],
        total_budget: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_REPLACED,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget for {month} replaced ({len(categories)} allocations)",
            details={
                "month": month,
                "categories": categories,
                "total_budget": total_budget,
            },
        )

    @staticmethod
    def debt_changed(
        event_type: AuditEventType,
        debt_id: UUID,
        user_id: str,
        creditor: str,
        amount: int,
        status: str,
    ) -> AuditEvent:
        action = event_type.value.split("_", 1)[1].replace("_", " ")
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="debt",
            entity_id=debt_id,
            description=f"Debt {action}: {creditor}",
            details={"creditor": creditor, "amount": amount, "status": status},
        )

    @staticmethod
    def goal_changed(
        event_type: AuditEventType,
        goal_id: UUID,
        user_id: str,
        name: str,
        current_amount: int,
        target_amount: int,
    ) -> AuditEvent:
        action = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="savings_goal",
            entity_id=goal_id,
            description=f"Savings goal {action}: {name}",
            details={
                "current_amount": current_amount,
                "target_amount": target_amount,
            },
        )

    @staticmethod
    def category_changed(
        event_type: AuditEventType,
        category_id: UUID,
        user_id: str,
        name: str,
        kind: str,
    ) -> AuditEvent:
        action = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            description=f"Category {action}: {name}",
            details={"name": name, "kind": kind},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            error_code=error_type,
            error_message=error_message,
        )
