"""
Savings Goals

Goals record progress towards a target. Contributions are bookkeeping
only and leave wallet balances alone.
"""

from datetime import date
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from walletledger.audit import AuditLogger
from walletledger.ledger.errors import require_positive
from walletledger.models.audit import AuditEventBuilder, AuditEventType
from walletledger.models.savings import SavingsGoal
from walletledger.models.wallet import utcnow
from walletledger.services.storage import LedgerStoreInterface, NotFoundError


class SavingsGoalUpdate(BaseModel):
    """Partial edit of a goal; unset fields keep their value."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    target_amount: Optional[int] = Field(default=None, ge=0)
    current_amount: Optional[int] = Field(default=None, ge=0)
    deadline: Optional[date] = None
    icon: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=20)


def progress(goal: SavingsGoal) -> int:
    """Percent of the target reached, 0-100."""
    return goal.progress_percent


class SavingsGoalService:
    """Owner-scoped savings goal operations."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()

    async def get_goal(self, user_id: str, goal_id: UUID) -> SavingsGoal:
        goal = await self._store.get_goal(goal_id)
        if goal is None or goal.user_id != user_id:
            raise NotFoundError(f"Savings goal not found: {goal_id}")
        return goal

    async def list_goals(self, user_id: str) -> list[SavingsGoal]:
        return await self._store.list_goals(user_id)

    async def create_goal(
        self,
        user_id: str,
        name: str,
        target_amount: int,
        current_amount: int = 0,
        deadline: Optional[date] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> SavingsGoal:
        fields = {
            "user_id": user_id,
            "name": name,
            "target_amount": target_amount,
            "current_amount": current_amount,
            "deadline": deadline,
        }
        if icon is not None:
            fields["icon"] = icon
        if color is not None:
            fields["color"] = color
        goal = await self._store.save_goal(SavingsGoal(**fields))
        await self._log(AuditEventType.GOAL_CREATED, goal)
        return goal

    async def update_goal(
        self,
        user_id: str,
        goal_id: UUID,
        changes: Union[SavingsGoalUpdate, dict],
    ) -> SavingsGoal:
        if isinstance(changes, dict):
            changes = SavingsGoalUpdate(**changes)
        goal = await self.get_goal(user_id, goal_id)
        data = goal.model_dump()
        data.update(changes.model_dump(exclude_unset=True))
        data["updated_at"] = utcnow()
        goal = await self._store.replace_goal(SavingsGoal.model_validate(data))
        await self._log(AuditEventType.GOAL_UPDATED, goal)
        return goal

    async def contribute(self, user_id: str, goal_id: UUID, amount: int) -> SavingsGoal:
        """
        Add `amount` to a goal's saved total.

        Raises:
            InvalidAmountError: If amount is not positive
            NotFoundError: If the goal is missing or not the user's
        """
        require_positive(amount, "Contribution")
        goal = await self.get_goal(user_id, goal_id)
        goal.current_amount += amount
        goal.updated_at = utcnow()
        goal = await self._store.replace_goal(goal)
        await self._log(AuditEventType.GOAL_CONTRIBUTION, goal)
        return goal

    async def delete_goal(self, user_id: str, goal_id: UUID) -> SavingsGoal:
        goal = await self.get_goal(user_id, goal_id)
        await self._store.delete_goal(goal_id)
        await self._log(AuditEventType.GOAL_DELETED, goal)
        return goal

    async def _log(self, event_type: AuditEventType, goal: SavingsGoal) -> None:
        await self._audit.log(AuditEventBuilder.goal_changed(
            event_type,
            goal_id=goal.id,
            user_id=goal.user_id,
            name=goal.name,
            current_amount=goal.current_amount,
            target_amount=goal.target_amount,
        ))
