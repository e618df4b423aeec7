"""
Savings Goal Model

Goals are tracked on their own: funding a goal does not move money
out of any wallet.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from walletledger.models.wallet import utcnow


class SavingsGoal(BaseModel):
    """A target amount the user is saving towards."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    target_amount: int = Field(..., ge=0)
    current_amount: int = Field(default=0, ge=0)
    deadline: Optional[date] = None
    icon: str = Field(default="target", max_length=40)
    color: str = Field(default="#10b981", max_length=20)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def progress_percent(self) -> int:
        """Whole-number progress, capped at 100."""
        if self.target_amount == 0:
            return 100
        return min(100, self.current_amount * 100 // self.target_amount)

    @property
    def is_reached(self) -> bool:
        return self.current_amount >= self.target_amount
